"""Tests for application-level endpoints and error rendering."""


async def test_root(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "X-Request-ID" in response.headers


async def test_unknown_route_uses_error_shape(client):
    response = await client.get("/api/v1/nowhere")

    assert response.status_code == 404
    body = response.json()
    assert body["status"] == "fail"
    assert "timestamp" in body


async def test_malformed_body_is_bad_request(client):
    response = await client.post("/api/v1/auth/signup", json={"email": "not-an-email", "password": "x"})

    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"
