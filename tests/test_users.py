"""Tests for user self-service and user management endpoints."""
from datetime import date

from rbac_api.core.tokens import TokenClass, token_issuer
from rbac_api.models.user import Role


async def test_get_current_user(client, auth_headers, test_user):
    """Test getting current user info."""
    response = await client.get("/api/v1/users/me", headers=auth_headers)

    assert response.status_code == 200
    user = response.json()["data"]["user"]
    assert user["email"] == test_user.email
    assert user["role"] == "user"
    assert "hashed_password" not in user


async def test_get_current_user_unauthorized(client):
    """Test getting current user without auth."""
    response = await client.get("/api/v1/users/me")

    assert response.status_code == 401
    assert response.json()["status"] == "fail"


async def test_bearer_scheme_is_case_insensitive(client, test_user):
    token = token_issuer.issue(test_user.id, TokenClass.ACCESS)

    response = await client.get("/api/v1/users/me", headers={"Authorization": f"bearer {token}"})

    assert response.status_code == 200


async def test_rejects_other_schemes_and_bad_tokens(client, test_user):
    token = token_issuer.issue(test_user.id, TokenClass.ACCESS)

    response = await client.get("/api/v1/users/me", headers={"Authorization": f"Token {token}"})
    assert response.status_code == 401

    response = await client.get("/api/v1/users/me", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401

    # Refresh-class tokens are signed with a different secret
    refresh = token_issuer.issue(test_user.id, TokenClass.REFRESH, session_id="abc")
    response = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {refresh}"})
    assert response.status_code == 401


async def test_token_of_unknown_user(client):
    token = token_issuer.issue("00000000-0000-0000-0000-000000000000", TokenClass.ACCESS)

    response = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


async def test_blocked_user_token_is_forbidden(client, make_user, auth_headers_for):
    user = await make_user("blocked@example.com", blocked=True)

    response = await client.get("/api/v1/users/me", headers=auth_headers_for(user))

    assert response.status_code == 403


async def test_update_me(client, auth_headers):
    response = await client.patch(
        "/api/v1/users/me",
        headers=auth_headers,
        json={"firstName": "Updated", "maritalStatus": "Married", "dateOfBirth": "1990-05-01"},
    )

    assert response.status_code == 200
    user = response.json()["data"]["user"]
    assert user["first_name"] == "Updated"
    assert user["marital_status"] == "Married"
    assert user["date_of_birth"] == "1990-05-01"


async def test_update_me_rejects_privileged_fields(client, auth_headers):
    """Test role and flags cannot be changed through the profile route."""
    response = await client.patch("/api/v1/users/me", headers=auth_headers, json={"role": "root"})

    assert response.status_code == 400


async def test_update_me_rejects_minors(client, auth_headers):
    born = date(date.today().year - 10, 1, 1)
    response = await client.patch(
        "/api/v1/users/me",
        headers=auth_headers,
        json={"dateOfBirth": born.isoformat()},
    )

    assert response.status_code == 400


async def test_delete_me_deactivates(client, test_user, auth_headers, load_user, login):
    response = await client.delete("/api/v1/users/me", headers=auth_headers)

    assert response.status_code == 204
    stored = await load_user(test_user.id)
    assert stored.active is False
    assert stored.refresh_token_hash is None

    # Inactive users are invisible to login and token checks
    assert (await login(test_user.email)).status_code == 401
    assert (await client.get("/api/v1/users/me", headers=auth_headers)).status_code == 401


async def test_verify_email_is_single_use(client, mailer, load_user):
    response = await client.post(
        "/api/v1/auth/signup",
        json={"email": "verify@example.com", "password": "secret1", "passwordConfirm": "secret1"},
    )
    user_id = response.json()["data"]["user"]["id"]
    token = mailer.last_link_token()

    response = await client.get(f"/api/v1/users/verify-email/{token}")
    assert response.status_code == 200
    stored = await load_user(user_id)
    assert stored.email_verified is True
    assert stored.verify_email_token is None

    response = await client.get(f"/api/v1/users/verify-email/{token}")
    assert response.status_code == 400


async def test_new_verification_link_supersedes_old(client, auth_headers, mailer):
    await client.post("/api/v1/users/verify-email", headers=auth_headers)
    first = mailer.last_link_token()
    response = await client.post("/api/v1/users/verify-email", headers=auth_headers)
    assert response.status_code == 200
    second = mailer.last_link_token()

    assert (await client.get(f"/api/v1/users/verify-email/{first}")).status_code == 400
    assert (await client.get(f"/api/v1/users/verify-email/{second}")).status_code == 200


async def test_update_email(client, test_user, auth_headers, mailer, load_user):
    response = await client.patch(
        "/api/v1/users/update-email", headers=auth_headers, json={"email": "New@Example.com"}
    )

    assert response.status_code == 200
    stored = await load_user(test_user.id)
    assert stored.email == "new@example.com"
    assert stored.email_verified is False
    assert mailer.sent[-1].to == "new@example.com"


async def test_update_email_conflict(client, make_user, auth_headers):
    await make_user("taken@example.com")

    response = await client.patch(
        "/api/v1/users/update-email", headers=auth_headers, json={"email": "taken@example.com"}
    )

    assert response.status_code == 409


async def test_list_users_restricted(client, auth_headers):
    """Test plain users cannot list users."""
    response = await client.get("/api/v1/users/", headers=auth_headers)

    assert response.status_code == 403


async def test_list_users_as_admin(client, make_user, auth_headers_for, test_user):
    admin = await make_user("admin@example.com", role=Role.ADMIN)
    await make_user("gone@example.com", active=False)

    response = await client.get("/api/v1/users/?limit=1", headers=auth_headers_for(admin))

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert body["results"] == 1
    assert body["page"] == 1


async def test_auditor_can_read_users(client, make_user, auth_headers_for, test_user):
    auditor = await make_user("auditor@example.com", role=Role.AUDITOR)

    response = await client.get(f"/api/v1/users/{test_user.id}", headers=auth_headers_for(auditor))

    assert response.status_code == 200
    assert response.json()["data"]["user"]["id"] == test_user.id


async def test_user_cannot_read_other_users(client, make_user, auth_headers, auth_headers_for):
    other = await make_user("other@example.com")

    response = await client.get(f"/api/v1/users/{other.id}", headers=auth_headers)

    assert response.status_code == 403


async def test_get_unknown_user(client, make_user, auth_headers_for):
    auditor = await make_user("auditor@example.com", role=Role.AUDITOR)

    response = await client.get("/api/v1/users/missing", headers=auth_headers_for(auditor))

    assert response.status_code == 404


async def test_admin_cannot_modify_peer(client, make_user, auth_headers_for):
    """Test an admin acting on another admin is rejected."""
    admin = await make_user("admin@example.com", role=Role.ADMIN)
    peer = await make_user("peer@example.com", role=Role.ADMIN)

    response = await client.patch(
        f"/api/v1/users/{peer.id}", headers=auth_headers_for(admin), json={"blocked": True}
    )

    assert response.status_code == 403


async def test_admin_cannot_modify_self(client, make_user, auth_headers_for):
    admin = await make_user("admin@example.com", role=Role.ADMIN)

    response = await client.patch(
        f"/api/v1/users/{admin.id}", headers=auth_headers_for(admin), json={"role": "user"}
    )

    assert response.status_code == 403


async def test_root_blocks_admin(client, make_user, auth_headers_for, load_user):
    """Test a root user acting on an admin is allowed."""
    root = await make_user("root@example.com", role=Role.ROOT)
    admin = await make_user("admin@example.com", role=Role.ADMIN)

    response = await client.patch(
        f"/api/v1/users/{admin.id}", headers=auth_headers_for(root), json={"blocked": True}
    )

    assert response.status_code == 200
    assert response.json()["data"]["user"]["blocked"] is True
    assert (await load_user(admin.id)).session_id is None


async def test_admin_cannot_grant_own_rank(client, make_user, auth_headers_for, test_user):
    admin = await make_user("admin@example.com", role=Role.ADMIN)
    headers = auth_headers_for(admin)

    response = await client.patch(f"/api/v1/users/{test_user.id}", headers=headers, json={"role": "admin"})
    assert response.status_code == 403

    response = await client.patch(f"/api/v1/users/{test_user.id}", headers=headers, json={"role": "auditor"})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["role"] == "auditor"


async def test_delete_user_requires_root(client, make_user, auth_headers_for, test_user):
    admin = await make_user("admin@example.com", role=Role.ADMIN)

    response = await client.delete(f"/api/v1/users/{test_user.id}", headers=auth_headers_for(admin))

    assert response.status_code == 403


async def test_root_deletes_admin(client, make_user, auth_headers_for, load_user):
    root = await make_user("root@example.com", role=Role.ROOT)
    admin = await make_user("admin@example.com", role=Role.ADMIN)
    headers = auth_headers_for(root)

    response = await client.delete(f"/api/v1/users/{admin.id}", headers=headers)

    assert response.status_code == 204
    assert (await load_user(admin.id)).active is False
    assert (await client.get(f"/api/v1/users/{admin.id}", headers=headers)).status_code == 404


async def test_forbidden_keeps_error_shape(client, auth_headers):
    """Test a guard rejection on a protected route renders as JSON."""
    response = await client.get("/api/v1/users/", headers=auth_headers)

    assert response.status_code == 403
    body = response.json()
    assert body["status"] == "fail"
    assert body["error_code"] == "AUTHORIZATION_ERROR"
    assert "X-Request-ID" in response.headers


async def test_update_email_taken_by_inactive_user(client, make_user, auth_headers, load_user, test_user):
    await make_user("dormant@example.com", active=False)

    response = await client.patch(
        "/api/v1/users/update-email", headers=auth_headers, json={"email": "dormant@example.com"}
    )

    assert response.status_code == 409
    assert response.json()["error_code"] == "CONFLICT_ERROR"
    assert (await load_user(test_user.id)).email == test_user.email


async def test_update_user_rejects_null_fields(client, make_user, auth_headers_for, load_user, test_user):
    root = await make_user("root@example.com", role=Role.ROOT)
    headers = auth_headers_for(root)

    for field in ("role", "blocked", "active"):
        response = await client.patch(f"/api/v1/users/{test_user.id}", headers=headers, json={field: None})
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    stored = await load_user(test_user.id)
    assert stored.role == "user"
    assert stored.blocked is False
    assert stored.active is True
