"""Authentication routes."""
from typing import Optional, Union

from fastapi import APIRouter, Cookie, Depends, Request, Response, status

from ...config import settings
from ...core.auth import REFRESH_COOKIE, auth_service
from ...core.security import get_user_store, protect
from ...models.user import User
from ...schemas.auth import (
    AuthResponse,
    EmailRequest,
    LoginRequest,
    RefreshTokenRequest,
    ResetPasswordRequest,
    SignupRequest,
    TwoFactorChallengeResponse,
    TwoFactorCodeRequest,
    TwoFactorLoginRequest,
    TwoFactorSetupResponse,
    UpdatePasswordRequest,
)
from ...schemas.common import SuccessResponse
from ...services.email import EmailService, get_email_service
from ...services.users import UserStore

router = APIRouter(prefix="/auth", tags=["Authentication"])


def get_base_url(request: Request) -> str:
    """Origin used in emailed links; ``PUBLIC_URL`` wins over the request host."""
    return (settings.api.public_url or str(request.base_url)).rstrip("/")


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    signup_request: SignupRequest,
    response: Response,
    store: UserStore = Depends(get_user_store),
    mailer: EmailService = Depends(get_email_service),
    base_url: str = Depends(get_base_url),
):
    """Register a new user and log them in."""
    return await auth_service.signup(store, mailer, signup_request, base_url, response)


@router.post("/login", response_model=Union[AuthResponse, TwoFactorChallengeResponse])
async def login(
    login_request: LoginRequest,
    response: Response,
    store: UserStore = Depends(get_user_store),
):
    """Password login; users with 2FA get a challenge instead of tokens."""
    return await auth_service.login(store, login_request.email, login_request.password, response)


@router.get("/logout", response_model=SuccessResponse)
async def logout(
    response: Response,
    current_user: User = Depends(protect),
    store: UserStore = Depends(get_user_store),
):
    return await auth_service.logout(store, current_user, response)


@router.post("/forgot-pwd", response_model=SuccessResponse)
async def forgot_password(
    email_request: EmailRequest,
    store: UserStore = Depends(get_user_store),
    mailer: EmailService = Depends(get_email_service),
    base_url: str = Depends(get_base_url),
):
    return await auth_service.forgot_password(store, mailer, email_request.email, base_url)


@router.patch("/reset-pwd/{token}", response_model=SuccessResponse)
async def reset_password(
    token: str,
    reset_request: ResetPasswordRequest,
    store: UserStore = Depends(get_user_store),
):
    return await auth_service.reset_password(
        store, token, reset_request.password, reset_request.password_confirm
    )


@router.patch("/update-pwd", response_model=SuccessResponse)
async def update_password(
    update_request: UpdatePasswordRequest,
    current_user: User = Depends(protect),
    store: UserStore = Depends(get_user_store),
):
    """Change the password of the logged-in user; other sessions are revoked."""
    return await auth_service.update_password(
        store,
        current_user,
        update_request.current_password,
        update_request.new_password,
        update_request.new_password_confirm,
    )


@router.post("/login/passwordless", response_model=SuccessResponse)
async def password_less_login(
    email_request: EmailRequest,
    store: UserStore = Depends(get_user_store),
    mailer: EmailService = Depends(get_email_service),
    base_url: str = Depends(get_base_url),
):
    """Email a single-use login link."""
    return await auth_service.password_less_login(store, mailer, email_request.email, base_url)


@router.get("/login/2fa", response_model=TwoFactorSetupResponse)
async def set_two_factor_login(
    current_user: User = Depends(protect),
    store: UserStore = Depends(get_user_store),
):
    """Start 2FA enrollment. It is not active until confirmed with a code."""
    return await auth_service.set_two_factor_login(store, current_user)


@router.post("/login/2fa/confirm", response_model=SuccessResponse)
async def confirm_two_factor_login(
    code_request: TwoFactorCodeRequest,
    current_user: User = Depends(protect),
    store: UserStore = Depends(get_user_store),
):
    return await auth_service.confirm_two_factor_login(store, current_user, code_request.code)


@router.delete("/login/2fa", response_model=SuccessResponse)
async def disable_two_factor_login(
    code_request: TwoFactorCodeRequest,
    current_user: User = Depends(protect),
    store: UserStore = Depends(get_user_store),
):
    return await auth_service.disable_two_factor_login(store, current_user, code_request.code)


@router.post("/login/2fa", response_model=AuthResponse)
async def two_factor_login(
    two_factor_request: TwoFactorLoginRequest,
    response: Response,
    store: UserStore = Depends(get_user_store),
):
    """Second login step for users with 2FA enabled."""
    return await auth_service.two_factor_login(
        store, two_factor_request.id, two_factor_request.code, response
    )


@router.get("/login/{token}", response_model=AuthResponse)
async def verify_password_less_login(
    token: str,
    response: Response,
    store: UserStore = Depends(get_user_store),
):
    return await auth_service.verify_password_less_login(store, token, response)


@router.post("/refresh", response_model=AuthResponse)
async def refresh_token(
    response: Response,
    refresh_request: Optional[RefreshTokenRequest] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    store: UserStore = Depends(get_user_store),
):
    """Rotate the refresh token; read from the body or the refresh cookie."""
    token = (refresh_request.refresh_token if refresh_request else None) or refresh_cookie
    return await auth_service.refresh_token(store, token, response)
