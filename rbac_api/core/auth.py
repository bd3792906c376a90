"""Authentication flows: signup, login, 2FA, password and email lifecycle."""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Union

import structlog
from fastapi import Response

from ..config import settings
from ..models.base import utcnow
from ..models.user import User, ensure_password_confirmed
from ..schemas.auth import (
    AuthResponse,
    SignupRequest,
    TwoFactorChallengeResponse,
    TwoFactorSetupResponse,
)
from ..schemas.common import SuccessResponse
from ..schemas.user import UserEnvelope, UserResponse
from ..services.email import EmailMessage, EmailService
from ..services.users import UserStore
from .exceptions import (
    AuthenticationError,
    AuthorizationError,
    BadRequestError,
    ConflictError,
    EmailDeliveryError,
    InvalidOrExpiredTokenError,
    NotFoundError,
    TokenError,
)
from .hashing import SecretHasher, secret_hasher
from .logging import BusinessLogger, SecurityLogger
from .tokens import (
    VERIFY_EMAIL_TOKEN_BYTES,
    PASSWORD_RESET_TOKEN_BYTES,
    TokenClass,
    TokenIssuer,
    TokenPayload,
    create_ephemeral_token,
    digest_token,
    new_session_id,
    new_token_id,
    token_issuer,
)
from .totp import SecondFactorVerifier, second_factor

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"

logger = structlog.get_logger("core.auth")

_NO_ROTATION = object()


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str


class AuthService:
    """Authentication service.

    Every method is request-scoped: it receives the ``UserStore`` bound to
    the request's session and, where mail goes out, the ``EmailService``.
    """

    def __init__(
        self,
        hasher: SecretHasher = None,
        issuer: TokenIssuer = None,
        verifier: SecondFactorVerifier = None,
    ):
        self.hasher = hasher or secret_hasher
        self.issuer = issuer or token_issuer
        self.verifier = verifier or second_factor

    # -- token issuance -------------------------------------------------

    def verify_token(self, token: str, token_class: TokenClass) -> TokenPayload:
        """Verify a signed token, mapping every failure to a 401."""
        try:
            return self.issuer.verify(token, token_class)
        except TokenError as exc:
            raise AuthenticationError("Invalid or expired token") from exc

    async def issue_session(
        self,
        store: UserStore,
        user: User,
        rotate_from=_NO_ROTATION,
    ) -> IssuedTokens:
        """Issue an access/refresh pair and store the refresh token's hash.

        With ``rotate_from`` the new hash is written only if the stored one
        still equals it, so two concurrent refreshes cannot both win.
        """
        session_id = new_session_id()
        access_token = self.issuer.issue(user.id, TokenClass.ACCESS)
        refresh_token = self.issuer.issue(user.id, TokenClass.REFRESH, session_id=session_id)
        refresh_hash = await self.hasher.hash_async(refresh_token)

        if rotate_from is _NO_ROTATION:
            user.refresh_token_hash = refresh_hash
            user.session_id = session_id
            await store.save(user, validate=False)
        else:
            rotated = await store.rotate_refresh_token(user.id, rotate_from, refresh_hash, session_id)
            if not rotated:
                SecurityLogger.log_token_refresh(user.id, success=False, failure_reason="superseded")
                raise AuthenticationError("Invalid refresh token")

        return IssuedTokens(access_token=access_token, refresh_token=refresh_token)

    def set_auth_cookies(self, response: Response, tokens: IssuedTokens) -> None:
        expires = utcnow() + timedelta(days=settings.auth.cookie_expire_days)
        for name, value in ((ACCESS_COOKIE, tokens.access_token), (REFRESH_COOKIE, tokens.refresh_token)):
            response.set_cookie(
                key=name,
                value=value,
                expires=expires,
                httponly=True,
                secure=settings.is_production,
                samesite="lax",
            )

    async def send_tokens(
        self,
        store: UserStore,
        user: User,
        response: Response,
        rotate_from=_NO_ROTATION,
    ) -> AuthResponse:
        """Issue a fresh pair, set both cookies and return the sanitized user."""
        tokens = await self.issue_session(store, user, rotate_from=rotate_from)
        self.set_auth_cookies(response, tokens)
        return AuthResponse(
            access_token=tokens.access_token,
            expires_in=int(self.issuer.lifetime(TokenClass.ACCESS).total_seconds()),
            data=UserEnvelope(user=UserResponse.model_validate(user)),
        )

    # -- signup and login -----------------------------------------------

    async def signup(
        self,
        store: UserStore,
        mailer: EmailService,
        request: SignupRequest,
        base_url: str,
        response: Response,
    ) -> AuthResponse:
        ensure_password_confirmed(request.password, request.password_confirm)
        hashed_password = await self.hasher.hash_async(request.password)

        user = await store.create(
            email=request.email,
            first_name=request.first_name,
            last_name=request.last_name,
            hashed_password=hashed_password,
            password_changed_at=utcnow(),
        )
        BusinessLogger.log_user_created(user.id, user.email, user.role)

        try:
            await self.send_verify_email(store, mailer, user, base_url)
        except EmailDeliveryError:
            logger.warning("Verification email not sent after signup", user_id=user.id)

        return await self.send_tokens(store, user, response)

    async def login(
        self,
        store: UserStore,
        email: Optional[str],
        password: Optional[str],
        response: Response,
    ) -> Union[AuthResponse, TwoFactorChallengeResponse]:
        if not email or not password:
            raise BadRequestError("Please provide email/password")

        user = await store.find_by_email(email, include=("hashed_password",))
        if (
            user is None
            or not user.hashed_password
            or not await self.hasher.verify_async(user.hashed_password, password)
        ):
            SecurityLogger.log_login_attempt(email, success=False, failure_reason="bad_credentials")
            raise AuthenticationError("Incorrect email or password")

        self._ensure_not_blocked(user)

        if self.hasher.needs_rehash(user.hashed_password):
            # Same password, new digest: leave password_changed_at alone so live sessions survive
            user.hashed_password = await self.hasher.hash_async(password)
            await store.save(user, validate=False)

        if user.has_two_factor_auth:
            SecurityLogger.log_login_attempt(email, success=True, method="password+2fa_pending")
            return TwoFactorChallengeResponse(data={"id": user.id})

        SecurityLogger.log_login_attempt(email, success=True)
        user_without_password = await store.reload(user)
        return await self.send_tokens(store, user_without_password, response)

    async def password_less_login(
        self,
        store: UserStore,
        mailer: EmailService,
        email: str,
        base_url: str,
    ) -> SuccessResponse:
        user = await store.find_by_email(email)
        if user is None:
            raise NotFoundError("User not found!")

        # A new link supersedes any earlier unused one
        user.login_token_id = new_token_id()
        await store.save(user, validate=False)
        login_token = self.issuer.issue(user.id, TokenClass.LOGIN, token_id=user.login_token_id)

        await mailer.send(
            EmailMessage(
                to=user.email,
                subject="Login to your account",
                body=f"Click on the link to login: {base_url}/api/v1/auth/login/{login_token}",
            )
        )
        return SuccessResponse(message="Login link sent to email!")

    async def verify_password_less_login(
        self,
        store: UserStore,
        token: str,
        response: Response,
    ) -> AuthResponse:
        if not token:
            raise BadRequestError("Invalid token")

        payload = self.verify_token(token, TokenClass.LOGIN)
        user = await store.find_by_id(payload.user_id)
        if user is None:
            raise AuthenticationError("User belonging to this token no longer exists.")
        if not payload.token_id or payload.token_id != user.login_token_id:
            raise AuthenticationError("Login link has already been used")

        self._ensure_not_blocked(user)
        user.login_token_id = None
        SecurityLogger.log_login_attempt(user.email, success=True, method="passwordless")
        return await self.send_tokens(store, user, response)

    # -- two-factor -----------------------------------------------------

    async def set_two_factor_login(self, store: UserStore, user: User) -> TwoFactorSetupResponse:
        """Start enrollment: the secret stays pending until a code confirms it."""
        enrollment = self.verifier.generate_secret(user.email)
        user.pending_two_factor_secret = enrollment.secret
        await store.save(user, validate=False)

        SecurityLogger.log_two_factor_event(user.id, "enrollment_started")
        return TwoFactorSetupResponse(
            data={"secret": enrollment.secret, "provisioning_uri": enrollment.provisioning_uri}
        )

    async def confirm_two_factor_login(self, store: UserStore, user: User, code: str) -> SuccessResponse:
        enrolling = await store.find_by_id(user.id, include=("pending_two_factor_secret",))
        if enrolling is None or not enrolling.pending_two_factor_secret:
            raise BadRequestError("No two-factor enrollment in progress")

        if not self.verifier.verify_code(enrolling.pending_two_factor_secret, code):
            SecurityLogger.log_two_factor_event(user.id, "enrollment_confirmed", success=False)
            raise AuthenticationError("Invalid 2FA token.")

        enrolling.two_factor_secret = enrolling.pending_two_factor_secret
        enrolling.pending_two_factor_secret = None
        enrolling.has_two_factor_auth = True
        await store.save(enrolling, validate=False)

        SecurityLogger.log_two_factor_event(user.id, "enrollment_confirmed")
        return SuccessResponse(message="Two-factor login enabled")

    async def disable_two_factor_login(self, store: UserStore, user: User, code: str) -> SuccessResponse:
        enrolled = await store.find_by_id(user.id, include=("two_factor_secret",))
        if enrolled is None or not enrolled.has_two_factor_auth:
            raise BadRequestError("Two-factor login is not enabled")

        if not self.verifier.verify_code(enrolled.two_factor_secret, code):
            SecurityLogger.log_two_factor_event(user.id, "disabled", success=False)
            raise AuthenticationError("Invalid 2FA token.")

        enrolled.two_factor_secret = None
        enrolled.has_two_factor_auth = False
        await store.save(enrolled, validate=False)

        SecurityLogger.log_two_factor_event(user.id, "disabled")
        return SuccessResponse(message="Two-factor login disabled")

    async def two_factor_login(
        self,
        store: UserStore,
        user_id: str,
        code: str,
        response: Response,
    ) -> AuthResponse:
        """Second login step: the id from step one plus a current TOTP code."""
        user = await store.find_by_id(user_id, include=("two_factor_secret",))
        if (
            user is None
            or not user.has_two_factor_auth
            or not self.verifier.verify_code(user.two_factor_secret, code)
        ):
            SecurityLogger.log_two_factor_event(user_id, "login", success=False)
            raise AuthenticationError("Invalid 2FA token.")

        self._ensure_not_blocked(user)
        SecurityLogger.log_two_factor_event(user.id, "login")
        user_without_secret = await store.reload(user)
        return await self.send_tokens(store, user_without_secret, response)

    # -- session lifecycle ----------------------------------------------

    async def logout(self, store: UserStore, user: User, response: Response) -> SuccessResponse:
        """Revoke the refresh slot server-side and expire the cookies."""
        user.revoke_session()
        await store.save(user, validate=False)

        response.set_cookie(
            key=ACCESS_COOKIE,
            value="loggedout",
            expires=utcnow() + timedelta(seconds=5),
            httponly=True,
        )
        response.delete_cookie(REFRESH_COOKIE)
        SecurityLogger.log_logout(user.id)
        return SuccessResponse(message="Logged out successfully")

    async def refresh_token(
        self,
        store: UserStore,
        refresh_token: Optional[str],
        response: Response,
    ) -> AuthResponse:
        if not refresh_token:
            raise BadRequestError("No refresh token")

        payload = self.verify_token(refresh_token, TokenClass.REFRESH)
        user = await store.find_by_id(payload.user_id, include=("refresh_token_hash",))
        if user is None:
            raise NotFoundError("User does not exist")

        self._ensure_not_blocked(user)

        stored_hash = user.refresh_token_hash
        if (
            not stored_hash
            or payload.session_id != user.session_id
            or not await self.hasher.verify_async(stored_hash, refresh_token)
        ):
            SecurityLogger.log_token_refresh(user.id, success=False, failure_reason="mismatch")
            raise AuthenticationError("Invalid refresh token")

        result = await self.send_tokens(store, user, response, rotate_from=stored_hash)
        SecurityLogger.log_token_refresh(user.id, success=True)
        return result

    # -- passwords ------------------------------------------------------

    async def forgot_password(
        self,
        store: UserStore,
        mailer: EmailService,
        email: str,
        base_url: str,
    ) -> SuccessResponse:
        user = await store.find_by_email(email)
        if user is None:
            raise NotFoundError("User with that email does not exist")

        reset = create_ephemeral_token(
            PASSWORD_RESET_TOKEN_BYTES,
            ttl=timedelta(minutes=settings.auth.password_reset_expire_minutes),
        )
        user.password_reset_token = reset.digest
        user.password_reset_token_expires = reset.expires_at
        await store.save(user, validate=False)

        try:
            await mailer.send(
                EmailMessage(
                    to=user.email,
                    subject="Your password reset URL",
                    body=(
                        "Forgot your password ? Click on this link "
                        f"{base_url}/api/v1/auth/reset-pwd/{reset.plaintext}"
                    ),
                )
            )
        except EmailDeliveryError:
            user.password_reset_token = None
            user.password_reset_token_expires = None
            await store.save(user, validate=False)
            raise

        return SuccessResponse(message="A password reset link has been sent to your email!")

    async def reset_password(
        self,
        store: UserStore,
        token: str,
        password: str,
        password_confirm: Optional[str],
    ) -> SuccessResponse:
        user = await store.find_by_token_digest(
            "password_reset_token",
            digest_token(token),
            expires_field="password_reset_token_expires",
        )
        if user is None:
            raise InvalidOrExpiredTokenError("Token expired or invalid")

        ensure_password_confirmed(password, password_confirm)
        user.set_password_hash(await self.hasher.hash_async(password))
        user.password_reset_token = None
        user.password_reset_token_expires = None
        user.revoke_session()
        await store.save(user)

        SecurityLogger.log_password_changed(user.id, method="reset")
        return SuccessResponse(message="Password has been reset successfully")

    async def update_password(
        self,
        store: UserStore,
        user: User,
        current_password: str,
        new_password: str,
        new_password_confirm: Optional[str],
    ) -> SuccessResponse:
        """Change the password after re-checking the current one."""
        account = await store.find_by_id(user.id, include=("hashed_password",))
        if (
            account is None
            or not account.hashed_password
            or not await self.hasher.verify_async(account.hashed_password, current_password)
        ):
            raise AuthenticationError("Your current password is wrong. Reset it or try again")

        ensure_password_confirmed(new_password, new_password_confirm)
        account.set_password_hash(await self.hasher.hash_async(new_password))
        account.revoke_session()
        await store.save(account, validate=False)

        SecurityLogger.log_password_changed(account.id, method="update")
        return SuccessResponse(message="Password has been changed successfully")

    # -- email verification ---------------------------------------------

    async def send_verify_email(
        self,
        store: UserStore,
        mailer: EmailService,
        user: User,
        base_url: str,
        intro: str = "We are glad you want to verify your email.",
    ) -> SuccessResponse:
        """Issue a verification token (superseding any earlier one) and mail it."""
        verify = create_ephemeral_token(VERIFY_EMAIL_TOKEN_BYTES)
        user.verify_email_token = verify.digest
        user.email_verified = False
        await store.save(user, validate=False)

        greeting = f"Hi {user.first_name}." if user.first_name else "Hi."
        await mailer.send(
            EmailMessage(
                to=user.email,
                subject="Verify your email",
                body=(
                    f"{greeting} {intro} Click the link below to verify your email "
                    "address and complete your profile setup.\n\n"
                    f"{base_url}/api/v1/users/verify-email/{verify.plaintext}"
                ),
            )
        )
        return SuccessResponse(message="Verification email sent successfully")

    async def verify_email(self, store: UserStore, token: str) -> SuccessResponse:
        user = await store.find_by_token_digest("verify_email_token", digest_token(token))
        if user is None:
            raise InvalidOrExpiredTokenError("Verification failed, request again!")

        user.verify_email_token = None
        user.email_verified = True
        await store.save(user, validate=False)
        return SuccessResponse(message="Email verified successfully")

    async def update_email(
        self,
        store: UserStore,
        mailer: EmailService,
        user: User,
        new_email: str,
        base_url: str,
    ) -> SuccessResponse:
        existing = await store.find_by_email(new_email)
        if existing is not None and existing.id != user.id:
            raise ConflictError("A user with that email already exists")

        user.email = new_email
        await store.save(user)
        await self.send_verify_email(
            store,
            mailer,
            user,
            base_url,
            intro="Your email has been changed successfully.",
        )
        return SuccessResponse(message="Email updated successfully. Verification email sent!")

    # -- helpers --------------------------------------------------------

    @staticmethod
    def _ensure_not_blocked(user: User) -> None:
        if user.blocked:
            raise AuthorizationError("Your account has been blocked")


# Global auth service instance
auth_service = AuthService()
