"""Signed session tokens and single-use ephemeral tokens."""
import enum
import hashlib
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt

from ..config import settings
from .exceptions import TokenExpiredError, TokenInvalidError

PASSWORD_RESET_TOKEN_BYTES = 32
VERIFY_EMAIL_TOKEN_BYTES = 28


class TokenClass(str, enum.Enum):
    """Purpose of a signed token; each class has its own secret and lifetime."""

    ACCESS = "access"
    REFRESH = "refresh"
    LOGIN = "login"


@dataclass(frozen=True)
class TokenPayload:
    """Verified claims of a signed token."""

    user_id: str
    token_class: TokenClass
    issued_at: float
    expires_at: float
    session_id: Optional[str] = None
    token_id: Optional[str] = None


class TokenIssuer:
    """Issue and verify signed, self-expiring JWTs."""

    def __init__(
        self,
        secrets_by_class: dict = None,
        lifetimes: dict = None,
        algorithm: str = None,
    ):
        auth = settings.auth
        self.algorithm = algorithm or auth.algorithm
        self._secrets = secrets_by_class or {
            TokenClass.ACCESS: auth.access_secret,
            TokenClass.REFRESH: auth.refresh_secret,
            TokenClass.LOGIN: auth.login_secret,
        }
        self._lifetimes = lifetimes or {
            TokenClass.ACCESS: timedelta(minutes=auth.access_token_expire_minutes),
            TokenClass.REFRESH: timedelta(days=auth.refresh_token_expire_days),
            TokenClass.LOGIN: timedelta(minutes=auth.login_token_expire_minutes),
        }

    def lifetime(self, token_class: TokenClass) -> timedelta:
        return self._lifetimes[token_class]

    def issue(
        self,
        user_id: str,
        token_class: TokenClass,
        session_id: Optional[str] = None,
        token_id: Optional[str] = None,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Create a signed token for ``user_id``.

        ``iat`` keeps sub-second precision so a token issued right after a
        password change is distinguishable from one issued right before it.
        """
        issued_at = time.time()
        expire = datetime.fromtimestamp(issued_at, tz=timezone.utc) + (
            expires_delta or self._lifetimes[token_class]
        )
        to_encode = {
            "sub": str(user_id),
            "type": token_class.value,
            "iat": issued_at,
            "exp": expire,
        }
        if session_id:
            to_encode["sid"] = session_id
        if token_id:
            to_encode["jti"] = token_id
        return jwt.encode(to_encode, self._secrets[token_class], algorithm=self.algorithm)

    def verify(self, token: str, token_class: TokenClass) -> TokenPayload:
        """Verify signature, expiry and class. Expiry is strict, no leeway."""
        try:
            claims = jwt.decode(
                token,
                self._secrets[token_class],
                algorithms=[self.algorithm],
                options={"leeway": 0},
            )
        except ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except JWTError as exc:
            raise TokenInvalidError("Token is invalid") from exc

        if claims.get("type") != token_class.value:
            raise TokenInvalidError("Wrong token type")

        user_id = claims.get("sub")
        issued_at = claims.get("iat")
        if not user_id or issued_at is None:
            raise TokenInvalidError("Token is missing required claims")

        return TokenPayload(
            user_id=user_id,
            token_class=token_class,
            issued_at=float(issued_at),
            expires_at=float(claims["exp"]),
            session_id=claims.get("sid"),
            token_id=claims.get("jti"),
        )


@dataclass(frozen=True)
class EphemeralToken:
    """A single-use token: plaintext goes to the user once, digest is stored."""

    plaintext: str
    digest: str
    expires_at: Optional[datetime] = None


def digest_token(plaintext: str) -> str:
    """Deterministic unsalted digest so the store can be queried by it."""
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def create_ephemeral_token(
    nbytes: int = PASSWORD_RESET_TOKEN_BYTES,
    ttl: Optional[timedelta] = None,
) -> EphemeralToken:
    plaintext = secrets.token_hex(nbytes)
    expires_at = datetime.now(timezone.utc) + ttl if ttl else None
    return EphemeralToken(plaintext=plaintext, digest=digest_token(plaintext), expires_at=expires_at)


def new_session_id() -> str:
    return secrets.token_hex(16)


def new_token_id() -> str:
    return secrets.token_hex(16)


# Global token issuer instance
token_issuer = TokenIssuer()
