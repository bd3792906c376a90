"""TOTP second factor."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pyotp

from ..config import settings


@dataclass(frozen=True)
class TwoFactorEnrollment:
    """Shared secret and the otpauth:// URI an authenticator app scans."""

    secret: str
    provisioning_uri: str


class SecondFactorVerifier:
    """Generate per-user TOTP secrets and check submitted codes.

    Codes are checked against the current time step only (no window
    widening), so a code submitted more than one step late fails.
    """

    def __init__(self, issuer: str = None, interval: int = None):
        self.issuer = issuer or settings.auth.totp_issuer
        self.interval = interval or settings.auth.totp_interval

    def generate_secret(self, account_label: str) -> TwoFactorEnrollment:
        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret, interval=self.interval).provisioning_uri(
            name=f"{self.issuer} ({account_label})",
            issuer_name=self.issuer,
        )
        return TwoFactorEnrollment(secret=secret, provisioning_uri=uri)

    def verify_code(self, secret: Optional[str], code: Optional[str], for_time: datetime = None) -> bool:
        if not secret or not code:
            return False
        code = str(code).strip()
        if not code.isdigit():
            return False
        totp = pyotp.TOTP(secret, interval=self.interval)
        if for_time is not None:
            return totp.verify(code, for_time=for_time, valid_window=0)
        return totp.verify(code, valid_window=0)

    def current_code(self, secret: str) -> str:
        return pyotp.TOTP(secret, interval=self.interval).now()


# Global verifier instance
second_factor = SecondFactorVerifier()
