from __future__ import annotations

import base64
import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import List, Optional, Sequence, Union

import pyotp
import qrcode

from salon_backend.core.config import TWO_FACTOR_BACKUP_CODES, TWO_FACTOR_ISSUER, TWO_FACTOR_VALID_WINDOW

logger = logging.getLogger(__name__)

TIME_STEP_SECONDS = 30
CODE_DIGITS = 6
SECRET_LENGTH = 32
BACKUP_CODE_LENGTH = 8
BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits

ForTime = Union[int, float, datetime, None]


@dataclass(frozen=True)
class TwoFactorSetup:
    secret: str
    otpauth_uri: str
    qr_image: str
    backup_codes: List[str]
    display_secret: str


@dataclass(frozen=True)
class BackupCodeCheck:
    valid: bool
    remaining_codes: List[str] = field(default_factory=list)


def _normalize_totp(code: Optional[str]) -> str:
    return "".join((code or "").split())


def _normalize_backup_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class TwoFactorService:
    """TOTP second factor with single-use backup codes.

    Everything here is pure: callers persist the secret and the remaining
    backup codes themselves.
    """

    def __init__(
        self,
        *,
        issuer_name: str = TWO_FACTOR_ISSUER,
        valid_window: int = TWO_FACTOR_VALID_WINDOW,
        backup_code_count: int = TWO_FACTOR_BACKUP_CODES,
    ) -> None:
        self.issuer_name = issuer_name
        self.valid_window = valid_window
        self.backup_code_count = backup_code_count

    def setup(self, identity_label: str, issuer_name: Optional[str] = None) -> TwoFactorSetup:
        issuer = issuer_name or self.issuer_name
        secret = pyotp.random_base32(length=SECRET_LENGTH)
        uri = self.provisioning_uri(secret, identity_label, issuer)
        return TwoFactorSetup(
            secret=secret,
            otpauth_uri=uri,
            qr_image=self.render_qr_data_url(uri),
            backup_codes=self.generate_backup_codes(),
            display_secret=self.format_secret_for_display(secret),
        )

    @staticmethod
    def provisioning_uri(secret: str, identity_label: str, issuer_name: str) -> str:
        return pyotp.TOTP(secret, interval=TIME_STEP_SECONDS).provisioning_uri(
            name=identity_label, issuer_name=issuer_name
        )

    @staticmethod
    def render_qr_data_url(text: str) -> str:
        img = qrcode.make(text)
        buf = BytesIO()
        img.save(buf, "PNG")
        return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")

    def regenerate_qr(self, secret: str, identity_label: str, issuer_name: Optional[str] = None) -> str:
        return self.render_qr_data_url(self.provisioning_uri(secret, identity_label, issuer_name or self.issuer_name))

    def generate_backup_codes(self, count: Optional[int] = None) -> List[str]:
        total = self.backup_code_count if count is None else count
        codes: List[str] = []
        while len(codes) < total:
            code = "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(BACKUP_CODE_LENGTH))
            if code not in codes:
                codes.append(code)
        return codes

    def verify_code(
        self,
        code: Optional[str],
        secret: Optional[str],
        valid_window: Optional[int] = None,
        *,
        for_time: ForTime = None,
    ) -> bool:
        normalized = _normalize_totp(code)
        if not secret or not normalized:
            return False
        if len(normalized) != CODE_DIGITS or not normalized.isdigit():
            return False
        window = self.valid_window if valid_window is None else valid_window
        try:
            totp = pyotp.TOTP(secret, interval=TIME_STEP_SECONDS)
            if for_time is None:
                return totp.verify(normalized, valid_window=window)
            return totp.verify(normalized, for_time=for_time, valid_window=window)
        except ValueError:
            # pyotp raises binascii.Error (a ValueError) for a malformed secret
            logger.warning("TOTP verification failed: malformed secret")
            return False

    @staticmethod
    def verify_backup_code(code: Optional[str], remaining_codes: Sequence[str]) -> BackupCodeCheck:
        codes = list(remaining_codes or [])
        normalized = _normalize_backup_code(code)
        if not normalized or normalized not in codes:
            return BackupCodeCheck(valid=False, remaining_codes=codes)
        index = codes.index(normalized)
        return BackupCodeCheck(valid=True, remaining_codes=codes[:index] + codes[index + 1:])

    @staticmethod
    def current_code(secret: str, *, for_time: ForTime = None) -> str:
        totp = pyotp.TOTP(secret, interval=TIME_STEP_SECONDS)
        if for_time is None:
            return totp.now()
        return totp.at(for_time)

    @staticmethod
    def time_remaining(now: Optional[float] = None) -> int:
        current = int(time.time() if now is None else now)
        return TIME_STEP_SECONDS - (current % TIME_STEP_SECONDS)

    def validate_setup(self, secret: str, test_code: str) -> bool:
        if not secret or not test_code:
            return False
        return self.verify_code(test_code, secret)

    @staticmethod
    def format_secret_for_display(secret: str) -> str:
        return " ".join(secret[i:i + 4] for i in range(0, len(secret), 4)) or secret


two_factor_service = TwoFactorService()
