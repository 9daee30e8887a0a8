from __future__ import annotations

import hashlib
import hmac
import re

import bcrypt

from salon_backend.core.config import PASSWORD_MIN_LENGTH

PBKDF2_PREFIX = "pbkdf2$"
BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
BCRYPT_MAX_BYTES = 72


def _normalize_password_for_bcrypt(password: str) -> bytes:
    """bcrypt only looks at the first 72 bytes; newer releases raise past that."""
    pw = (password or "").encode("utf-8")
    if len(pw) <= BCRYPT_MAX_BYTES:
        return pw
    return pw[:BCRYPT_MAX_BYTES]


def _pbkdf2_hash(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)


def password_looks_hashed(value: str) -> bool:
    return value.startswith((PBKDF2_PREFIX, *BCRYPT_PREFIXES))


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(_normalize_password_for_bcrypt(password), bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash or password is None:
        return False

    # Rows imported from the legacy store: pbkdf2$<iterations>$<salt hex>$<digest hex>
    if password_hash.startswith(PBKDF2_PREFIX):
        try:
            _, iter_str, salt_hex, digest_hex = password_hash.split("$", 3)
            iterations = int(iter_str)
            salt = bytes.fromhex(salt_hex)
            expected = bytes.fromhex(digest_hex)
        except ValueError:
            return False
        computed = _pbkdf2_hash(password, salt, iterations)
        return hmac.compare_digest(computed, expected)

    try:
        return bcrypt.checkpw(_normalize_password_for_bcrypt(password), password_hash.encode("utf-8"))
    except ValueError:
        return False


def password_strength_errors(password: str) -> list[str]:
    errors = []
    if len(password or "") < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if not re.search(r"[A-Za-z]", password or ""):
        errors.append("Password must contain a letter")
    if not re.search(r"\d", password or ""):
        errors.append("Password must contain a digit")
    return errors
