import os
import sys

from dotenv import load_dotenv

# Load .env from the project root
load_dotenv()

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid {name}: {raw}") from exc


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./salon.db")
ENV = os.getenv("ENVIRONMENT", os.getenv("ENV", "dev"))
ENV_NORMALIZED = ENV.strip().lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
VERSION = "1.4.0"

# CORS: permissive by default, the SPA and the LINE/Instagram webhooks live on other origins
_cors_env = os.getenv("CORS_ORIGINS", "*")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip()] or ["*"]

# Auth (JWT)
_DEFAULT_JWT_SECRET_KEY = "change-this-salon-secret-key-in-production"
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", _DEFAULT_JWT_SECRET_KEY)
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRE_MINUTES = _env_int("JWT_EXPIRE_MINUTES", 8 * 60)
JWT_ISSUER = os.getenv("JWT_ISSUER", "salon-management-system")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "salon-management-client")

if IS_PROD and JWT_SECRET_KEY == _DEFAULT_JWT_SECRET_KEY:
    print(
        "[SECURITY ERROR] default JWT_SECRET_KEY in production; set JWT_SECRET_KEY to a long random string.",
        file=sys.stderr,
    )
    sys.exit(1)

# Lockout (per account, persisted on the staff row)
LOGIN_MAX_FAILED_ATTEMPTS = _env_int("LOGIN_MAX_FAILED_ATTEMPTS", 5)
LOGIN_LOCK_MINUTES = _env_int("LOGIN_LOCK_MINUTES", 15)

# Request throttles (per IP, in process)
LOGIN_RATE_LIMIT = _env_int("LOGIN_RATE_LIMIT", 5)
LOGIN_RATE_WINDOW_SECONDS = _env_int("LOGIN_RATE_WINDOW_SECONDS", 15 * 60)
API_RATE_LIMIT = _env_int("API_RATE_LIMIT", 100)
API_RATE_WINDOW_SECONDS = _env_int("API_RATE_WINDOW_SECONDS", 15 * 60)

# Peers allowed to set X-Forwarded-For; "*" trusts any peer. Empty means the socket address is used.
_trusted_proxies_env = os.getenv("TRUSTED_PROXIES", "")
TRUSTED_PROXIES = frozenset(item.strip() for item in _trusted_proxies_env.split(",") if item.strip())

# Two-factor
TWO_FACTOR_ISSUER = os.getenv("TWO_FACTOR_ISSUER", "Salon Manager")
TWO_FACTOR_VALID_WINDOW = _env_int("TWO_FACTOR_VALID_WINDOW", 2)
TWO_FACTOR_BACKUP_CODES = _env_int("TWO_FACTOR_BACKUP_CODES", 10)
TWO_FACTOR_CHALLENGE_SECRET = os.getenv("TWO_FACTOR_CHALLENGE_SECRET", "") or JWT_SECRET_KEY
TWO_FACTOR_CHALLENGE_MAX_AGE_SECONDS = _env_int("TWO_FACTOR_CHALLENGE_MAX_AGE_SECONDS", 5 * 60)
TWO_FACTOR_SETUP_MAX_AGE_SECONDS = _env_int("TWO_FACTOR_SETUP_MAX_AGE_SECONDS", 10 * 60)

PASSWORD_MIN_LENGTH = _env_int("PASSWORD_MIN_LENGTH", 8)

RESET_ADMIN_PASSWORD = os.getenv("RESET_ADMIN_PASSWORD", "").strip().lower() in _TRUE_VALUES
