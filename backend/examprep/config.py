from dotenv import load_dotenv
import os

load_dotenv()


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _as_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


SECRET = os.getenv("SECRET", "change-me")
DATABASE_URL = os.getenv("DATABASE_URL")
SCHEMA_SEARCH_PATH = os.getenv("SCHEMA_SEARCH_PATH")
JWT_LIFETIME_SECONDS = _as_int(os.getenv("JWT_LIFETIME_SECONDS"), 86400)

SQL_ECHO = _as_bool(os.getenv("SQL_ECHO"))
DEBUG = _as_bool(os.getenv("DEBUG"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_default_origins = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", _default_origins).split(",") if o.strip()]

MEDIA_ROOT = os.path.abspath(
    os.getenv("MEDIA_ROOT", os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "..", "media"))
)
MEDIA_BASE_URL = os.getenv("MEDIA_BASE_URL", "/media").rstrip("/")

# 24 random bytes is the floor for session tokens
SESSION_TOKEN_BYTES = max(_as_int(os.getenv("SESSION_TOKEN_BYTES"), 24), 24)

AUTO_SUBMIT_INTERVAL_SECONDS = _as_int(os.getenv("AUTO_SUBMIT_INTERVAL_SECONDS"), 0)
AUTO_SUBMIT_GRACE_SECONDS = _as_int(os.getenv("AUTO_SUBMIT_GRACE_SECONDS"), 60)
