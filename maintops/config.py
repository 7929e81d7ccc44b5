# maintops/config.py
# Environment-aware configuration for the maintenance operations core

import os


def _flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


# Use PostgreSQL in production (from DATABASE_URL env var), SQLite locally
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./maintops.db").strip()

# Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

IS_SQLITE = DATABASE_URL.startswith("sqlite")

# Environment detection
ENV = os.environ.get("ENV", "dev").strip().lower()
IS_PROD = (ENV == "prod")

# Long enough for HS256 so PyJWT accepts it without a key-length warning
DEV_SECRET_KEY = "maintops-local-development-secret-key-not-for-prod"


def resolve_secret_key(env: str, configured: str) -> str:
    """The configured key, or the dev key outside prod. Prod refuses to start without one."""
    if configured:
        return configured
    if env == "prod":
        raise RuntimeError("SECRET_KEY must be set when ENV=prod")
    return DEV_SECRET_KEY


# Bearer credential verification (issuance lives in the auth service)
SECRET_KEY = resolve_secret_key(ENV, os.environ.get("SECRET_KEY", "").strip())
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")

# Identifier formatting
SEQUENCE_WIDTH = int(os.environ.get("SEQUENCE_WIDTH", "6"))

# Write-conflict retries for allocations and transitions
MAX_RETRIES = int(os.environ.get("MAX_RETRIES", "3"))
RETRY_DELAY = float(os.environ.get("RETRY_DELAY", "0.05"))

# Work order lifecycle policy switches
ENFORCE_TRANSITION_TABLE = _flag("ENFORCE_TRANSITION_TABLE")
RESTAMP_COMPLETED_AT = _flag("RESTAMP_COMPLETED_AT")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
