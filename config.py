import os

from dotenv import load_dotenv

load_dotenv()

APP_ENV            = os.getenv("APP_ENV", "development")
DATABASE_URL       = os.getenv("DATABASE_URL", "sqlite:///./campus_records.db")
AUTH_SECRET        = os.getenv("AUTH_SECRET")
AUTH_TOKEN_MAX_AGE = int(os.getenv("AUTH_TOKEN_MAX_AGE", str(60 * 60 * 24 * 7)))
LOG_LEVEL          = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR            = os.getenv("LOG_DIR", "logs")

_DEV_SECRET = "dev-only-secret-change-me"


def is_development() -> bool:
    return APP_ENV.strip().lower() == "development"


def get_auth_secret() -> str:
    if AUTH_SECRET:
        return AUTH_SECRET
    if is_development():
        return _DEV_SECRET
    raise ValueError("AUTH_SECRET environment variable is missing")
