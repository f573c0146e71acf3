import os

from flask import current_app, has_app_context


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


_DEV_SECRET_KEY = "dev-secret-b2b-marketplace"


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "marketplace.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", False)

    SECRET_KEY = os.environ.get("SECRET_KEY", _DEV_SECRET_KEY)
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CSRF_ENABLED = _bool_env("CSRF_ENABLED", True)
    RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_SECONDS = _int_env("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 300)
    SECURITY_HEADERS_ENABLED = _bool_env("SECURITY_HEADERS_ENABLED", True)

    QUOTE_VALIDITY_DAYS = _int_env("QUOTE_VALIDITY_DAYS", 7)
    RFQ_DEFAULT_DEADLINE_DAYS = _int_env("RFQ_DEFAULT_DEADLINE_DAYS", 14)
    RFQ_MULTI_QUOTE_ENABLED = _bool_env("RFQ_MULTI_QUOTE_ENABLED", False)
    DEFAULT_MARGIN_PERCENT = _int_env("DEFAULT_MARGIN_PERCENT", 15)
    CATALOG_PAGE_SIZE = _int_env("CATALOG_PAGE_SIZE", 50)

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL is not set for the production environment.")
        if env == "production" and self.SECRET_KEY == _DEV_SECRET_KEY:
            raise RuntimeError("Refusing to run production with the development SECRET_KEY.")


def app_setting(name: str, default=None):
    """Setting from the running app, falling back to the class default outside a request."""
    if has_app_context():
        return current_app.config.get(name, default)
    return getattr(Config, name, default)
