import os

from dotenv import load_dotenv

load_dotenv()


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return int(raw)
    except Exception:
        return int(default)


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "1" if default else "0").strip().lower()
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return bool(default)


class Settings:
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./bizops.db")
    SEED_DEFAULTS = _get_bool("SEED_DEFAULTS", True)

    BUSINESS_NAME = os.getenv("BUSINESS_NAME", "Fluid Detailing").strip()
    BUSINESS_DESCRIPTION = os.getenv("BUSINESS_DESCRIPTION", "an auto detailing business").strip()
    CURRENCY_LABEL = os.getenv("CURRENCY_LABEL", "CAD").strip().upper()

    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
    ADMIN_PASSWORD_HASH = os.getenv("ADMIN_PASSWORD_HASH", "").strip()
    ADMIN_COOKIE_NAME = os.getenv("ADMIN_COOKIE_NAME", "admin_session").strip()
    ADMIN_SESSION_HOURS = _get_int("ADMIN_SESSION_HOURS", 24)
    SESSION_JANITOR_MINUTES = _get_int("SESSION_JANITOR_MINUTES", 60)

    GENERATION_API_URL = os.getenv(
        "GENERATION_API_URL", "https://generativelanguage.googleapis.com/v1beta"
    ).strip()
    GENERATION_API_KEY = os.getenv("GENERATION_API_KEY", os.getenv("GEMINI_API_KEY", "")).strip()
    GENERATION_MODEL = os.getenv("GENERATION_MODEL", "gemini-1.5-flash").strip()
    GENERATION_TIMEOUT_SECONDS = _get_int("GENERATION_TIMEOUT_SECONDS", 60)

    GALLERY_DIR = os.getenv("GALLERY_DIR", "./gallery").strip()
    GALLERY_MAX_UPLOAD_MB = _get_int("GALLERY_MAX_UPLOAD_MB", 50)

    SECURITY_HEADERS_ENABLED = _get_bool("SECURITY_HEADERS_ENABLED", True)

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()


settings = Settings()
