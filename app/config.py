# ----------------------------------------------------------------
# Import configuration variables to be used throughout the project
# ----------------------------------------------------------------
import os
from dotenv import load_dotenv

# Load .env (allow container env to override file values)
load_dotenv(override=True)


def _rstrip_slash(s: str) -> str:
    return (s or "").rstrip("/")


def _get_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "on", "y"}


def _get_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, "") or default)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, "") or default)
    except ValueError:
        return default


class Settings:
    # ── TPOS (external catalog) ──────────────────────────────────────────────
    TPOS_BASE_URL: str = _rstrip_slash(os.getenv("TPOS_BASE_URL", "https://tomato.tpos.vn"))
    TPOS_BEARER_TOKEN: str = os.getenv("TPOS_BEARER_TOKEN", "")
    TPOS_TIMEOUT: float = _get_float("TPOS_TIMEOUT", 30.0)
    TPOS_VERIFY_SSL: bool = _get_bool("TPOS_VERIFY_SSL", True)

    # Prices are entered in thousands (VND); the catalog stores the full amount
    PRICE_SCALE: int = _get_int("PRICE_SCALE", 1000)

    # Source image download (base64 upload to TPOS)
    IMAGE_FETCH_RETRIES: int = _get_int("IMAGE_FETCH_RETRIES", 2)
    IMAGE_FETCH_RETRY_DELAY: float = _get_float("IMAGE_FETCH_RETRY_DELAY", 1.0)

    # ── Batch progress polling ───────────────────────────────────────────────
    POLL_INITIAL_INTERVAL: float = _get_float("POLL_INITIAL_INTERVAL", 1.0)
    POLL_BACKOFF: float = _get_float("POLL_BACKOFF", 1.2)
    POLL_MAX_INTERVAL: float = _get_float("POLL_MAX_INTERVAL", 3.0)
    POLL_MAX_ATTEMPTS: int = _get_int("POLL_MAX_ATTEMPTS", 60)  # ~2 minutes

    # ── Background batch worker ──────────────────────────────────────────────
    BATCH_MAX_CONCURRENT: int = _get_int("BATCH_MAX_CONCURRENT", 3)
    BATCH_MAX_RETRIES: int = _get_int("BATCH_MAX_RETRIES", 2)
    BATCH_RATE_LIMIT_DELAY: float = _get_float("BATCH_RATE_LIMIT_DELAY", 2.0)
    STUCK_ITEM_MINUTES: int = _get_int("STUCK_ITEM_MINUTES", 5)

    # ── Database ─────────────────────────────────────────────────────────────
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    # ── Admin Panel ──────────────────────────────────────────────────────────
    ADMIN_USER: str = os.getenv("ADMIN_USER", "admin")
    ADMIN_PASS: str = os.getenv("ADMIN_PASS", "changeme")

    # ── CORS ─────────────────────────────────────────────────────────────────
    # Comma-separated list in .env, e.g. "https://example.com, https://foo.bar"
    CORS_ORIGINS: list[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


settings = Settings()
