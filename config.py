import os
import logging

from utils.env import get_env_str, get_env_bool, get_env_int
from utils.redaction import redact_database_url

logger = logging.getLogger(__name__)

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

# -----------------------------------------------------------------------------
# Dotenv loading (LOCAL ONLY)
# -----------------------------------------------------------------------------
# Tests must be deterministic and must NOT ingest a developer's repo-root .env.
_FLASK_ENV_EARLY = (os.getenv("FLASK_ENV") or "").strip().lower()

if _FLASK_ENV_EARLY not in {"test", "testing"}:
    try:
        from dotenv import load_dotenv
        load_dotenv(dotenv_path=os.path.join(BASE_DIR, ".env"), override=False)
    except ImportError:
        pass

# -----------------------------------------------------------------------------
# Environment / Stage
# -----------------------------------------------------------------------------
def _normalize_stage(raw: str) -> str:
    raw = (raw or "").strip().lower()
    if raw in {"prod", "production"}:
        return "production"
    if raw in {"stage", "staging"}:
        return "staging"
    if raw in {"test", "testing"}:
        return "test"
    return "dev"


FLASK_ENV = (os.getenv("FLASK_ENV", "development") or "development").strip().lower()
APP_STAGE = _normalize_stage(os.getenv("APP_STAGE", "dev"))

IS_TEST = APP_STAGE == "test" or FLASK_ENV in {"test", "testing"}
IS_STAGING = APP_STAGE == "staging"
IS_PRODUCTION = APP_STAGE == "production"
IS_SECURE_ENV = IS_STAGING or IS_PRODUCTION

# -----------------------------------------------------------------------------
# Instance / Storage Paths
# -----------------------------------------------------------------------------
INSTANCE_DIR = get_env_str("INSTANCE_DIR", default=os.path.join(BASE_DIR, "instance"))

try:
    os.makedirs(INSTANCE_DIR, exist_ok=True)
except OSError as e:
    logger.warning(
        f"[Config] Could not create INSTANCE_DIR at {INSTANCE_DIR} ({e}). Falling back to /tmp/instance."
    )
    INSTANCE_DIR = os.path.join("/tmp", "instance")
    os.makedirs(INSTANCE_DIR, exist_ok=True)

UPLOAD_DIR = os.path.join(INSTANCE_DIR, "uploads")

# -----------------------------------------------------------------------------
# URLs
# -----------------------------------------------------------------------------
def _strip_trailing_slash(url: str) -> str:
    return url[:-1] if url.endswith("/") else url


BASE_URL = _strip_trailing_slash(get_env_str("BASE_URL", default="http://localhost:5000"))
PUBLIC_BASE_URL = _strip_trailing_slash(get_env_str("PUBLIC_BASE_URL", default=BASE_URL))

# Storefront (SPA) origin used for Stripe success/cancel redirects
SITE_URL = _strip_trailing_slash(get_env_str("SITE_URL", default="http://localhost:5173"))

if IS_SECURE_ENV:
    for _name, _value in (("PUBLIC_BASE_URL", PUBLIC_BASE_URL), ("SITE_URL", SITE_URL)):
        if not _value.lower().startswith("https://"):
            raise RuntimeError(f"CRITICAL: {_name} must be HTTPS in {APP_STAGE} stage. Got: {_value}")
        if "localhost" in _value or "127.0.0.1" in _value:
            raise RuntimeError(f"CRITICAL: {_name} points at localhost in {APP_STAGE} stage.")

# -----------------------------------------------------------------------------
# Database (Postgres-only)
# -----------------------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required.")

# Normalize postgres:// -> postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)
    os.environ["DATABASE_URL"] = DATABASE_URL

if not DATABASE_URL.startswith("postgresql://"):
    raise ValueError(
        "CRITICAL: DATABASE_URL must be a PostgreSQL URL (postgresql://...). "
        f"Got: {redact_database_url(DATABASE_URL)}."
    )

# -----------------------------------------------------------------------------
# Storage Backend (design images)
# -----------------------------------------------------------------------------
STORAGE_BACKEND = get_env_str("STORAGE_BACKEND", default="local").lower()

if IS_PRODUCTION and STORAGE_BACKEND != "s3":
    raise RuntimeError("CRITICAL: STORAGE_BACKEND must be 's3' in production.")

S3_BUCKET = get_env_str("S3_BUCKET", default="")
S3_PREFIX = get_env_str("S3_PREFIX", default="")
# Public bucket/CDN base. Without it design URLs are presigned.
S3_PUBLIC_BASE_URL = _strip_trailing_slash(get_env_str("S3_PUBLIC_BASE_URL", default=""))

_region = get_env_str("AWS_REGION", default="us-east-1")
if " " in _region or not _region.replace("-", "").isalnum():
    logger.warning(f"[Config] Invalid AWS_REGION detected: '{_region}'. Defaulting to 'us-east-1'.")
    _region = "us-east-1"
AWS_REGION = _region

if STORAGE_BACKEND == "s3" and not S3_BUCKET:
    raise RuntimeError("CRITICAL: S3_BUCKET must be set when STORAGE_BACKEND=s3.")

# -----------------------------------------------------------------------------
# Secrets
# -----------------------------------------------------------------------------
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    if IS_SECURE_ENV:
        raise ValueError(f"SECRET_KEY must be set in {APP_STAGE} environment.")
    SECRET_KEY = "dev-secret-key-change-this"
    logger.warning("[Config] Using default SECRET_KEY for development. DO NOT use in real environments!")

# -----------------------------------------------------------------------------
# Proxy
# -----------------------------------------------------------------------------
TRUST_PROXY_HEADERS = get_env_bool("TRUST_PROXY_HEADERS", default=False)
PROXY_FIX_NUM_PROXIES = get_env_int("PROXY_FIX_NUM_PROXIES", 1)

# -----------------------------------------------------------------------------
# Stripe
# -----------------------------------------------------------------------------
STRIPE_SECRET_KEY = get_env_str("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = get_env_str("STRIPE_WEBHOOK_SECRET", default="")

if IS_SECURE_ENV and not STRIPE_SECRET_KEY:
    raise ValueError(f"Missing STRIPE_SECRET_KEY in {APP_STAGE} environment.")

if STRIPE_SECRET_KEY:
    if IS_STAGING and STRIPE_SECRET_KEY.startswith("sk_live_"):
        raise ValueError("SAFETY RAIL: Live Stripe secret key is forbidden in staging.")
    if IS_PRODUCTION and STRIPE_SECRET_KEY.startswith("sk_test_"):
        raise ValueError("SAFETY RAIL: Test Stripe secret key is forbidden in production.")

STRIPE_PRODUCT_NAME = get_env_str("STRIPE_PRODUCT_NAME", default="EU Wristbands")

# {CHECKOUT_SESSION_ID} is substituted by Stripe
STRIPE_SUCCESS_PATH = "/payment-success?session_id={CHECKOUT_SESSION_ID}"
STRIPE_CANCEL_PATH = "/design-studio?canceled=true"

# -----------------------------------------------------------------------------
# Mail
# -----------------------------------------------------------------------------
# SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, SMTP_USE_TLS, NOTIFY_EMAIL_FROM,
# ADMIN_NOTIFY_EMAIL and ADMIN_DASHBOARD_URL are read at send time by
# services/notifications.py.

# -----------------------------------------------------------------------------
# Limits
# -----------------------------------------------------------------------------
MAX_CONTENT_LENGTH = 16 * 1024 * 1024
RATELIMIT_ENABLED = get_env_bool("RATELIMIT_ENABLED", default=not IS_TEST)

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
LOG_LEVEL = get_env_str("LOG_LEVEL", default="INFO").upper()
if LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
    logger.warning(f"[Config] Unknown LOG_LEVEL '{LOG_LEVEL}'. Using INFO.")
    LOG_LEVEL = "INFO"
