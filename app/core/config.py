import os

from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./storefront.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

# Customer identity (JWT emitido pelo provedor de identidade)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-jwt-secret" if IS_DEV or IS_TEST else "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Admin session
ADMIN_SESSION_SECRET = os.getenv("ADMIN_SESSION_SECRET", "dev-admin-secret" if IS_DEV or IS_TEST else "")
ADMIN_SESSION_MAX_AGE_SECONDS = int(os.getenv("ADMIN_SESSION_MAX_AGE_SECONDS", "604800"))
ADMIN_SESSION_COOKIE_SECURE = _env_flag("ADMIN_SESSION_COOKIE_SECURE", "0" if IS_DEV else "1")
ADMIN_SESSION_COOKIE_SAMESITE = os.getenv(
    "ADMIN_SESSION_COOKIE_SAMESITE",
    "lax" if IS_DEV else "none",
).strip().lower()
if ADMIN_SESSION_COOKIE_SAMESITE not in {"lax", "strict", "none"}:
    ADMIN_SESSION_COOKIE_SAMESITE = "lax" if IS_DEV else "none"
ADMIN_SESSION_COOKIE_DOMAIN = os.getenv("ADMIN_SESSION_COOKIE_DOMAIN", "").strip() or None

# Cart session
CART_SESSION_COOKIE = os.getenv("CART_SESSION_COOKIE", "cart_session")
CART_SESSION_SECRET = os.getenv("CART_SESSION_SECRET", "dev-cart-secret" if IS_DEV or IS_TEST else "")
CART_SESSION_MAX_AGE_SECONDS = int(os.getenv("CART_SESSION_MAX_AGE_SECONDS", str(30 * 24 * 60 * 60)))
CART_SESSION_COOKIE_SECURE = _env_flag("CART_SESSION_COOKIE_SECURE", "0" if IS_DEV or IS_TEST else "1")

# Discount codes admin listing
DISCOUNT_LIST_DEFAULT_LIMIT = int(os.getenv("DISCOUNT_LIST_DEFAULT_LIMIT", "20"))
DISCOUNT_LIST_MAX_LIMIT = int(os.getenv("DISCOUNT_LIST_MAX_LIMIT", "100"))
