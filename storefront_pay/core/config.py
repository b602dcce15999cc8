import os
import re
from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./storefront_pay.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
PUBLIC_BASE_DOMAIN = os.getenv("PUBLIC_BASE_DOMAIN", "").strip().lower()

# CORS
_cors_env = os.getenv("ORIGENS_CORS", os.getenv("CORS_ORIGINS", ""))
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:8080",
    ]

_cors_origin_regex_env = os.getenv("CORS_ALLOW_ORIGIN_REGEX", "").strip()
if _cors_origin_regex_env:
    CORS_ALLOW_ORIGIN_REGEX = _cors_origin_regex_env
elif not IS_DEV and PUBLIC_BASE_DOMAIN:
    CORS_ALLOW_ORIGIN_REGEX = rf"^https://([a-z0-9-]+\.)?{re.escape(PUBLIC_BASE_DOMAIN)}$"
else:
    CORS_ALLOW_ORIGIN_REGEX = None

# Auth (JWT emitido pelo serviço de identidade)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Mercado Pago (OAuth de produtores + PIX)
MP_CLIENT_ID = os.getenv("MP_CLIENT_ID", "").strip()
MP_CLIENT_SECRET = os.getenv("MP_CLIENT_SECRET", "").strip()
MP_REDIRECT_URI = os.getenv("MP_REDIRECT_URI", "").strip()
MP_STATE_SECRET = os.getenv("MP_STATE_SECRET", "").strip()
# Token global da plataforma, usado enquanto o produtor não conecta a própria conta.
MP_ACCESS_TOKEN = os.getenv("MP_ACCESS_TOKEN", "").strip()
MP_WEBHOOK_URL = os.getenv("MP_WEBHOOK_URL", "").strip()
MP_API_BASE_URL = os.getenv("MP_API_BASE_URL", "https://api.mercadopago.com").rstrip("/")
MP_AUTH_BASE_URL = os.getenv("MP_AUTH_BASE_URL", "https://auth.mercadopago.com.br").rstrip("/")
MP_HTTP_TIMEOUT_SECONDS = float(os.getenv("MP_HTTP_TIMEOUT_SECONDS", "10"))

PIX_EXPIRATION_MINUTES = int(os.getenv("PIX_EXPIRATION_MINUTES", "30"))
OAUTH_STATE_TTL_SECONDS = int(os.getenv("OAUTH_STATE_TTL_SECONDS", "600"))
RECONCILE_PENDING_AFTER_MINUTES = int(os.getenv("RECONCILE_PENDING_AFTER_MINUTES", "10"))
RECONCILE_BATCH_LIMIT = int(os.getenv("RECONCILE_BATCH_LIMIT", "100"))

INTERNAL_API_TOKEN = os.getenv("INTERNAL_API_TOKEN", "").strip()
INTERNAL_ENDPOINTS_ENABLED = _env_flag("INTERNAL_ENDPOINTS_ENABLED", "1")
