# storefront_pay/deps.py
from __future__ import annotations

import hmac
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from storefront_pay.core import config
from storefront_pay.core.database import get_db
from storefront_pay.core.request_context import set_request_context
from storefront_pay.integrations.mercadopago import MercadoPagoClient
from storefront_pay.models.user import User
from storefront_pay.services.auth import decode_access_token
from storefront_pay.services.credentials import CredentialResolver
from storefront_pay.services.errors import PaymentError, ProviderNotConfigured
from storefront_pay.services.state_token import StateTokenSigner

# Token emitido pelo serviço de identidade; não há endpoint de login aqui.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

logger = logging.getLogger(__name__)


def _extract_user_id(payload: Dict[str, Any]) -> Optional[int]:
    """Extrai o user_id do payload do JWT.

    Aceita:
    - sub (padrão JWT) como string/int
    - user_id como string/int (compatibilidade)
    """
    raw = payload.get("sub", None)
    if raw is None:
        raw = payload.get("user_id", None)

    if raw is None:
        return None

    if isinstance(raw, int):
        return raw

    if isinstance(raw, str):
        raw = raw.strip()
        if raw.isdigit():
            return int(raw)

    return None


def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Lê o JWT, valida e retorna o usuário do banco."""
    try:
        payload = decode_access_token(token)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido ou expirado",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = _extract_user_id(payload)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido (sem user_id)",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Usuário não encontrado",
            headers={"WWW-Authenticate": "Bearer"},
        )
    request.state.user = user
    set_request_context(user_id=user.id)
    return user


def get_mercadopago_client() -> MercadoPagoClient:
    return MercadoPagoClient.from_config()


def get_credential_resolver() -> CredentialResolver:
    return CredentialResolver(fallback_access_token=config.MP_ACCESS_TOKEN)


def get_state_signer() -> StateTokenSigner:
    if not config.MP_STATE_SECRET:
        logger.error("MP_STATE_SECRET not configured")
        raise payment_http_error(ProviderNotConfigured())
    return StateTokenSigner(config.MP_STATE_SECRET, ttl_seconds=config.OAUTH_STATE_TTL_SECONDS)


def require_internal_token(x_internal_token: str | None = Header(default=None)) -> None:
    expected = config.INTERNAL_API_TOKEN
    if not config.INTERNAL_ENDPOINTS_ENABLED or not expected:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    if not x_internal_token or not hmac.compare_digest(x_internal_token, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token interno inválido")


def payment_http_error(exc: PaymentError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)
