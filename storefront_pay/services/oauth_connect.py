from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy.orm import Session

from storefront_pay.integrations.mercadopago import (
    MercadoPagoClient,
    MercadoPagoHTTPError,
    MercadoPagoUnavailable,
)
from storefront_pay.models.tenant import Tenant
from storefront_pay.models.user import User
from storefront_pay.services.credentials import (
    CredentialBundle,
    get_tenant_for_user,
    update_tenant_credentials,
)
from storefront_pay.services.errors import (
    ExchangeFailed,
    Forbidden,
    PersistFailed,
    ProviderNotConfigured,
    StateUserMismatch,
    TenantNotFound,
)
from storefront_pay.services.orders import as_aware
from storefront_pay.services.state_token import StateTokenSigner, new_oauth_state

logger = logging.getLogger(__name__)

ADMIN_PLAN = "admin"
ADMIN_ROLE = "admin"
MIN_TOKEN_LIFETIME_SECONDS = 60


def _is_platform_admin(user: User, tenant: Tenant | None) -> bool:
    if (getattr(user, "role", "") or "").strip().lower() == ADMIN_ROLE:
        return True
    return tenant is not None and (tenant.plan or "").strip().lower() == ADMIN_PLAN


def _resolve_caller_tenant(db: Session, user: User) -> Tenant:
    tenant = get_tenant_for_user(db, user.id)
    if _is_platform_admin(user, tenant):
        raise Forbidden()
    if tenant is None:
        raise TenantNotFound()
    return tenant


def _ensure_configured(client: MercadoPagoClient, *, needs_secret: bool) -> None:
    missing = [
        name
        for name, value in (
            ("MP_CLIENT_ID", client.client_id),
            ("MP_REDIRECT_URI", client.redirect_uri),
            ("MP_CLIENT_SECRET", client.client_secret if needs_secret else "set"),
        )
        if not value
    ]
    if missing:
        logger.error("mercadopago oauth not configured missing=%s", ",".join(missing))
        raise ProviderNotConfigured()


def start_connect(
    db: Session,
    user: User,
    *,
    client: MercadoPagoClient,
    signer: StateTokenSigner,
    now: float | None = None,
) -> str:
    """Monta a URL de autorização do Mercado Pago para o produtor logado."""
    tenant = _resolve_caller_tenant(db, user)
    _ensure_configured(client, needs_secret=False)

    state = signer.issue(new_oauth_state(tenant_id=tenant.id, user_id=user.id, now=now))
    logger.info("mercadopago connect started tenant_id=%s user_id=%s", tenant.id, user.id)
    return client.authorization_url(state)


def _exchange(client: MercadoPagoClient, code: str) -> dict[str, Any]:
    try:
        return client.exchange_code(code)
    except MercadoPagoHTTPError as exc:
        logger.warning("mercadopago oauth exchange rejected status=%s", exc.status_code)
        detail = "Falha ao conectar Mercado Pago"
        if exc.reason:
            detail = f"{detail}: {exc.reason}"
        raise ExchangeFailed(detail, extra={"provider_status": exc.status_code}) from exc
    except MercadoPagoUnavailable as exc:
        raise ExchangeFailed("Mercado Pago indisponível, tente novamente") from exc


def complete_connect(
    db: Session,
    user: User,
    *,
    code: str,
    state: str,
    client: MercadoPagoClient,
    signer: StateTokenSigner,
    now: float | None = None,
) -> CredentialBundle:
    """Valida o state, troca o ``code`` por tokens e grava no produtor do state."""
    _ensure_configured(client, needs_secret=True)
    payload = signer.verify(state, now=now)
    if payload.user_id != user.id:
        logger.warning(
            "mercadopago state user mismatch state_user_id=%s session_user_id=%s",
            payload.user_id,
            user.id,
        )
        raise StateUserMismatch()

    token_data = _exchange(client, code)
    access_token = str(token_data.get("access_token") or "").strip()
    refresh_token = str(token_data.get("refresh_token") or "").strip()
    if not access_token or not refresh_token:
        raise ExchangeFailed("Mercado Pago não retornou tokens")

    try:
        expires_in = int(token_data.get("expires_in") or 0)
    except (TypeError, ValueError):
        expires_in = 0
    issued_at = datetime.fromtimestamp(now if now is not None else time.time(), tz=timezone.utc)
    mp_user_id = token_data.get("user_id")
    bundle = CredentialBundle(
        access_token=access_token,
        refresh_token=refresh_token,
        mp_user_id=str(mp_user_id) if mp_user_id is not None else None,
        expires_at=issued_at + timedelta(seconds=max(MIN_TOKEN_LIFETIME_SECONDS, expires_in)),
    )

    affected = update_tenant_credentials(
        db,
        tenant_id=payload.tenant_id,
        owner_user_id=user.id,
        bundle=bundle,
    )
    if affected != 1:
        logger.error(
            "mercadopago credentials not saved tenant_id=%s user_id=%s affected=%s",
            payload.tenant_id,
            user.id,
            affected,
        )
        raise PersistFailed("Falha ao salvar tokens no produtor")

    logger.info("mercadopago connected tenant_id=%s mp_user_id=%s", payload.tenant_id, bundle.mp_user_id)
    return bundle


def disconnect(db: Session, user: User) -> None:
    """Apaga as credenciais localmente; a autorização continua ativa no Mercado Pago."""
    tenant = _resolve_caller_tenant(db, user)
    affected = update_tenant_credentials(db, tenant_id=tenant.id, owner_user_id=user.id, bundle=None)
    if affected != 1:
        raise PersistFailed("Falha ao desconectar Mercado Pago")
    logger.info("mercadopago disconnected tenant_id=%s", tenant.id)


def connection_status(db: Session, user: User) -> dict[str, Any]:
    tenant = _resolve_caller_tenant(db, user)
    expires_at = as_aware(tenant.mp_token_expires_at)
    return {
        "tenant_id": tenant.id,
        "connected": bool(tenant.mp_connected),
        "mp_user_id": tenant.mp_user_id,
        "expires_at": expires_at.isoformat() if expires_at else None,
    }
