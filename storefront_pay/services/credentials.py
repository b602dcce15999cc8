from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from storefront_pay.models.tenant import Tenant
from storefront_pay.services.errors import NoCredentialAvailable, TenantNotFound

logger = logging.getLogger(__name__)

SOURCE_TENANT = "tenant"
SOURCE_PLATFORM = "platform"


@dataclass(frozen=True)
class CredentialBundle:
    access_token: str
    refresh_token: str
    mp_user_id: str | None
    expires_at: datetime


@dataclass(frozen=True)
class ResolvedCredential:
    access_token: str
    source: str

    def __repr__(self) -> str:
        return f"ResolvedCredential(source={self.source!r}, access_token='***')"


def get_tenant(db: Session, tenant_id: int) -> Tenant | None:
    return db.query(Tenant).filter(Tenant.id == tenant_id).first()


def get_tenant_for_user(db: Session, user_id: int) -> Tenant | None:
    return db.query(Tenant).filter(Tenant.user_id == user_id).first()


def update_tenant_credentials(
    db: Session,
    *,
    tenant_id: int,
    owner_user_id: int,
    bundle: CredentialBundle | None,
) -> int:
    """Grava (ou limpa, com ``bundle=None``) todas as credenciais num único UPDATE.

    O filtro por ``user_id`` garante que o dono do tenant é o mesmo usuário da sessão.
    Retorna o número de linhas afetadas.
    """
    if bundle is None:
        values = {
            Tenant.mp_connected: False,
            Tenant.mp_user_id: None,
            Tenant.mp_access_token: None,
            Tenant.mp_refresh_token: None,
            Tenant.mp_token_expires_at: None,
        }
    else:
        values = {
            Tenant.mp_connected: True,
            Tenant.mp_user_id: bundle.mp_user_id,
            Tenant.mp_access_token: bundle.access_token,
            Tenant.mp_refresh_token: bundle.refresh_token,
            Tenant.mp_token_expires_at: bundle.expires_at,
        }

    affected = (
        db.query(Tenant)
        .filter(Tenant.id == tenant_id, Tenant.user_id == owner_user_id)
        .update(values, synchronize_session=False)
    )
    db.commit()
    return int(affected or 0)


class CredentialResolver:
    """Escolhe o token do Mercado Pago para chamadas em nome de um produtor.

    Prefere o token do próprio produtor quando conectado; senão usa o token
    global da plataforma. Quem chama não deve presumir qual dos dois veio.
    """

    def __init__(self, fallback_access_token: str | None = None) -> None:
        self._fallback_access_token = (fallback_access_token or "").strip() or None

    def resolve(self, db: Session, tenant_id: int) -> ResolvedCredential:
        tenant = get_tenant(db, tenant_id)
        if tenant is None:
            raise TenantNotFound()
        return self.resolve_for(tenant)

    def resolve_for(self, tenant: Tenant | None) -> ResolvedCredential:
        if tenant is not None and tenant.mp_connected and (tenant.mp_access_token or "").strip():
            return ResolvedCredential(access_token=tenant.mp_access_token.strip(), source=SOURCE_TENANT)
        if self._fallback_access_token:
            logger.info(
                "using platform mercadopago credential tenant_id=%s",
                getattr(tenant, "id", None),
            )
            return ResolvedCredential(access_token=self._fallback_access_token, source=SOURCE_PLATFORM)
        raise NoCredentialAvailable()
