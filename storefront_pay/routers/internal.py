from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront_pay.core import config
from storefront_pay.core.database import get_db
from storefront_pay.core.metrics import payment_metrics, request_metrics
from storefront_pay.deps import (
    get_credential_resolver,
    get_mercadopago_client,
    require_internal_token,
)
from storefront_pay.integrations.mercadopago import MercadoPagoClient
from storefront_pay.services.credentials import CredentialResolver
from storefront_pay.services.reconciliation import sweep_pending_orders

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(require_internal_token)],
    include_in_schema=False,
)


@router.post("/payments/reconcile")
def reconcile_pending_payments(
    older_than_minutes: int = Query(default=config.RECONCILE_PENDING_AFTER_MINUTES, ge=0),
    limit: int = Query(default=config.RECONCILE_BATCH_LIMIT, ge=1, le=1000),
    db: Session = Depends(get_db),
    client: MercadoPagoClient = Depends(get_mercadopago_client),
    resolver: CredentialResolver = Depends(get_credential_resolver),
):
    summary = sweep_pending_orders(
        db,
        client=client,
        resolver=resolver,
        older_than_minutes=older_than_minutes,
        limit=limit,
    )
    return {"ok": True, "checked": sum(summary.values()), "summary": summary}


@router.get("/metrics")
def internal_metrics():
    return {"requests": request_metrics.snapshot(), "payments": payment_metrics.snapshot()}
