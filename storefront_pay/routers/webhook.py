import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from storefront_pay.core.database import get_db
from storefront_pay.deps import get_credential_resolver, get_mercadopago_client
from storefront_pay.integrations.mercadopago import MercadoPagoClient
from storefront_pay.services.credentials import CredentialResolver
from storefront_pay.services.reconciliation import handle_notification

router = APIRouter(prefix="/api/payments/mercadopago", tags=["mercadopago-webhook"])
logger = logging.getLogger(__name__)


def _parse_body(raw: bytes) -> Any:
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("mercadopago webhook with non-json body size=%s", len(raw))
        return {}


@router.get("/webhook")
def webhook_reachability():
    # O painel do Mercado Pago testa a URL com GET.
    return {"ok": True}


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    db: Session = Depends(get_db),
    client: MercadoPagoClient = Depends(get_mercadopago_client),
    resolver: CredentialResolver = Depends(get_credential_resolver),
):
    """Sempre responde 200: falhas ficam só no log e a conciliação converge
    na próxima notificação ou na varredura de pendentes."""
    try:
        body = _parse_body(await request.body())
        query = dict(request.query_params)
        outcome = await run_in_threadpool(
            handle_notification,
            db,
            body,
            query,
            client=client,
            resolver=resolver,
        )
    except Exception:
        logger.exception("mercadopago webhook failed")
        db.rollback()
        return {"ok": True}
    return {"ok": True, "outcome": outcome}
