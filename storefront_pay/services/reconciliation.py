"""Conciliação dos pedidos com o estado real dos pagamentos no Mercado Pago.

O corpo do webhook é só um aviso ("o pagamento X pode ter mudado"): status e
valores sempre vêm de uma nova consulta ao provedor com a credencial do
produtor. Não há lock entre requisições; a convergência depende de
(a) ``paid`` nunca ser desfeito, (b) a escrita ser idempotente e (c) o
provedor ser consultado a cada notificação.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

from storefront_pay.core.metrics import payment_metrics
from storefront_pay.integrations.mercadopago import (
    PROVIDER_NAME,
    MercadoPagoClient,
    MercadoPagoHTTPError,
    MercadoPagoUnavailable,
)
from storefront_pay.models.order import Order
from storefront_pay.services.credentials import CredentialResolver, get_tenant
from storefront_pay.services.errors import NoCredentialAvailable
from storefront_pay.services.order_events import emit_order_status_changed, emit_payment_status_changed
from storefront_pay.services.order_status import PROMOTABLE_ON_PAYMENT, STATUS_CONFIRMED, promote_on_payment
from storefront_pay.services.orders import get_order_by_payment_id, update_order_payment, utcnow
from storefront_pay.services.pix_charges import parse_provider_datetime, transaction_data

logger = logging.getLogger(__name__)

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_CANCELLED = "cancelled"
PAYMENT_EXPIRED = "expired"

OUTCOME_IGNORED_NO_ID = "ignored_no_id"
OUTCOME_IGNORED_UNKNOWN_CHARGE = "ignored_unknown_charge"
OUTCOME_IGNORED_NO_CREDENTIAL = "ignored_no_credential"
OUTCOME_IGNORED_FETCH_FAILED = "ignored_fetch_failed"
OUTCOME_ALREADY_PAID = "already_paid"
OUTCOME_APPLIED = "applied"

_CANCELLED_PROVIDER_STATUSES = {"cancelled", "rejected", "refunded", "charged_back"}


def map_provider_status(status: str | None, status_detail: str | None = None) -> str:
    s = str(status or "").strip().lower()
    d = str(status_detail or "").strip().lower()

    if s == "approved":
        return PAYMENT_PAID
    if s in {"pending", "in_process"}:
        return PAYMENT_PENDING
    if s in _CANCELLED_PROVIDER_STATUSES:
        return PAYMENT_CANCELLED
    if s == "expired" or "expired" in d:
        return PAYMENT_EXPIRED
    return PAYMENT_PENDING


def _clean_id(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def _from_body_data_id(body: Mapping[str, Any], _query: Mapping[str, Any]) -> Optional[str]:
    data = body.get("data")
    return _clean_id(data.get("id")) if isinstance(data, Mapping) else None


def _from_body_data_underscore_id(body: Mapping[str, Any], _query: Mapping[str, Any]) -> Optional[str]:
    return _clean_id(body.get("data_id"))


def _from_body_id(body: Mapping[str, Any], _query: Mapping[str, Any]) -> Optional[str]:
    return _clean_id(body.get("id"))


def _from_query_data_id(_body: Mapping[str, Any], query: Mapping[str, Any]) -> Optional[str]:
    return _clean_id(query.get("data.id"))


def _from_query_id(_body: Mapping[str, Any], query: Mapping[str, Any]) -> Optional[str]:
    return _clean_id(query.get("id"))


Extractor = Callable[[Mapping[str, Any], Mapping[str, Any]], Optional[str]]

# Ordem de prioridade: o primeiro que encontrar um id vence.
PAYMENT_ID_EXTRACTORS: tuple[tuple[str, Extractor], ...] = (
    ("body.data.id", _from_body_data_id),
    ("body.data_id", _from_body_data_underscore_id),
    ("body.id", _from_body_id),
    ("query.data.id", _from_query_data_id),
    ("query.id", _from_query_id),
)


def extract_payment_id(body: Any, query: Mapping[str, Any] | None = None) -> tuple[str | None, str | None]:
    """Retorna ``(payment_id, fonte)`` ou ``(None, None)`` quando nada foi encontrado."""
    safe_body: Mapping[str, Any] = body if isinstance(body, Mapping) else {}
    safe_query: Mapping[str, Any] = query or {}
    for source, extractor in PAYMENT_ID_EXTRACTORS:
        payment_id = extractor(safe_body, safe_query)
        if payment_id:
            return payment_id, source
    return None, None


def _outcome(outcome: str, payment_id: str | None = None) -> str:
    payment_metrics.increment("webhook", outcome)
    logger.info("mercadopago notification outcome=%s", outcome, extra={"payment_id": payment_id, "outcome": outcome})
    return outcome


def reconcile_order(
    db: Session,
    order: Order,
    *,
    client: MercadoPagoClient,
    resolver: CredentialResolver,
    payment_id: str | None = None,
) -> str:
    """Consulta o pagamento do pedido no provedor e aplica o status mapeado."""
    payment_id = payment_id or order.payment_id
    if order.payment_status == PAYMENT_PAID:
        return _outcome(OUTCOME_ALREADY_PAID, payment_id)

    try:
        credential = resolver.resolve_for(get_tenant(db, order.tenant_id))
    except NoCredentialAvailable:
        logger.error("no mercadopago credential for order_id=%s tenant_id=%s", order.id, order.tenant_id)
        return _outcome(OUTCOME_IGNORED_NO_CREDENTIAL, payment_id)

    try:
        payment = client.get_payment(credential.access_token, payment_id)
    except (MercadoPagoHTTPError, MercadoPagoUnavailable) as exc:
        logger.warning("mercadopago payment fetch failed order_id=%s error=%s", order.id, exc)
        return _outcome(OUTCOME_IGNORED_FETCH_FAILED, payment_id)

    new_payment_status = map_provider_status(payment.get("status"), payment.get("status_detail"))

    # Releitura: outro webhook pode ter confirmado o pagamento durante a consulta.
    db.refresh(order)
    if order.payment_status == PAYMENT_PAID:
        if new_payment_status != PAYMENT_PAID:
            logger.warning(
                "ignoring downgrade of paid order order_id=%s provider_status=%s",
                order.id,
                payment.get("status"),
            )
        return _outcome(OUTCOME_ALREADY_PAID, payment_id)

    previous_status = order.status
    previous_payment_status = order.payment_status
    fields: dict[str, Any] = {
        "payment_provider": PROVIDER_NAME,
        "payment_id": str(payment.get("id") or payment_id),
        "payment_status": new_payment_status,
    }
    if new_payment_status != PAYMENT_PAID:
        # Um "paid" gravado entre a releitura e o UPDATE continua valendo.
        fields["payment_status"] = case(
            (Order.payment_status == PAYMENT_PAID, Order.payment_status),
            else_=new_payment_status,
        )
    tx = transaction_data(payment)
    if tx.get("qr_code"):
        fields["pix_qr_code"] = tx["qr_code"]
    if tx.get("qr_code_base64"):
        fields["pix_qr_code_base64"] = tx["qr_code_base64"]
    if tx.get("ticket_url"):
        fields["pix_ticket_url"] = tx["ticket_url"]
    provider_expires_at = parse_provider_datetime(payment.get("date_of_expiration"))
    if provider_expires_at:
        fields["pix_expires_at"] = provider_expires_at

    if new_payment_status == PAYMENT_PAID:
        fields["paid_at"] = parse_provider_datetime(payment.get("date_approved")) or utcnow()
        # Só new/awaiting_confirmation sobem para confirmed, conferido no próprio UPDATE.
        fields["status"] = case(
            (Order.status.in_(PROMOTABLE_ON_PAYMENT), STATUS_CONFIRMED),
            else_=Order.status,
        )
        if promote_on_payment(order.status) != STATUS_CONFIRMED:
            logger.info("paid order keeps lifecycle status order_id=%s status=%s", order.id, order.status)

    if not update_order_payment(db, order.id, fields):
        logger.warning("order vanished during reconciliation order_id=%s", order.id)
        return _outcome(OUTCOME_IGNORED_UNKNOWN_CHARGE, payment_id)

    db.refresh(order)
    emit_payment_status_changed(order, previous_payment_status)
    emit_order_status_changed(order, previous_status)
    return _outcome(OUTCOME_APPLIED, payment_id)


def handle_notification(
    db: Session,
    body: Any,
    query: Mapping[str, Any] | None,
    *,
    client: MercadoPagoClient,
    resolver: CredentialResolver,
) -> str:
    payment_id, source = extract_payment_id(body, query)
    if not payment_id:
        logger.warning("mercadopago notification without payment id")
        return _outcome(OUTCOME_IGNORED_NO_ID)

    order = get_order_by_payment_id(db, payment_id)
    if order is None:
        logger.warning("no order for mercadopago payment source=%s", source, extra={"payment_id": payment_id})
        return _outcome(OUTCOME_IGNORED_UNKNOWN_CHARGE, payment_id)

    return reconcile_order(db, order, client=client, resolver=resolver, payment_id=payment_id)


def sweep_pending_orders(
    db: Session,
    *,
    client: MercadoPagoClient,
    resolver: CredentialResolver,
    older_than_minutes: int = 10,
    limit: int = 100,
    now: datetime | None = None,
) -> dict[str, int]:
    """Reconcilia pedidos PIX pendentes há mais de ``older_than_minutes``.

    Cobre webhooks perdidos; cada pedido passa pelo mesmo caminho de uma
    notificação. Retorna a contagem por desfecho.
    """
    cutoff = (now or utcnow()) - timedelta(minutes=older_than_minutes)
    orders = (
        db.query(Order)
        .filter(
            Order.payment_status == PAYMENT_PENDING,
            Order.payment_id.isnot(None),
            Order.created_at <= cutoff,
        )
        .order_by(Order.created_at)
        .limit(limit)
        .all()
    )

    summary: dict[str, int] = {}
    for order in orders:
        outcome = reconcile_order(db, order, client=client, resolver=resolver)
        summary[outcome] = summary.get(outcome, 0) + 1
    logger.info("pending pix sweep finished checked=%s summary=%s", len(orders), summary)
    return summary
