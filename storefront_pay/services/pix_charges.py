from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

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
from storefront_pay.services.errors import (
    ChargeFailed,
    InvalidAmount,
    NoQrReturned,
    OrderAlreadyPaid,
    OrderNotFound,
    PaymentError,
    PersistFailed,
    ProviderUnavailable,
    TenantMismatch,
)
from storefront_pay.services.order_events import emit_order_status_changed, emit_payment_status_changed
from storefront_pay.services.order_status import STATUS_AWAITING_CONFIRMATION, STATUS_NEW
from storefront_pay.services.orders import get_order, update_order_payment, utcnow

logger = logging.getLogger(__name__)

PIX_EXPIRATION_MINUTES = 30
PLACEHOLDER_PAYER_EMAIL = "cliente@exemplo.com"
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class PixCharge:
    order_id: int
    charge_id: str
    qr_code: str | None
    qr_code_base64: str | None
    expires_at: datetime
    ticket_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat()
        return data


def idempotency_key_for(order_id: int) -> str:
    return f"pix:{order_id}"


def _charge_amount(total: Any) -> Decimal:
    try:
        amount = Decimal(str(total))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidAmount() from exc
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount()
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _payer_email(raw: str | None) -> str:
    email = (raw or "").strip().lower()
    return email if _EMAIL_RE.match(email) else PLACEHOLDER_PAYER_EMAIL


def _format_provider_datetime(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds")


def parse_provider_datetime(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = f"{raw[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        logger.warning("unparseable provider datetime value=%s", value)
        return None
    # O provedor responde em -04:00; gravamos sempre em UTC.
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def transaction_data(payment: dict[str, Any]) -> dict[str, Any]:
    point = payment.get("point_of_interaction") or {}
    data = point.get("transaction_data") if isinstance(point, dict) else None
    return data if isinstance(data, dict) else {}


def build_payment_request(
    *,
    order: Any,
    store_name: str | None,
    amount: Decimal,
    display_number: str | None,
    expires_at: datetime,
    notification_url: str | None = None,
) -> dict[str, Any]:
    reference = order.display_number or display_number or str(order.id)
    payload: dict[str, Any] = {
        "transaction_amount": float(amount),
        "description": f"Pedido {reference} - {store_name or 'Loja'}".strip(),
        "payment_method_id": "pix",
        "payer": {
            "email": _payer_email(order.customer_email),
            "first_name": (order.customer_name or "").strip() or "Cliente",
        },
        "external_reference": str(reference),
        "metadata": {"order_id": order.id, "tenant_id": order.tenant_id},
        "date_of_expiration": _format_provider_datetime(expires_at),
    }
    if notification_url:
        payload["notification_url"] = notification_url
    return payload


def create_pix_charge(
    db: Session,
    *,
    client: MercadoPagoClient,
    resolver: CredentialResolver,
    order_id: int,
    tenant_id: int,
    display_number: str | None = None,
    notification_url: str | None = None,
    expiration_minutes: int = PIX_EXPIRATION_MINUTES,
    now: datetime | None = None,
) -> PixCharge:
    """Gera (ou recupera, via idempotência do provedor) a cobrança PIX do pedido."""
    try:
        charge = _create_pix_charge(
            db,
            client=client,
            resolver=resolver,
            order_id=order_id,
            tenant_id=tenant_id,
            display_number=display_number,
            notification_url=notification_url,
            expiration_minutes=expiration_minutes,
            now=now,
        )
    except PaymentError as exc:
        payment_metrics.increment("pix_charge", type(exc).__name__)
        raise
    payment_metrics.increment("pix_charge", "created")
    return charge


def _create_pix_charge(
    db: Session,
    *,
    client: MercadoPagoClient,
    resolver: CredentialResolver,
    order_id: int,
    tenant_id: int,
    display_number: str | None,
    notification_url: str | None,
    expiration_minutes: int,
    now: datetime | None,
) -> PixCharge:
    order = get_order(db, order_id)
    if order is None:
        raise OrderNotFound()
    if int(order.tenant_id) != int(tenant_id):
        raise TenantMismatch()
    if order.payment_status == "paid":
        raise OrderAlreadyPaid()

    # O valor vem sempre do pedido gravado, nunca do cliente.
    amount = _charge_amount(order.total)
    tenant = get_tenant(db, order.tenant_id)
    credential = resolver.resolve_for(tenant)

    expires_at = (now or utcnow()) + timedelta(minutes=expiration_minutes)
    request_payload = build_payment_request(
        order=order,
        store_name=getattr(tenant, "store_name", None),
        amount=amount,
        display_number=display_number,
        expires_at=expires_at,
        notification_url=notification_url,
    )

    try:
        payment = client.create_pix_payment(
            credential.access_token,
            request_payload,
            idempotency_key=idempotency_key_for(order.id),
        )
    except MercadoPagoUnavailable as exc:
        raise ProviderUnavailable() from exc
    except MercadoPagoHTTPError as exc:
        logger.error(
            "mercadopago pix creation failed order_id=%s status=%s reason=%s",
            order.id,
            exc.status_code,
            exc.reason,
        )
        raise ChargeFailed(extra={"provider_status": exc.status_code}) from exc

    tx = transaction_data(payment)
    qr_code = tx.get("qr_code") or None
    qr_code_base64 = tx.get("qr_code_base64") or None
    ticket_url = tx.get("ticket_url") or None
    if not qr_code and not qr_code_base64:
        logger.error("mercadopago returned pix without qr order_id=%s payment_id=%s", order.id, payment.get("id"))
        raise NoQrReturned()

    charge_id = str(payment.get("id") or "").strip()
    if not charge_id:
        logger.error("mercadopago returned pix without id order_id=%s", order.id)
        raise ChargeFailed()
    provider_expires_at = parse_provider_datetime(payment.get("date_of_expiration")) or expires_at

    previous_status = order.status
    previous_payment_status = order.payment_status
    fields: dict[str, Any] = {
        "payment_provider": PROVIDER_NAME,
        "payment_id": charge_id,
        "pix_qr_code": qr_code,
        "pix_qr_code_base64": qr_code_base64,
        "pix_ticket_url": ticket_url,
        "pix_expires_at": provider_expires_at,
        # Avaliado no próprio UPDATE: um webhook "paid" concorrente não é desfeito.
        "payment_status": case((Order.payment_status == "paid", Order.payment_status), else_="pending"),
        "status": case((Order.status == STATUS_NEW, STATUS_AWAITING_CONFIRMATION), else_=Order.status),
    }

    if not update_order_payment(db, order.id, fields):
        logger.error("pix created but order vanished order_id=%s payment_id=%s", order_id, charge_id)
        raise PersistFailed("PIX criado, mas falhou ao salvar no pedido")

    db.refresh(order)
    emit_payment_status_changed(order, previous_payment_status)
    emit_order_status_changed(order, previous_status)
    logger.info(
        "pix charge ready order_id=%s credential_source=%s",
        order.id,
        credential.source,
        extra={"tenant_id": order.tenant_id, "payment_id": charge_id},
    )
    return PixCharge(
        order_id=order.id,
        charge_id=charge_id,
        qr_code=qr_code,
        qr_code_base64=qr_code_base64,
        expires_at=provider_expires_at,
        ticket_url=ticket_url,
    )
