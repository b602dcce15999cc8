from __future__ import annotations

import logging

from storefront_pay.models.order import Order
from storefront_pay.services.event_bus import OrderEvent, event_bus
from storefront_pay.services.order_status import normalize_status

logger = logging.getLogger(__name__)

ORDER_STATUS_CHANGED = "order.status.changed"
ORDER_PAYMENT_STATUS_CHANGED = "order.payment.status.changed"
ORDER_PAID = "order.paid"


def build_order_payload(order: Order, previous_status: str | None = None) -> OrderEvent:
    return {
        "order_id": order.id,
        "tenant_id": order.tenant_id,
        "display_number": order.display_number,
        "status": normalize_status(order.status),
        "previous_status": normalize_status(previous_status) if previous_status else None,
        "payment_status": order.payment_status,
        "payment_id": order.payment_id,
    }


def emit_order_status_changed(order: Order, previous_status: str | None) -> None:
    if previous_status and normalize_status(previous_status) == normalize_status(order.status):
        return
    event_bus.emit(ORDER_STATUS_CHANGED, build_order_payload(order, previous_status=previous_status))


def emit_payment_status_changed(order: Order, previous_payment_status: str | None) -> None:
    if previous_payment_status == order.payment_status:
        return
    payload = build_order_payload(order)
    payload["previous_payment_status"] = previous_payment_status
    event_bus.emit(ORDER_PAYMENT_STATUS_CHANGED, payload)
    # Pode disparar mais de uma vez para o mesmo pagamento (webhooks concorrentes);
    # efeitos únicos (e-mail, WhatsApp) devem deduplicar por payment_id.
    if order.payment_status == "paid":
        event_bus.emit(ORDER_PAID, payload)


def _log_order_event(payload: OrderEvent) -> None:
    logger.info(
        "order event order_id=%s status=%s previous_status=%s payment_status=%s",
        payload.get("order_id"),
        payload.get("status"),
        payload.get("previous_status"),
        payload.get("payment_status"),
        extra={"tenant_id": payload.get("tenant_id"), "payment_id": payload.get("payment_id")},
    )


def register_default_handlers() -> None:
    for event_name in (ORDER_STATUS_CHANGED, ORDER_PAYMENT_STATUS_CHANGED):
        event_bus.subscribe(event_name, _log_order_event)
