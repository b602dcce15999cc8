from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from storefront_pay.models.order import Order


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: datetime | None) -> datetime | None:
    # SQLite devolve datetimes sem fuso mesmo com DateTime(timezone=True).
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_order(db: Session, order_id: int) -> Order | None:
    return db.query(Order).filter(Order.id == order_id).first()


def get_order_by_public_id(db: Session, public_id: str) -> Order | None:
    return db.query(Order).filter(Order.public_id == public_id).first()


def get_order_by_payment_id(db: Session, payment_id: str) -> Order | None:
    return db.query(Order).filter(Order.payment_id == payment_id).first()


def update_order_payment(db: Session, order_id: int, fields: dict[str, Any]) -> bool:
    """Atualiza os campos de pagamento numa única instrução; False se o pedido sumiu."""
    values = {**fields, "updated_at": utcnow()}
    affected = (
        db.query(Order)
        .filter(Order.id == order_id)
        .update(values, synchronize_session=False)
    )
    db.commit()
    return bool(affected)


def update_order_status(db: Session, order_id: int, status: str, *, expected_status: str | None = None) -> bool:
    """Grava o status; com ``expected_status`` só aplica se o pedido ainda estiver nele."""
    query = db.query(Order).filter(Order.id == order_id)
    if expected_status is not None:
        query = query.filter(Order.status == expected_status)
    affected = query.update({"status": status, "updated_at": utcnow()}, synchronize_session=False)
    db.commit()
    return bool(affected)


def order_payment_to_dict(order: Order) -> dict[str, Any]:
    expires_at = as_aware(order.pix_expires_at)
    paid_at = as_aware(order.paid_at)
    return {
        "order_id": order.public_id,
        "display_number": order.display_number,
        "tenant_id": order.tenant_id,
        "status": order.status,
        "payment_provider": order.payment_provider,
        "payment_id": order.payment_id,
        "payment_status": order.payment_status,
        "pix_qr_code": order.pix_qr_code,
        "pix_qr_code_base64": order.pix_qr_code_base64,
        "pix_ticket_url": order.pix_ticket_url,
        "pix_expires_at": expires_at.isoformat() if expires_at else None,
        "paid_at": paid_at.isoformat() if paid_at else None,
    }
