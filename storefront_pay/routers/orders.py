from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront_pay.core.database import get_db
from storefront_pay.deps import get_current_user, payment_http_error
from storefront_pay.models.user import User
from storefront_pay.services.credentials import get_tenant_for_user
from storefront_pay.services.errors import PaymentError, StaleOrderStatus
from storefront_pay.services.order_events import emit_order_status_changed
from storefront_pay.services.order_status import transition
from storefront_pay.services.orders import get_order, update_order_status

router = APIRouter(prefix="/api/orders", tags=["orders"])


class OrderStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1, max_length=40)


@router.patch("/{order_id}/status")
def change_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    tenant = get_tenant_for_user(db, user.id)
    order = get_order(db, order_id)
    # Pedido de outra loja responde como inexistente.
    if not order or tenant is None or order.tenant_id != tenant.id:
        raise HTTPException(status_code=404, detail="Pedido não encontrado")

    previous_status = order.status
    try:
        new_status = transition(previous_status, payload.status)
    except PaymentError as exc:
        raise payment_http_error(exc) from exc

    if new_status != previous_status:
        if not update_order_status(db, order.id, new_status, expected_status=previous_status):
            raise payment_http_error(StaleOrderStatus())
        db.refresh(order)
        emit_order_status_changed(order, previous_status)

    return {"ok": True, "order_id": order.id, "status": order.status}
