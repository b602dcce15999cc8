from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront_pay.core import config
from storefront_pay.core.database import get_db
from storefront_pay.deps import get_credential_resolver, get_mercadopago_client, payment_http_error
from storefront_pay.integrations.mercadopago import MercadoPagoClient
from storefront_pay.services.credentials import CredentialResolver
from storefront_pay.services.errors import PaymentError
from storefront_pay.services.orders import get_order_by_public_id, order_payment_to_dict
from storefront_pay.services.pix_charges import create_pix_charge

router = APIRouter(prefix="/api", tags=["pix"])


class PixChargeCreate(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=64)
    tenant_id: int = Field(..., gt=0)
    display_number: Optional[str] = Field(default=None, max_length=40)


@router.post("/payments/pix")
def create_pix(
    payload: PixChargeCreate,
    db: Session = Depends(get_db),
    client: MercadoPagoClient = Depends(get_mercadopago_client),
    resolver: CredentialResolver = Depends(get_credential_resolver),
):
    order = get_order_by_public_id(db, payload.order_id.strip())
    if not order:
        raise HTTPException(status_code=404, detail="Pedido não encontrado")
    try:
        charge = create_pix_charge(
            db,
            client=client,
            resolver=resolver,
            order_id=order.id,
            tenant_id=payload.tenant_id,
            display_number=(payload.display_number or "").strip() or None,
            notification_url=config.MP_WEBHOOK_URL or None,
            expiration_minutes=config.PIX_EXPIRATION_MINUTES,
        )
    except PaymentError as exc:
        db.rollback()
        raise payment_http_error(exc) from exc
    return {"ok": True, **charge.to_dict(), "order_id": order.public_id}


@router.get("/orders/{order_public_id}/payment")
def get_order_payment(order_public_id: str, db: Session = Depends(get_db)):
    order = get_order_by_public_id(db, order_public_id)
    if not order:
        raise HTTPException(status_code=404, detail="Pedido não encontrado")
    return order_payment_to_dict(order)
