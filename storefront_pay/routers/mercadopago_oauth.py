from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront_pay.core.database import get_db
from storefront_pay.deps import (
    get_current_user,
    get_mercadopago_client,
    get_state_signer,
    payment_http_error,
)
from storefront_pay.integrations.mercadopago import MercadoPagoClient
from storefront_pay.models.user import User
from storefront_pay.services import oauth_connect
from storefront_pay.services.errors import PaymentError
from storefront_pay.services.state_token import StateTokenSigner

router = APIRouter(prefix="/api/payments/mercadopago", tags=["mercadopago"])


class ConnectCallback(BaseModel):
    code: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)


@router.post("/connect")
def start_connect(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    client: MercadoPagoClient = Depends(get_mercadopago_client),
    signer: StateTokenSigner = Depends(get_state_signer),
):
    try:
        url = oauth_connect.start_connect(db, user, client=client, signer=signer)
    except PaymentError as exc:
        raise payment_http_error(exc) from exc
    return {"ok": True, "url": url}


@router.post("/callback")
def complete_connect(
    payload: ConnectCallback,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    client: MercadoPagoClient = Depends(get_mercadopago_client),
    signer: StateTokenSigner = Depends(get_state_signer),
):
    try:
        oauth_connect.complete_connect(
            db,
            user,
            code=payload.code.strip(),
            state=payload.state.strip(),
            client=client,
            signer=signer,
        )
    except PaymentError as exc:
        db.rollback()
        raise payment_http_error(exc) from exc
    return {"ok": True}


@router.post("/disconnect")
def disconnect(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        oauth_connect.disconnect(db, user)
    except PaymentError as exc:
        db.rollback()
        raise payment_http_error(exc) from exc
    return {"ok": True}


@router.get("/status")
def connection_status(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        return oauth_connect.connection_status(db, user)
    except PaymentError as exc:
        raise payment_http_error(exc) from exc
