from storefront_pay.integrations.mercadopago import MercadoPagoClient


class FakeMercadoPagoClient(MercadoPagoClient):
    """Cliente sem rede: devolve respostas configuradas e registra as chamadas."""

    def __init__(self, **kwargs):
        kwargs.setdefault("client_id", "app-123")
        kwargs.setdefault("client_secret", "app-secret")
        kwargs.setdefault("redirect_uri", "https://loja.example.com/mp/callback")
        super().__init__(**kwargs)
        self.payments = {}
        self.create_response = None
        self.create_error = None
        self.fetch_error = None
        self.exchange_response = {}
        self.exchange_error = None
        self.created = []
        self.fetched = []
        self.exchanged = []

    def exchange_code(self, code):
        self.exchanged.append(code)
        if self.exchange_error is not None:
            raise self.exchange_error
        return dict(self.exchange_response)

    def create_pix_payment(self, access_token, payload, *, idempotency_key):
        self.created.append(
            {"access_token": access_token, "payload": payload, "idempotency_key": idempotency_key}
        )
        if self.create_error is not None:
            raise self.create_error
        return dict(self.create_response or {})

    def get_payment(self, access_token, payment_id):
        self.fetched.append({"access_token": access_token, "payment_id": payment_id})
        if self.fetch_error is not None:
            raise self.fetch_error
        return dict(self.payments[str(payment_id)])


def pix_payment_response(payment_id="991", status="pending", **extra):
    payload = {
        "id": payment_id,
        "status": status,
        "status_detail": extra.pop("status_detail", "pending_waiting_transfer"),
        "date_of_expiration": "2026-03-01T12:30:00.000-03:00",
        "point_of_interaction": {
            "transaction_data": {
                "qr_code": "00020126580014br.gov.bcb.pix0136abc",
                "qr_code_base64": "iVBORw0KGgo=",
                "ticket_url": f"https://www.mercadopago.com.br/payments/{payment_id}/ticket",
            }
        },
    }
    payload.update(extra)
    return payload
