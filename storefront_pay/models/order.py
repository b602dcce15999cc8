from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func

from storefront_pay.core.database import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    # Identificador exposto no checkout; o id inteiro fica só no painel do produtor.
    public_id = Column(String(32), unique=True, index=True, nullable=False, default=lambda: uuid4().hex)
    # Número exibido ao cliente (loja + horário), não é único globalmente.
    display_number = Column(String(40), nullable=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)

    customer_name = Column(String(120), nullable=False, default="")
    customer_email = Column(String(200), nullable=True)
    customer_phone = Column(String(30), nullable=True)
    payment_method = Column(String(30), nullable=False, default="pix")  # pix / dinheiro / cartao / ...

    # Valores definidos no checkout; o fluxo de pagamento só lê.
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)

    # Pagamento (Mercado Pago)
    payment_provider = Column(String(30), nullable=True)
    payment_id = Column(String(64), index=True, nullable=True)
    payment_status = Column(String(20), nullable=True)  # pending / paid / cancelled / expired
    pix_qr_code = Column(Text, nullable=True)
    pix_qr_code_base64 = Column(Text, nullable=True)
    pix_ticket_url = Column(Text, nullable=True)
    pix_expires_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # new / awaiting_confirmation / confirmed / preparing / out_for_delivery / completed / cancelled
    status = Column(String(30), default="new", nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=True)
