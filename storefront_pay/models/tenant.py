from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func

from storefront_pay.core.database import Base


class Tenant(Base):
    """Produtor: uma loja dentro da plataforma."""

    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True)
    # Usuário dono da loja (emitido pelo serviço de identidade).
    user_id = Column(Integer, index=True, nullable=True)
    store_name = Column(String, nullable=False, default="Loja")
    slug = Column(String, unique=True, index=True, nullable=False)
    plan = Column(String(20), nullable=False, default="trial")  # trial / mensal / anual / admin
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Credenciais Mercado Pago: ou todas preenchidas com mp_connected=True, ou todas nulas.
    mp_connected = Column(Boolean, nullable=False, default=False)
    mp_user_id = Column(String(64), nullable=True)
    mp_access_token = Column(Text, nullable=True)
    mp_refresh_token = Column(Text, nullable=True)
    mp_token_expires_at = Column(DateTime(timezone=True), nullable=True)
