import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("MP_STATE_SECRET", "test-state-secret")

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront_pay.core.database import Base
from storefront_pay.core.metrics import payment_metrics
from storefront_pay.models.order import Order
from storefront_pay.models.tenant import Tenant
from storefront_pay.models.user import User
import storefront_pay.models  # noqa: F401
from tests.fakes import FakeMercadoPagoClient


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _reset_payment_metrics():
    payment_metrics.reset()
    yield
    payment_metrics.reset()


@pytest.fixture
def fake_client():
    return FakeMercadoPagoClient()


@pytest.fixture
def producer(db):
    user = User(id=10, name="Ana", email="ana@example.com", role="producer", is_active=True)
    tenant = Tenant(id=1, user_id=10, store_name="Burger da Ana", slug="burgerdaana", plan="mensal")
    db.add_all([user, tenant])
    db.commit()
    return user, tenant


@pytest.fixture
def make_order(db):
    def _make_order(tenant_id=1, total="176.70", **fields):
        values = {
            "tenant_id": tenant_id,
            "customer_name": "João",
            "customer_email": "joao@example.com",
            "payment_method": "pix",
            "subtotal": Decimal(total),
            "total": Decimal(total),
            "status": "new",
            "created_at": datetime(2026, 3, 1, 15, 0, tzinfo=timezone.utc),
        }
        values.update(fields)
        order = Order(**values)
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make_order
