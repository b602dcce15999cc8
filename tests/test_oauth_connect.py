from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from storefront_pay.integrations.mercadopago import MercadoPagoHTTPError, MercadoPagoUnavailable
from storefront_pay.models.tenant import Tenant
from storefront_pay.models.user import User
from storefront_pay.services import oauth_connect
from storefront_pay.services.errors import (
    ExchangeFailed,
    Forbidden,
    InvalidStateSignature,
    PersistFailed,
    ProviderNotConfigured,
    StateUserMismatch,
    TenantNotFound,
)
from storefront_pay.services.state_token import StateTokenSigner, new_oauth_state
from tests.fakes import FakeMercadoPagoClient

NOW = 1_767_225_600
TOKEN_RESPONSE = {
    "access_token": "APP_USR-abc",
    "refresh_token": "TG-def",
    "user_id": 123456,
    "expires_in": 15_552_000,
}


@pytest.fixture
def signer():
    return StateTokenSigner("state-secret", ttl_seconds=600)


def test_start_connect_builds_authorization_url_with_signed_state(db, producer, fake_client, signer):
    user, tenant = producer

    url = oauth_connect.start_connect(db, user, client=fake_client, signer=signer, now=NOW)

    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://auth.mercadopago.com.br/authorization"
    assert query["client_id"] == ["app-123"]
    assert query["response_type"] == ["code"]
    assert query["platform_id"] == ["mp"]
    assert query["redirect_uri"] == ["https://loja.example.com/mp/callback"]
    state = signer.verify(query["state"][0], now=NOW)
    assert (state.tenant_id, state.user_id) == (tenant.id, user.id)


def test_start_connect_rejects_platform_admin(db, producer, fake_client, signer):
    user, _ = producer
    user.role = "admin"
    db.commit()

    with pytest.raises(Forbidden):
        oauth_connect.start_connect(db, user, client=fake_client, signer=signer, now=NOW)


def test_start_connect_rejects_admin_plan_tenant(db, producer, fake_client, signer):
    user, tenant = producer
    tenant.plan = "admin"
    db.commit()

    with pytest.raises(Forbidden):
        oauth_connect.start_connect(db, user, client=fake_client, signer=signer, now=NOW)


def test_start_connect_without_tenant_raises_not_found(db, fake_client, signer):
    user = User(id=50, name="Sem loja", email="semloja@example.com", role="producer")
    db.add(user)
    db.commit()

    with pytest.raises(TenantNotFound):
        oauth_connect.start_connect(db, user, client=fake_client, signer=signer, now=NOW)


def test_start_connect_requires_client_configuration(db, producer, signer):
    user, _ = producer
    client = FakeMercadoPagoClient(client_id="")

    with pytest.raises(ProviderNotConfigured):
        oauth_connect.start_connect(db, user, client=client, signer=signer, now=NOW)


def test_complete_connect_saves_token_bundle(db, producer, fake_client, signer):
    user, tenant = producer
    fake_client.exchange_response = TOKEN_RESPONSE
    state = signer.issue(new_oauth_state(tenant_id=tenant.id, user_id=user.id, now=NOW))

    bundle = oauth_connect.complete_connect(
        db, user, code="TG-code", state=state, client=fake_client, signer=signer, now=NOW + 60
    )

    issued_at = datetime.fromtimestamp(NOW + 60, tz=timezone.utc)
    assert bundle.expires_at == issued_at + timedelta(seconds=15_552_000)
    assert fake_client.exchanged == ["TG-code"]
    db.refresh(tenant)
    assert tenant.mp_connected is True
    assert tenant.mp_access_token == "APP_USR-abc"
    assert tenant.mp_refresh_token == "TG-def"
    assert tenant.mp_user_id == "123456"


def test_complete_connect_uses_minimum_lifetime_for_short_expiry(db, producer, fake_client, signer):
    user, tenant = producer
    fake_client.exchange_response = {**TOKEN_RESPONSE, "expires_in": 0}
    state = signer.issue(new_oauth_state(tenant_id=tenant.id, user_id=user.id, now=NOW))

    bundle = oauth_connect.complete_connect(
        db, user, code="TG-code", state=state, client=fake_client, signer=signer, now=NOW
    )

    assert bundle.expires_at == datetime.fromtimestamp(NOW, tz=timezone.utc) + timedelta(seconds=60)


def test_complete_connect_rejects_state_from_other_user(db, producer, fake_client, signer):
    user, tenant = producer
    state = signer.issue(new_oauth_state(tenant_id=tenant.id, user_id=999, now=NOW))

    with pytest.raises(StateUserMismatch):
        oauth_connect.complete_connect(
            db, user, code="TG-code", state=state, client=fake_client, signer=signer, now=NOW
        )
    assert fake_client.exchanged == []


def test_complete_connect_rejects_tampered_state_before_exchange(db, producer, fake_client, signer):
    user, tenant = producer
    state = signer.issue(new_oauth_state(tenant_id=tenant.id, user_id=user.id, now=NOW))
    tampered = state[:-1] + ("A" if state[-1] != "A" else "B")

    with pytest.raises(InvalidStateSignature):
        oauth_connect.complete_connect(
            db, user, code="TG-code", state=tampered, client=fake_client, signer=signer, now=NOW
        )
    assert fake_client.exchanged == []


def test_complete_connect_surfaces_provider_reason(db, producer, fake_client, signer):
    user, tenant = producer
    fake_client.exchange_error = MercadoPagoHTTPError(400, {"message": "invalid_grant"})
    state = signer.issue(new_oauth_state(tenant_id=tenant.id, user_id=user.id, now=NOW))

    with pytest.raises(ExchangeFailed) as exc:
        oauth_connect.complete_connect(
            db, user, code="TG-code", state=state, client=fake_client, signer=signer, now=NOW
        )

    assert "invalid_grant" in exc.value.detail
    db.refresh(tenant)
    assert tenant.mp_connected is False


def test_complete_connect_when_provider_unreachable(db, producer, fake_client, signer):
    user, tenant = producer
    fake_client.exchange_error = MercadoPagoUnavailable("timeout")
    state = signer.issue(new_oauth_state(tenant_id=tenant.id, user_id=user.id, now=NOW))

    with pytest.raises(ExchangeFailed):
        oauth_connect.complete_connect(
            db, user, code="TG-code", state=state, client=fake_client, signer=signer, now=NOW
        )


def test_complete_connect_without_refresh_token_keeps_tenant_untouched(db, producer, fake_client, signer):
    user, tenant = producer
    fake_client.exchange_response = {"access_token": "APP_USR-abc", "expires_in": 3600}
    state = signer.issue(new_oauth_state(tenant_id=tenant.id, user_id=user.id, now=NOW))

    with pytest.raises(ExchangeFailed):
        oauth_connect.complete_connect(
            db, user, code="TG-code", state=state, client=fake_client, signer=signer, now=NOW
        )

    db.refresh(tenant)
    assert tenant.mp_connected is False
    assert tenant.mp_access_token is None


def test_complete_connect_for_tenant_not_owned_by_user_fails(db, producer, fake_client, signer):
    user, _ = producer
    db.add(Tenant(id=2, user_id=77, store_name="Outra loja", slug="outraloja"))
    db.commit()
    fake_client.exchange_response = TOKEN_RESPONSE
    state = signer.issue(new_oauth_state(tenant_id=2, user_id=user.id, now=NOW))

    with pytest.raises(PersistFailed):
        oauth_connect.complete_connect(
            db, user, code="TG-code", state=state, client=fake_client, signer=signer, now=NOW
        )

    other = db.query(Tenant).filter(Tenant.id == 2).first()
    assert other.mp_connected is False


def test_disconnect_clears_bundle_and_status_reflects_it(db, producer, fake_client, signer):
    user, tenant = producer
    fake_client.exchange_response = TOKEN_RESPONSE
    state = signer.issue(new_oauth_state(tenant_id=tenant.id, user_id=user.id, now=NOW))
    oauth_connect.complete_connect(
        db, user, code="TG-code", state=state, client=fake_client, signer=signer, now=NOW
    )

    connected = oauth_connect.connection_status(db, user)
    oauth_connect.disconnect(db, user)
    disconnected = oauth_connect.connection_status(db, user)

    assert connected["connected"] is True
    assert connected["mp_user_id"] == "123456"
    assert connected["expires_at"] is not None
    assert disconnected == {
        "tenant_id": tenant.id,
        "connected": False,
        "mp_user_id": None,
        "expires_at": None,
    }
