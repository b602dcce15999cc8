import json
from urllib.parse import parse_qs

import httpx
import pytest

from storefront_pay.integrations.mercadopago import (
    IDEMPOTENCY_HEADER,
    MercadoPagoClient,
    MercadoPagoHTTPError,
    MercadoPagoUnavailable,
)


def _client(handler):
    return MercadoPagoClient(
        client_id="app-123",
        client_secret="app-secret",
        redirect_uri="https://loja.example.com/mp/callback",
        transport=httpx.MockTransport(handler),
    )


def test_exchange_code_posts_form_to_oauth_token():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["content_type"] = request.headers["content-type"]
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"access_token": "APP_USR-abc", "refresh_token": "TG-def"})

    data = _client(handler).exchange_code("TG-code")

    assert data["access_token"] == "APP_USR-abc"
    assert seen["method"] == "POST"
    assert seen["url"] == "https://api.mercadopago.com/oauth/token"
    assert seen["content_type"].startswith("application/x-www-form-urlencoded")
    assert seen["form"] == {
        "grant_type": ["authorization_code"],
        "client_id": ["app-123"],
        "client_secret": ["app-secret"],
        "code": ["TG-code"],
        "redirect_uri": ["https://loja.example.com/mp/callback"],
    }


def test_create_pix_payment_sends_bearer_and_idempotency_key():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["authorization"] = request.headers["authorization"]
        seen["idempotency"] = request.headers[IDEMPOTENCY_HEADER]
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": 991, "status": "pending"})

    payment = _client(handler).create_pix_payment(
        "APP_USR-token",
        {"transaction_amount": 176.7, "payment_method_id": "pix"},
        idempotency_key="pix:42",
    )

    assert payment == {"id": 991, "status": "pending"}
    assert seen["url"] == "https://api.mercadopago.com/v1/payments"
    assert seen["authorization"] == "Bearer APP_USR-token"
    assert seen["idempotency"] == "pix:42"
    assert seen["body"]["transaction_amount"] == 176.7


def test_get_payment_quotes_payment_id():
    seen = {}

    def handler(request):
        seen["path"] = request.url.raw_path.decode()
        return httpx.Response(200, json={"id": 991, "status": "approved"})

    _client(handler).get_payment("APP_USR-token", "99/1")

    assert seen["path"] == "/v1/payments/99%2F1"


def test_non_2xx_raises_http_error_with_reason():
    def handler(request):
        return httpx.Response(400, json={"message": "invalid_grant", "status": 400})

    with pytest.raises(MercadoPagoHTTPError) as exc:
        _client(handler).exchange_code("TG-code")

    assert exc.value.status_code == 400
    assert exc.value.reason == "invalid_grant"


def test_non_json_error_body_is_kept_raw():
    def handler(request):
        return httpx.Response(502, text="Bad Gateway")

    with pytest.raises(MercadoPagoHTTPError) as exc:
        _client(handler).get_payment("APP_USR-token", "991")

    assert exc.value.payload == {"raw": "Bad Gateway"}
    assert exc.value.reason is None


def test_timeout_raises_unavailable():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(MercadoPagoUnavailable):
        _client(handler).get_payment("APP_USR-token", "991")


def test_connection_error_raises_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(MercadoPagoUnavailable):
        _client(handler).create_pix_payment("APP_USR-token", {}, idempotency_key="pix:1")


def test_authorization_url_targets_auth_host():
    url = _client(lambda request: httpx.Response(200)).authorization_url("estado.assinado")

    assert url.startswith("https://auth.mercadopago.com.br/authorization?")
    assert "state=estado.assinado" in url
    assert "platform_id=mp" in url
