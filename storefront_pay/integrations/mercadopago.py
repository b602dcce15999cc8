from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from storefront_pay.core import config

logger = logging.getLogger(__name__)

PROVIDER_NAME = "mercadopago"
IDEMPOTENCY_HEADER = "X-Idempotency-Key"


class MercadoPagoError(RuntimeError):
    pass


class MercadoPagoHTTPError(MercadoPagoError):
    """Resposta fora de 2xx; ``payload`` é o JSON devolvido (ou ``{"raw": ...}``)."""

    def __init__(self, status_code: int, payload: dict[str, Any]):
        super().__init__(f"Erro Mercado Pago {status_code}")
        self.status_code = status_code
        self.payload = payload

    @property
    def reason(self) -> str | None:
        for key in ("message", "error_description", "error"):
            value = self.payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None


class MercadoPagoUnavailable(MercadoPagoError):
    """Timeout ou falha de rede; a chamada pode ser repetida."""


def _safe_json(response: httpx.Response) -> dict[str, Any]:
    text = response.text
    if not text:
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {"raw": text}
    return data if isinstance(data, dict) else {"raw": data}


class MercadoPagoClient:
    def __init__(
        self,
        *,
        client_id: str = "",
        client_secret: str = "",
        redirect_uri: str = "",
        api_base_url: str = "https://api.mercadopago.com",
        auth_base_url: str = "https://auth.mercadopago.com.br",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.api_base_url = api_base_url.rstrip("/")
        self.auth_base_url = auth_base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls) -> "MercadoPagoClient":
        return cls(
            client_id=config.MP_CLIENT_ID,
            client_secret=config.MP_CLIENT_SECRET,
            redirect_uri=config.MP_REDIRECT_URI,
            api_base_url=config.MP_API_BASE_URL,
            auth_base_url=config.MP_AUTH_BASE_URL,
            timeout=config.MP_HTTP_TIMEOUT_SECONDS,
        )

    def authorization_url(self, state: str) -> str:
        query = urlencode(
            {
                "client_id": self.client_id,
                "response_type": "code",
                "platform_id": "mp",
                "redirect_uri": self.redirect_uri,
                "state": state,
            }
        )
        return f"{self.auth_base_url}/authorization?{query}"

    def exchange_code(self, code: str) -> dict[str, Any]:
        form = {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        return self._request("POST", "/oauth/token", data=form)

    def create_pix_payment(
        self,
        access_token: str,
        payload: dict[str, Any],
        *,
        idempotency_key: str,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            IDEMPOTENCY_HEADER: idempotency_key,
        }
        return self._request("POST", "/v1/payments", json=payload, headers=headers)

    def get_payment(self, access_token: str, payment_id: str) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}"}
        return self._request("GET", f"/v1/payments/{quote(str(payment_id), safe='')}", headers=headers)

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            with httpx.Client(
                base_url=self.api_base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("mercadopago timeout method=%s path=%s", method, path)
            raise MercadoPagoUnavailable("Timeout ao chamar o Mercado Pago") from exc
        except httpx.TransportError as exc:
            logger.warning("mercadopago transport error method=%s path=%s error=%s", method, path, exc)
            raise MercadoPagoUnavailable("Falha de rede ao chamar o Mercado Pago") from exc

        payload = _safe_json(response)
        if not 200 <= response.status_code < 300:
            logger.warning(
                "mercadopago error method=%s path=%s status=%s",
                method,
                path,
                response.status_code,
            )
            raise MercadoPagoHTTPError(response.status_code, payload)
        return payload
