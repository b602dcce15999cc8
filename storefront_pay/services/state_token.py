"""State assinado do OAuth do Mercado Pago.

Formato: ``base64url(payload_json) + "." + base64url(hmac_sha256)``. O HMAC
cobre o payload já codificado, então o token se valida sozinho, sem tabela
de "conexões pendentes" no banco.
"""
from __future__ import annotations

import binascii
import hashlib
import hmac
import json
import time
import uuid

from itsdangerous import BadData, Signer
from itsdangerous.encoding import base64_decode, base64_encode
from pydantic import BaseModel, ValidationError

from storefront_pay.services.errors import ExpiredState, InvalidStateSignature, MalformedState

STATE_SEPARATOR = "."
DEFAULT_STATE_TTL_SECONDS = 10 * 60


class OAuthState(BaseModel):
    tenant_id: int
    user_id: int
    issued_at: int
    nonce: str


def new_oauth_state(*, tenant_id: int, user_id: int, now: float | None = None) -> OAuthState:
    issued_at = int(now if now is not None else time.time())
    return OAuthState(tenant_id=tenant_id, user_id=user_id, issued_at=issued_at, nonce=uuid.uuid4().hex)


def _canonical_bytes(payload: OAuthState) -> bytes:
    return json.dumps(payload.model_dump(), sort_keys=True, separators=(",", ":")).encode("utf-8")


class StateTokenSigner:
    def __init__(self, secret: str, *, ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS) -> None:
        if not secret:
            raise ValueError("secret do state não configurado")
        self.ttl_seconds = ttl_seconds
        self._signer = Signer(
            secret,
            sep=STATE_SEPARATOR,
            key_derivation="none",
            digest_method=hashlib.sha256,
        )

    def issue(self, payload: OAuthState) -> str:
        encoded = base64_encode(_canonical_bytes(payload))
        return self._signer.sign(encoded).decode("ascii")

    def verify(self, token: str, *, now: float | None = None) -> OAuthState:
        parts = (token or "").split(STATE_SEPARATOR)
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise MalformedState()
        payload_segment, signature_segment = parts

        try:
            expected = self._signer.get_signature(payload_segment)
            received = signature_segment.encode("ascii")
        except UnicodeEncodeError as exc:
            raise InvalidStateSignature() from exc
        # Compara a string inteira para que qualquer caractere alterado invalide o token.
        if not hmac.compare_digest(expected, received):
            raise InvalidStateSignature()

        try:
            raw = base64_decode(payload_segment)
            payload = OAuthState.model_validate(json.loads(raw))
        except (BadData, binascii.Error, UnicodeDecodeError, ValueError, ValidationError) as exc:
            raise MalformedState() from exc

        current = now if now is not None else time.time()
        if current - payload.issued_at > self.ttl_seconds:
            raise ExpiredState()
        return payload
