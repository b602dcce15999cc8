import pytest
from pydantic import ValidationError

from storefront_pay.services.errors import ExpiredState, InvalidStateSignature, MalformedState
from storefront_pay.services.state_token import OAuthState, StateTokenSigner, new_oauth_state

ISSUED_AT = 1_767_225_600


def _signer(secret="state-secret"):
    return StateTokenSigner(secret, ttl_seconds=600)


def test_state_round_trip_returns_original_payload():
    signer = _signer()
    payload = new_oauth_state(tenant_id=5, user_id=42, now=ISSUED_AT)

    token = signer.issue(payload)
    decoded = signer.verify(token, now=ISSUED_AT + 30)

    assert decoded == payload
    assert decoded.tenant_id == 5
    assert decoded.user_id == 42
    assert token.count(".") == 1


def test_state_nonce_makes_each_token_unique():
    signer = _signer()

    first = signer.issue(new_oauth_state(tenant_id=5, user_id=42, now=ISSUED_AT))
    second = signer.issue(new_oauth_state(tenant_id=5, user_id=42, now=ISSUED_AT))

    assert first != second


def test_state_accepted_at_nine_minutes_and_expired_at_eleven():
    signer = _signer()
    token = signer.issue(new_oauth_state(tenant_id=5, user_id=42, now=ISSUED_AT))

    assert signer.verify(token, now=ISSUED_AT + 9 * 60).user_id == 42
    with pytest.raises(ExpiredState):
        signer.verify(token, now=ISSUED_AT + 11 * 60)


@pytest.mark.parametrize("position", [0, -1])
def test_state_with_any_signature_character_changed_is_rejected(position):
    signer = _signer()
    token = signer.issue(new_oauth_state(tenant_id=5, user_id=42, now=ISSUED_AT))
    payload_segment, signature = token.split(".")
    chars = list(signature)
    chars[position] = "A" if chars[position] != "A" else "B"
    tampered = f"{payload_segment}.{''.join(chars)}"

    with pytest.raises(InvalidStateSignature):
        signer.verify(tampered, now=ISSUED_AT)


def test_state_with_swapped_payload_is_rejected():
    signer = _signer()
    token = signer.issue(new_oauth_state(tenant_id=5, user_id=42, now=ISSUED_AT))
    other = signer.issue(new_oauth_state(tenant_id=6, user_id=43, now=ISSUED_AT))

    forged = f"{other.split('.')[0]}.{token.split('.')[1]}"

    with pytest.raises(InvalidStateSignature):
        signer.verify(forged, now=ISSUED_AT)


def test_state_signed_with_other_secret_is_rejected():
    token = _signer("outro-segredo").issue(new_oauth_state(tenant_id=5, user_id=42, now=ISSUED_AT))

    with pytest.raises(InvalidStateSignature):
        _signer().verify(token, now=ISSUED_AT)


@pytest.mark.parametrize("token", ["", "semponto", "a.b.c", ".assinatura", "payload."])
def test_state_without_exactly_two_parts_is_malformed(token):
    with pytest.raises(MalformedState):
        _signer().verify(token, now=ISSUED_AT)


def test_state_with_valid_signature_over_garbage_payload_is_malformed():
    signer = _signer()
    # Assinado corretamente, mas o conteúdo não é o JSON esperado.
    token = signer._signer.sign(b"bm90LWpzb24").decode("ascii")

    with pytest.raises(MalformedState):
        signer.verify(token, now=ISSUED_AT)


def test_state_with_non_ascii_signature_is_rejected():
    signer = _signer()
    token = signer.issue(new_oauth_state(tenant_id=5, user_id=42, now=ISSUED_AT))

    with pytest.raises(InvalidStateSignature):
        signer.verify(f"{token.split('.')[0]}.assinaturaç", now=ISSUED_AT)


def test_signer_requires_secret():
    with pytest.raises(ValueError):
        StateTokenSigner("")


def test_oauth_state_model_requires_all_fields():
    with pytest.raises(ValidationError):
        OAuthState(tenant_id=1, user_id=2, issued_at=3)


@pytest.mark.parametrize("position", [0, 5, -1])
def test_state_with_payload_character_changed_is_rejected(position):
    signer = _signer()
    token = signer.issue(new_oauth_state(tenant_id=5, user_id=42, now=ISSUED_AT))
    payload_segment, signature = token.split(".")
    chars = list(payload_segment)
    chars[position] = "A" if chars[position] != "A" else "B"

    with pytest.raises(InvalidStateSignature):
        signer.verify(f"{''.join(chars)}.{signature}", now=ISSUED_AT)
