from __future__ import annotations

from storefront_pay.services.errors import InvalidTransition, TerminalState

STATUS_NEW = "new"
STATUS_AWAITING_CONFIRMATION = "awaiting_confirmation"
STATUS_CONFIRMED = "confirmed"
STATUS_PREPARING = "preparing"
STATUS_OUT_FOR_DELIVERY = "out_for_delivery"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

# Ordem do fluxo normal; cancelled fica fora da sequência.
STATUS_SEQUENCE = (
    STATUS_NEW,
    STATUS_AWAITING_CONFIRMATION,
    STATUS_CONFIRMED,
    STATUS_PREPARING,
    STATUS_OUT_FOR_DELIVERY,
    STATUS_COMPLETED,
)
ALL_STATUSES = frozenset(STATUS_SEQUENCE) | {STATUS_CANCELLED}
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED})
# Únicos status que a aprovação do pagamento leva a confirmed.
PROMOTABLE_ON_PAYMENT = (STATUS_NEW, STATUS_AWAITING_CONFIRMATION)
MANUAL_TARGETS = frozenset(
    {
        STATUS_CONFIRMED,
        STATUS_PREPARING,
        STATUS_OUT_FOR_DELIVERY,
        STATUS_COMPLETED,
        STATUS_CANCELLED,
    }
)

_RANK = {status: index for index, status in enumerate(STATUS_SEQUENCE)}


def normalize_status(status: str | None) -> str:
    return (status or "").strip().lower().replace("-", "_")


def transition(current: str | None, target: str, *, automatic: bool = False) -> str:
    """Valida a mudança de ``current`` para ``target`` e retorna o novo status.

    Reaplicar o status atual é no-op. Ações manuais só avançam no fluxo (podendo
    pular etapas) ou cancelam; a automática só pode levar a ``confirmed``.
    """
    current_status = normalize_status(current) or STATUS_NEW
    target_status = normalize_status(target)

    if target_status not in ALL_STATUSES:
        raise InvalidTransition("Status inválido")
    if current_status == target_status:
        return current_status
    if current_status in TERMINAL_STATUSES:
        raise TerminalState()

    allowed_targets = {STATUS_CONFIRMED} if automatic else MANUAL_TARGETS
    if target_status not in allowed_targets:
        raise InvalidTransition()
    if target_status == STATUS_CANCELLED:
        return target_status
    if _RANK.get(current_status, -1) > _RANK[target_status]:
        raise InvalidTransition("Pedido não pode voltar para um status anterior")
    return target_status


def promote_on_payment(current: str | None) -> str:
    """Status do pedido após o pagamento ser aprovado; nunca regride nem reabre."""
    try:
        return transition(current, STATUS_CONFIRMED, automatic=True)
    except (InvalidTransition, TerminalState):
        return normalize_status(current) or STATUS_NEW
