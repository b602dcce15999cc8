"""Erros de domínio do fluxo de pagamentos.

Cada erro carrega o status HTTP e uma mensagem pronta para o usuário. Os
routers convertem para ``HTTPException``; mensagens nunca incluem tokens,
segredos ou o ``code`` do OAuth.
"""
from __future__ import annotations

from typing import Any


class PaymentError(Exception):
    status_code = 400
    default_detail = "Erro no processamento do pagamento"

    def __init__(self, detail: str | None = None, *, extra: dict[str, Any] | None = None) -> None:
        self.detail = detail or self.default_detail
        self.extra = extra or {}
        super().__init__(self.detail)


# StateToken
class StateTokenError(PaymentError):
    default_detail = "state inválido"


class MalformedState(StateTokenError):
    default_detail = "state inválido"


class InvalidStateSignature(StateTokenError):
    default_detail = "state inválido (assinatura)"


class ExpiredState(StateTokenError):
    default_detail = "state expirado"


# Conexão OAuth
class ProviderNotConfigured(PaymentError):
    status_code = 500
    default_detail = "Integração com Mercado Pago não configurada"


class TenantNotFound(PaymentError):
    status_code = 404
    default_detail = "Produtor não encontrado"


class Forbidden(PaymentError):
    status_code = 403
    default_detail = "Admin não conecta como produtor"


class StateUserMismatch(PaymentError):
    status_code = 403
    default_detail = "Sessão não corresponde ao state"


class ExchangeFailed(PaymentError):
    default_detail = "Falha ao conectar Mercado Pago"


class PersistFailed(PaymentError):
    status_code = 500
    default_detail = "Falha ao salvar os dados"


# Cobrança PIX
class OrderNotFound(PaymentError):
    status_code = 404
    default_detail = "Pedido não encontrado"


class TenantMismatch(PaymentError):
    status_code = 403
    default_detail = "Pedido não pertence a este produtor"


class InvalidAmount(PaymentError):
    default_detail = "Total do pedido inválido"


class OrderAlreadyPaid(PaymentError):
    status_code = 409
    default_detail = "Pedido já está pago"


class NoCredentialAvailable(PaymentError):
    default_detail = "Produtor não conectado ao Mercado Pago e token global não configurado"


class ChargeFailed(PaymentError):
    status_code = 502
    default_detail = "Não foi possível gerar a cobrança PIX, tente novamente"


class NoQrReturned(ChargeFailed):
    default_detail = "Mercado Pago não retornou QR Code do PIX"


class ProviderUnavailable(PaymentError):
    """Timeout ou falha de transporte; o cliente pode tentar de novo."""

    status_code = 503
    default_detail = "Não foi possível gerar a cobrança PIX, tente novamente"


# Ciclo de vida do pedido
class TerminalState(PaymentError):
    status_code = 409
    default_detail = "Pedido já finalizado ou cancelado"


class InvalidTransition(PaymentError):
    status_code = 409
    default_detail = "Transição de status inválida"


class StaleOrderStatus(PaymentError):
    status_code = 409
    default_detail = "O status do pedido mudou, atualize e tente novamente"
