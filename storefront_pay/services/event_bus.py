from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, DefaultDict, List, Optional, TypedDict


class OrderEvent(TypedDict, total=False):
    """Payload dos eventos de pedido/pagamento (ver ``order_events``)."""

    order_id: int
    tenant_id: int
    display_number: Optional[str]
    status: str
    previous_status: Optional[str]
    payment_status: Optional[str]
    previous_payment_status: Optional[str]
    payment_id: Optional[str]


Handler = Callable[[OrderEvent], None]


class EventBus:
    """Bus síncrono em processo.

    Os eventos saem depois do commit do pagamento: um handler com erro é
    logado e não desfaz nem interrompe a conciliação.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._logger = logging.getLogger(__name__)

    def emit(self, event_name: str, payload: OrderEvent) -> int:
        """Entrega ``payload`` aos handlers inscritos; retorna quantos rodaram sem erro."""
        handlers = list(self._handlers.get(event_name, []))
        if not handlers:
            self._logger.debug("EventBus: no handlers for %s", event_name)
            return 0
        delivered = 0
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                self._logger.exception(
                    "EventBus handler failed for %s order_id=%s",
                    event_name,
                    payload.get("order_id"),
                    extra={"tenant_id": payload.get("tenant_id"), "payment_id": payload.get("payment_id")},
                )
            else:
                delivered += 1
        return delivered

    def subscribe(self, event_name: str, handler: Handler) -> None:
        # Inscrever o mesmo handler de novo não duplica entregas.
        if handler not in self._handlers[event_name]:
            self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_name)
        if handlers and handler in handlers:
            handlers.remove(handler)


event_bus = EventBus()
