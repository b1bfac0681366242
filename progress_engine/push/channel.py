"""PushChannel - Interface base para canales de eventos de progreso.

Define el contrato común que deben implementar los transportes push
(MQTT, en memoria). El motor solo necesita suscribirse y consultar
si el canal está conectado; conexión y reconexión son del transporte.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

EventHandler = Callable[[Dict[str, Any]], None]
Unsubscribe = Callable[[], None]


class PushChannel(ABC):
    """Interface común para canales push.

    Los handlers reciben el payload del evento ya decodificado (dict).
    """

    def __init__(self) -> None:
        self._handlers: List[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> Unsubscribe:
        """Registra un handler de eventos.

        Returns:
            Callable que cancela la suscripción (idempotente)
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def _dispatch(self, data: Dict[str, Any]) -> None:
        for handler in list(self._handlers):
            try:
                handler(data)
            except Exception as e:
                logger.exception("[%s] Handler error: %s", self.channel_name.upper(), e)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    @abstractmethod
    def is_connected(self) -> bool:
        """Estado de conexión reportado por el transporte."""

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Nombre del canal: mqtt, memory."""


class InMemoryPushChannel(PushChannel):
    """Canal sintético para alimentar secuencias de eventos sin transporte real."""

    def __init__(self, connected: bool = True):
        super().__init__()
        self._connected = connected
        self.published = 0

    def publish(self, data: Dict[str, Any]) -> None:
        self.published += 1
        self._dispatch(data)

    def set_connected(self, connected: bool) -> None:
        self._connected = connected

    def is_connected(self) -> bool:
        return self._connected

    @property
    def channel_name(self) -> str:
        return "memory"
