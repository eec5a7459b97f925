"""Abstract transport base class."""

from __future__ import annotations

from abc import ABC, abstractmethod

from tgrelay.models import InboundEvent


class TransportError(Exception):
    """Raised when a transport cannot be initialised."""


class Transport(ABC):
    @property
    @abstractmethod
    def platform_name(self) -> str: ...

    @abstractmethod
    async def start(self) -> None:
        """Authenticate against the platform. Raises TransportError on failure."""

    @abstractmethod
    async def stop(self) -> None: ...

    @abstractmethod
    async def fetch_events(self) -> list[InboundEvent]:
        """Long-poll for the next batch of inbound events."""

    def ack(self, event: InboundEvent) -> None:
        """Mark an event as handed to a dispatcher. Transports without delivery
        confirmation ignore this."""

    @abstractmethod
    def stop_receiving(self) -> None:
        """Stop fetching further updates. Safe to call more than once."""

    @abstractmethod
    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_to: int | None = None,
    ) -> None: ...

    @abstractmethod
    async def answer_callback(self, query_id: str, text: str) -> None: ...
