"""Shared test doubles."""

from __future__ import annotations

import asyncio

import pytest
from telegram.error import BadRequest

from tgrelay.models import InboundEvent
from tgrelay.transports.base import Transport, TransportError


class FakeTransport(Transport):
    """In-memory transport: feed batches with ``push``, inspect ``sent``."""

    def __init__(self, fail_for: set[int] | None = None, fail_start: bool = False) -> None:
        self.fail_for = fail_for or set()
        self.fail_start = fail_start
        self.sent: list[tuple[int, str, int | None]] = []
        self.answered: list[tuple[str, str]] = []
        self.started = False
        self.stopped = False
        self.receiving = True
        self.acked: list[InboundEvent] = []
        self._batches: asyncio.Queue[list[InboundEvent] | Exception] = asyncio.Queue()

    @property
    def platform_name(self) -> str:
        return "fake"

    async def start(self) -> None:
        if self.fail_start:
            raise TransportError("invalid token")
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    def stop_receiving(self) -> None:
        self.receiving = False

    def ack(self, event: InboundEvent) -> None:
        self.acked.append(event)

    def push(self, item: list[InboundEvent] | Exception) -> None:
        self._batches.put_nowait(item)

    async def fetch_events(self) -> list[InboundEvent]:
        item = await self._batches.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def send_message(self, chat_id: int, text: str, *, reply_to: int | None = None) -> None:
        if chat_id in self.fail_for:
            raise BadRequest("Chat not found")
        self.sent.append((chat_id, text, reply_to))

    async def answer_callback(self, query_id: str, text: str) -> None:
        self.answered.append((query_id, text))

    def sent_to(self, chat_id: int) -> list[str]:
        return [text for cid, text, _ in self.sent if cid == chat_id]


@pytest.fixture
def transport():
    return FakeTransport()
