"""Outbound message delivery with failures reported as results, not exceptions."""

from __future__ import annotations

from typing import Iterable

from telegram.error import TelegramError

from tgrelay.models import BroadcastTally, DeliveryResult
from tgrelay.transports.base import Transport
from tgrelay.utils.logging import get_logger

log = get_logger(__name__)


class MessageSender:
    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def send(
        self, chat_id: int, text: str, reply_to: int | None = None
    ) -> DeliveryResult:
        """Deliver one message. Never retried; errors come back in the result."""
        try:
            await self._transport.send_message(chat_id, text, reply_to=reply_to)
        except TelegramError as e:
            log.warning("send_failed", chat_id=chat_id, error=str(e))
            return DeliveryResult(success=False, error=str(e))
        return DeliveryResult(success=True)

    async def broadcast(self, chat_ids: Iterable[int], text: str) -> BroadcastTally:
        """Send ``text`` to each chat in turn and tally the outcome."""
        tally = BroadcastTally()
        for chat_id in chat_ids:
            result = await self.send(chat_id, text)
            if result.success:
                tally.success_count += 1
            else:
                tally.fail_count += 1
                tally.failed_chat_ids.append(chat_id)
        log.info(
            "broadcast_finished",
            total=tally.total,
            success_count=tally.success_count,
            fail_count=tally.fail_count,
            failed_chat_ids=tally.failed_chat_ids,
        )
        return tally

    async def answer_callback(self, query_id: str, text: str) -> bool:
        try:
            await self._transport.answer_callback(query_id, text)
        except TelegramError as e:
            log.warning("callback_answer_failed", query_id=query_id, error=str(e))
            return False
        return True
