"""Tests for outbound delivery."""

from unittest.mock import MagicMock

import pytest
from telegram.error import NetworkError

from tgrelay.core import sender as sender_module
from tgrelay.core.sender import MessageSender


@pytest.fixture
def sender(transport):
    return MessageSender(transport)


class TestSend:
    async def test_success(self, sender, transport):
        result = await sender.send(123, "hi")
        assert result.success is True
        assert result.error is None
        assert transport.sent == [(123, "hi", None)]

    async def test_reply_to_passed_through(self, sender, transport):
        await sender.send(123, "hi", reply_to=9)
        assert transport.sent == [(123, "hi", 9)]

    async def test_platform_error_becomes_result(self, sender, transport):
        transport.fail_for = {123}
        result = await sender.send(123, "hi")
        assert result.success is False
        assert "Chat not found" in result.error
        assert transport.sent == []

    async def test_network_error_not_retried(self, sender, transport):
        calls = []

        async def flaky(chat_id, text, *, reply_to=None):
            calls.append(chat_id)
            raise NetworkError("connection reset")

        transport.send_message = flaky
        result = await sender.send(5, "hi")
        assert result.success is False
        assert calls == [5]


class TestBroadcast:
    async def test_tallies_partial_failure(self, sender, transport):
        transport.fail_for = {2}
        tally = await sender.broadcast([1, 2, 3], "news")
        assert tally.success_count == 2
        assert tally.fail_count == 1
        assert tally.failed_chat_ids == [2]
        assert tally.total == 3
        assert sorted(cid for cid, _, _ in transport.sent) == [1, 3]

    async def test_empty(self, sender, transport):
        tally = await sender.broadcast([], "news")
        assert tally.total == 0
        assert transport.sent == []

    async def test_logs_failed_chats(self, sender, transport, monkeypatch):
        log = MagicMock()
        monkeypatch.setattr(sender_module, "log", log)
        transport.fail_for = {2, 3}

        await sender.broadcast([1, 2, 3], "news")

        args, kwargs = log.info.call_args
        assert args == ("broadcast_finished",)
        assert kwargs["total"] == 3
        assert kwargs["fail_count"] == 2
        assert kwargs["failed_chat_ids"] == [2, 3]


class TestAnswerCallback:
    async def test_answer(self, sender, transport):
        assert await sender.answer_callback("q1", "Processed!") is True
        assert transport.answered == [("q1", "Processed!")]

    async def test_answer_failure_is_logged_not_raised(self, sender, transport):
        async def broken(query_id, text):
            raise NetworkError("timeout")

        transport.answer_callback = broken
        assert await sender.answer_callback("q1", "Processed!") is False
