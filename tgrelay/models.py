"""Typed inbound events produced by transports and consumed by the dispatcher."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class Sender:
    user_id: int
    first_name: str = ""
    last_name: str = ""
    username: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class TextMessage:
    chat_id: int
    sender: Sender
    text: str
    message_id: int
    chat_type: str = "private"
    update_id: int | None = None


@dataclass(frozen=True)
class Command:
    chat_id: int
    sender: Sender
    name: str
    message_id: int
    args: str = ""
    chat_type: str = "private"
    update_id: int | None = None


@dataclass(frozen=True)
class CallbackQuery:
    # None when the button belongs to an inline-mode message with no chat
    chat_id: int | None
    sender: Sender
    query_id: str
    data: str = ""
    update_id: int | None = None


InboundEvent = Union[TextMessage, Command, CallbackQuery]


@dataclass
class DeliveryResult:
    success: bool
    error: str | None = None


@dataclass
class BroadcastTally:
    success_count: int = 0
    fail_count: int = 0
    failed_chat_ids: list[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + self.fail_count


_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_CHAT_ID_RE = re.compile(r"[+-]?[0-9]+")


def parse_chat_id(value: str) -> int | None:
    """Parse a decimal 64-bit chat id, returning None when malformed or out of range."""
    if not _CHAT_ID_RE.fullmatch(value):
        return None
    chat_id = int(value)
    if not _INT64_MIN <= chat_id <= _INT64_MAX:
        return None
    return chat_id
