"""Telegram transport using python-telegram-bot's Bot API client."""

from __future__ import annotations

from telegram import Bot, Message, ReplyParameters, Update, User
from telegram.constants import MessageEntityType
from telegram.error import TelegramError

from tgrelay.models import CallbackQuery, Command, InboundEvent, Sender, TextMessage
from tgrelay.transports.base import Transport, TransportError
from tgrelay.utils.logging import get_logger

log = get_logger(__name__)

_ALLOWED_UPDATES = ["message", "callback_query"]


def _sender(user: User | None) -> Sender:
    if user is None:
        # Channel posts carry no author
        return Sender(user_id=0)
    return Sender(
        user_id=user.id,
        first_name=user.first_name or "",
        last_name=user.last_name or "",
        username=user.username or "",
    )


def _command(message: Message, text: str) -> tuple[str, str] | None:
    """Split ``/name@bot args`` into (name, args) when the message opens with a bot command."""
    for entity in message.entities:
        if entity.type == MessageEntityType.BOT_COMMAND and entity.offset == 0:
            token = text[1:entity.length]
            name = token.split("@", 1)[0].lower()
            # One separator is dropped; the rest of the text is kept verbatim
            rest = text[entity.length:]
            return name, rest[1:]
    return None


def event_from_update(update: Update) -> InboundEvent | None:
    """Convert a Bot API update into an inbound event, or None if unsupported."""
    query = update.callback_query
    if query is not None:
        chat_id = query.message.chat.id if query.message is not None else None
        return CallbackQuery(
            chat_id=chat_id,
            sender=_sender(query.from_user),
            query_id=query.id,
            data=query.data or "",
            update_id=update.update_id,
        )

    message = update.message
    if message is None:
        return None

    text = message.text or message.caption or ""
    sender = _sender(message.from_user)
    parsed = _command(message, text)
    if parsed is not None:
        name, args = parsed
        return Command(
            chat_id=message.chat.id,
            sender=sender,
            name=name,
            args=args,
            message_id=message.message_id,
            chat_type=message.chat.type,
            update_id=update.update_id,
        )
    return TextMessage(
        chat_id=message.chat.id,
        sender=sender,
        text=text,
        message_id=message.message_id,
        chat_type=message.chat.type,
        update_id=update.update_id,
    )


class TelegramTransport(Transport):
    def __init__(self, token: str, poll_timeout: int = 60, bot: Bot | None = None) -> None:
        self._bot = bot or Bot(token)
        self._poll_timeout = poll_timeout
        # Next offset to poll from, and the highest update handed to a dispatcher
        self._offset: int | None = None
        self._acked: int | None = None
        self._receiving = True
        self._started = False

    @property
    def platform_name(self) -> str:
        return "telegram"

    async def start(self) -> None:
        try:
            await self._bot.initialize()
        except TelegramError as e:
            raise TransportError(f"failed to initialise Telegram bot: {e}") from e
        self._started = True
        log.info("telegram_authorized", username=self._bot.username)

    async def stop(self) -> None:
        self.stop_receiving()
        if not self._started:
            return
        if self._acked is not None:
            # Confirm dispatched updates only; anything fetched but dropped
            # on shutdown is redelivered on the next start
            try:
                await self._bot.get_updates(offset=self._acked + 1, timeout=0, limit=1)
            except TelegramError as e:
                log.warning("telegram_offset_confirm_failed", error=str(e))
        await self._bot.shutdown()
        self._started = False
        log.info("telegram_transport_stopped")

    def stop_receiving(self) -> None:
        self._receiving = False

    def ack(self, event: InboundEvent) -> None:
        if event.update_id is None:
            return
        if self._acked is None or event.update_id > self._acked:
            self._acked = event.update_id

    async def fetch_events(self) -> list[InboundEvent]:
        if not self._receiving:
            return []
        updates = await self._bot.get_updates(
            offset=self._offset,
            timeout=self._poll_timeout,
            allowed_updates=_ALLOWED_UPDATES,
        )
        events: list[InboundEvent] = []
        for update in updates:
            self._offset = update.update_id + 1
            event = event_from_update(update)
            if event is None:
                log.debug("telegram_update_skipped", update_id=update.update_id)
                continue
            events.append(event)
        return events

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_to: int | None = None,
    ) -> None:
        reply_parameters = None
        if reply_to is not None:
            reply_parameters = ReplyParameters(
                message_id=reply_to, allow_sending_without_reply=True
            )
        await self._bot.send_message(
            chat_id=chat_id, text=text, reply_parameters=reply_parameters
        )

    async def answer_callback(self, query_id: str, text: str) -> None:
        await self._bot.answer_callback_query(query_id, text=text)
