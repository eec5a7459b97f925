"""Inbound event dispatch: records the source chat, then answers the event."""

from __future__ import annotations

from tgrelay.core import replies
from tgrelay.core.registry import ChatRegistry
from tgrelay.core.sender import MessageSender
from tgrelay.models import (
    CallbackQuery,
    Command,
    InboundEvent,
    TextMessage,
    parse_chat_id,
)
from tgrelay.utils.logging import get_logger

log = get_logger(__name__)


class Dispatcher:
    """Answers commands (/start, /help, /info, /echo, /sendto, /broadcast),
    plain text and callback queries."""

    def __init__(self, registry: ChatRegistry, sender: MessageSender) -> None:
        self._registry = registry
        self._sender = sender

    async def handle(self, event: InboundEvent) -> None:
        # Every event teaches us its chat before anything else happens
        if event.chat_id is not None:
            self._registry.record(event.chat_id)

        if isinstance(event, Command):
            await self._handle_command(event)
        elif isinstance(event, TextMessage):
            await self._handle_text(event)
        elif isinstance(event, CallbackQuery):
            await self._handle_callback(event)

    async def _handle_command(self, cmd: Command) -> None:
        log.info(
            "command_received",
            command=cmd.name,
            args=cmd.args,
            user=cmd.sender.username,
            chat_id=cmd.chat_id,
        )

        if cmd.name == "start":
            await self._reply(cmd, replies.welcome(cmd.sender))

        elif cmd.name == "help":
            await self._reply(cmd, replies.HELP)

        elif cmd.name == "info":
            await self._reply(cmd, replies.info(cmd.sender, cmd.chat_type, cmd.chat_id))

        elif cmd.name == "echo":
            if not cmd.args.strip():
                await self._reply(cmd, replies.ECHO_USAGE)
            else:
                await self._reply(cmd, replies.echo(cmd.args))

        elif cmd.name == "sendto":
            await self._handle_sendto(cmd)

        elif cmd.name == "broadcast":
            await self._handle_broadcast(cmd)

        else:
            await self._reply(cmd, replies.UNKNOWN_COMMAND)

    async def _handle_sendto(self, cmd: Command) -> None:
        parts = cmd.args.split(maxsplit=1)
        if len(parts) < 2:
            await self._reply(cmd, replies.SENDTO_USAGE)
            return

        target = parse_chat_id(parts[0])
        if target is None:
            await self._reply(cmd, replies.SENDTO_BAD_ID)
            return

        result = await self._sender.send(target, parts[1])
        await self._reply(cmd, replies.sendto_result(target, result.error))
        if result.success:
            log.info("sendto_delivered", user=cmd.sender.username, target=target)

    async def _handle_broadcast(self, cmd: Command) -> None:
        if not cmd.args.strip():
            await self._reply(cmd, replies.BROADCAST_USAGE)
            return

        chat_ids = self._registry.snapshot()
        if not chat_ids:
            await self._reply(cmd, replies.BROADCAST_NO_CHATS)
            return

        tally = await self._sender.broadcast(chat_ids, cmd.args)
        await self._reply(
            cmd, replies.broadcast_summary(tally.success_count, tally.fail_count)
        )
        log.info(
            "broadcast_command",
            user=cmd.sender.username,
            success_count=tally.success_count,
            fail_count=tally.fail_count,
        )

    async def _handle_text(self, msg: TextMessage) -> None:
        log.info("text_received", user=msg.sender.username, chat_id=msg.chat_id)
        log.debug("text_content", text=msg.text)
        await self._reply(msg, replies.text_reply(msg.sender, msg.text))

    async def _handle_callback(self, query: CallbackQuery) -> None:
        await self._sender.answer_callback(query.query_id, replies.CALLBACK_ACK)
        log.info("callback_received", data=query.data, user=query.sender.username)

    async def _reply(self, source: Command | TextMessage, text: str) -> None:
        await self._sender.send(source.chat_id, text, reply_to=source.message_id)
