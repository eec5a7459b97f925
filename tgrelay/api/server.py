"""Control API HTTP server using aiohttp."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from aiohttp import web
from pydantic import BaseModel, ValidationError

from tgrelay.api.models import (
    BroadcastRequest,
    BroadcastResponse,
    ChatsResponse,
    HealthResponse,
    SendMessageRequest,
    SendMessageResponse,
    describe_validation_error,
)
from tgrelay.core.registry import ChatRegistry
from tgrelay.core.sender import MessageSender
from tgrelay.models import parse_chat_id
from tgrelay.utils.logging import get_logger

log = get_logger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": (
        "Origin, Content-Type, Content-Length, Accept-Encoding, X-CSRF-Token, Authorization"
    ),
    "Access-Control-Expose-Headers": "Content-Length",
    "Access-Control-Allow-Credentials": "true",
}

ENDPOINTS = (
    ("POST", "/api/v1/send", "send a message"),
    ("POST", "/api/v1/broadcast", "broadcast a message"),
    ("GET", "/api/v1/chats", "list known chats"),
    ("GET", "/health", "health check"),
)


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception:
        log.exception("api_handler_error", method=request.method, path=request.path)
        return _json(
            SendMessageResponse(success=False, message="internal server error"), status=500
        )


def _json(body: BaseModel, status: int = 200) -> web.Response:
    return web.json_response(body.model_dump(exclude_none=True), status=status)


class ControlAPI:
    """HTTP endpoints to send to one chat, broadcast to all, and list known chats."""

    def __init__(
        self,
        registry: ChatRegistry,
        sender: MessageSender,
        *,
        bind: str = "0.0.0.0",
        port: int = 8080,
        shutdown_grace: float = 10.0,
    ) -> None:
        self._registry = registry
        self._sender = sender
        self._bind = bind
        self._port = port
        self._shutdown_grace = shutdown_grace
        self._runner: web.AppRunner | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self, stop: asyncio.Event) -> None:
        """Serve until ``stop`` is set, then shut down gracefully."""
        await self.start()
        try:
            await stop.wait()
        finally:
            await self.stop()

    async def start(self) -> None:
        app = self._build_app()
        # shutdown_timeout bounds how long in-flight requests may run on cleanup
        self._runner = web.AppRunner(app, shutdown_timeout=self._shutdown_grace)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._bind, self._port)
        await site.start()
        log.info("api_server_started", bind=self._bind, port=self.port)
        for method, path, description in ENDPOINTS:
            log.info("api_endpoint", method=method, path=path, description=description)

    async def stop(self) -> None:
        if self._runner is not None:
            log.info("api_server_stopping", grace=self._shutdown_grace)
            await self._runner.cleanup()
            self._runner = None
        log.info("api_server_stopped")

    @property
    def port(self) -> int:
        """The bound port, which differs from the configured one when that was 0."""
        if self._runner is not None:
            for address in self._runner.addresses:
                if isinstance(address, tuple) and len(address) >= 2:
                    return int(address[1])
        return self._port

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    def _build_app(self) -> web.Application:
        app = web.Application(middlewares=[cors_middleware, error_middleware])
        app.router.add_get("/health", self._handle_health)
        app.router.add_post("/api/v1/send", self._handle_send)
        app.router.add_post("/api/v1/broadcast", self._handle_broadcast)
        app.router.add_get("/api/v1/chats", self._handle_chats)
        return app

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        return _json(HealthResponse(message="Telegram relay API is running"))

    async def _handle_send(self, request: web.Request) -> web.Response:
        try:
            req = SendMessageRequest.model_validate_json(await request.read())
        except ValidationError as e:
            return _json(
                SendMessageResponse(
                    success=False,
                    message=f"invalid request: {describe_validation_error(e)}",
                ),
                status=400,
            )

        chat_id = parse_chat_id(req.chat_id)
        if chat_id is None:
            return _json(
                SendMessageResponse(
                    success=False,
                    message="invalid chat_id, it must be a numeric chat id",
                ),
                status=400,
            )

        result = await self._sender.send(chat_id, req.message)
        if not result.success:
            return _json(
                SendMessageResponse(
                    success=False, message=f"failed to send message: {result.error}"
                ),
                status=500,
            )

        log.info("api_send_delivered", chat_id=chat_id)
        return _json(
            SendMessageResponse(success=True, message="message sent", chat_id=chat_id)
        )

    async def _handle_broadcast(self, request: web.Request) -> web.Response:
        try:
            req = BroadcastRequest.model_validate_json(await request.read())
        except ValidationError as e:
            return _json(
                BroadcastResponse(
                    success=False,
                    message=f"invalid request: {describe_validation_error(e)}",
                ),
                status=400,
            )

        chat_ids = self._registry.snapshot()
        if not chat_ids:
            return _json(
                BroadcastResponse(
                    success=False,
                    message=(
                        "no known chats yet; add the bot to a group "
                        "or start a conversation with it first"
                    ),
                ),
                status=400,
            )

        tally = await self._sender.broadcast(chat_ids, req.message)
        return _json(
            BroadcastResponse(
                success=True,
                message="broadcast finished",
                success_count=tally.success_count,
                fail_count=tally.fail_count,
            )
        )

    async def _handle_chats(self, request: web.Request) -> web.Response:
        chat_ids = sorted(self._registry.snapshot())
        return _json(
            ChatsResponse(
                message="known chats listed",
                chat_ids=chat_ids,
                count=len(chat_ids),
            )
        )
