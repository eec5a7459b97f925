"""tgrelay entry point: wires everything together and runs the relay."""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import Any, Coroutine

import click

from tgrelay.api.server import ControlAPI
from tgrelay.config import ConfigError, Settings, load_settings
from tgrelay.core.dispatcher import Dispatcher
from tgrelay.core.poller import PollLoop
from tgrelay.core.registry import ChatRegistry
from tgrelay.core.sender import MessageSender
from tgrelay.transports.base import Transport, TransportError
from tgrelay.transports.telegram_transport import TelegramTransport
from tgrelay.utils.logging import get_logger, setup_logging

log = get_logger(__name__)

# Extra time on top of shutdown_grace before stragglers are cancelled
_STOP_MARGIN = 5.0


class RelayApp:
    """Runs the poll loop and the control API side by side until stopped."""

    def __init__(self, settings: Settings, transport: Transport | None = None) -> None:
        self.settings = settings

        # Single registry shared by the dispatcher and the control API
        self.registry = ChatRegistry()
        self.transport = transport or TelegramTransport(
            settings.require_token(), poll_timeout=settings.poll_timeout
        )
        self.sender = MessageSender(self.transport)
        self.dispatcher = Dispatcher(self.registry, self.sender)
        self.poller = PollLoop(
            self.transport,
            self.dispatcher.handle,
            error_delay=settings.poll_error_delay,
            shutdown_grace=settings.shutdown_grace,
            max_inflight=settings.max_inflight_dispatches,
        )
        self.api: ControlAPI | None = None
        if settings.api_enabled:
            self.api = ControlAPI(
                self.registry,
                self.sender,
                bind=settings.api_bind,
                port=settings.api_port,
                shutdown_grace=settings.shutdown_grace,
            )

        self.stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []
        self.failed_tasks: list[str] = []

    async def start(self) -> None:
        """Authenticate, then launch the poll loop and the control API as tasks."""
        log.info("tgrelay_starting", api_enabled=self.api is not None)
        await self.transport.start()

        self._tasks.append(asyncio.create_task(
            self._supervise("poll_loop", self.poller.run(self.stop_event)),
            name="poll-loop",
        ))
        if self.api is not None:
            self._tasks.append(asyncio.create_task(
                self._supervise("control_api", self.api.run(self.stop_event)),
                name="control-api",
            ))
        log.info("tgrelay_ready")

    def request_stop(self) -> None:
        if not self.stop_event.is_set():
            log.info("tgrelay_stop_requested")
            self.stop_event.set()

    async def wait(self) -> None:
        """Wait for the stop signal, then for every task to finish."""
        await self.stop_event.wait()
        if self._tasks:
            _, pending = await asyncio.wait(
                self._tasks, timeout=self.settings.shutdown_grace + _STOP_MARGIN
            )
            if pending:
                names = [task.get_name() for task in pending]
                log.warning("tasks_cancelled_on_shutdown", tasks=names)
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
            self._tasks.clear()
        await self.transport.stop()
        log.info("tgrelay_stopped")

    async def _supervise(self, name: str, coro: Coroutine[Any, Any, None]) -> None:
        try:
            await coro
        except Exception:
            log.exception("task_crashed", task=name)
            self.failed_tasks.append(name)
        finally:
            # One side going down takes the other with it
            self.request_stop()


async def run(settings: Settings) -> int:
    try:
        app = RelayApp(settings)
    except ConfigError as e:
        log.error("config_error", error=str(e))
        return 1

    try:
        await app.start()
    except TransportError as e:
        log.error("startup_failed", error=str(e))
        app.request_stop()
        await app.wait()
        return 1

    loop = asyncio.get_running_loop()

    def _signal_handler() -> None:
        log.info("shutdown_signal")
        app.request_stop()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

    try:
        await app.wait()
    finally:
        if sys.platform != "win32":
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

    if app.failed_tasks:
        log.error("tgrelay_failed", tasks=app.failed_tasks)
        return 1
    return 0


@click.command()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--no-api", is_flag=True, help="Run only the Telegram poll loop")
def cli(config_path: str | None, log_level: str | None, no_api: bool) -> None:
    """Start the Telegram relay bot and its HTTP control API."""
    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        setup_logging()
        log.error("config_error", error=str(e))
        sys.exit(1)

    if log_level:
        settings.log_level = log_level
        settings.debug = log_level.upper() == "DEBUG"
    if no_api:
        settings.api_enabled = False
    setup_logging(level=settings.effective_log_level, json_output=settings.log_json)

    try:
        code = asyncio.run(run(settings))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    cli()
