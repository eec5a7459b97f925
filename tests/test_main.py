"""Tests for the lifecycle coordinator."""

import asyncio
import os
import signal
import sys

import aiohttp
import pytest
from click.testing import CliRunner

from conftest import FakeTransport
from tgrelay import main as main_module
from tgrelay.config import ConfigError, Settings
from tgrelay.main import RelayApp, cli, run
from tgrelay.models import Sender, TextMessage


def settings(**overrides):
    values = {
        "telegram_bot_token": "123:abc",
        "api_enabled": False,
        "api_bind": "127.0.0.1",
        "api_port": 0,
        "shutdown_grace": 1.0,
        "poll_error_delay": 0.01,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


async def wait_until(predicate, timeout=2.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


class TestRelayApp:
    async def test_poll_loop_only(self, transport):
        app = RelayApp(settings(), transport=transport)
        assert app.api is None
        await app.start()
        assert transport.started

        transport.push([
            TextMessage(chat_id=9, sender=Sender(user_id=1), text="hello", message_id=3)
        ])
        await wait_until(lambda: transport.sent_to(9))
        assert 9 in app.registry

        app.request_stop()
        await asyncio.wait_for(app.wait(), 5)
        assert transport.stopped
        assert transport.receiving is False

    async def test_api_and_poll_loop_share_registry(self, transport):
        app = RelayApp(settings(api_enabled=True), transport=transport)
        await app.start()
        await wait_until(lambda: app.api._runner is not None and app.api.port != 0)

        transport.push([
            TextMessage(chat_id=-77, sender=Sender(user_id=1), text="hi", message_id=3)
        ])
        await wait_until(lambda: -77 in app.registry)

        async with aiohttp.ClientSession() as session:
            url = f"http://127.0.0.1:{app.api.port}/api/v1/chats"
            async with session.get(url) as resp:
                body = await resp.json()
        assert body["chat_ids"] == [-77]

        app.request_stop()
        await asyncio.wait_for(app.wait(), 5)
        assert app.api._runner is None
        assert app.poller.state.value == "shutting_down"

    async def test_crashed_task_stops_the_other(self, transport):
        app = RelayApp(settings(api_enabled=True), transport=transport)

        async def broken_run(stop):
            raise OSError("address already in use")

        app.api.run = broken_run
        await app.start()
        await asyncio.wait_for(app.wait(), 5)
        assert app.stop_event.is_set()
        assert transport.stopped
        assert app.failed_tasks == ["control_api"]

    async def test_clean_stop_records_no_failures(self, transport):
        app = RelayApp(settings(), transport=transport)
        await app.start()
        app.request_stop()
        await asyncio.wait_for(app.wait(), 5)
        assert app.failed_tasks == []

    async def test_wait_is_bounded_when_dispatch_hangs(self, transport):
        app = RelayApp(
            settings(shutdown_grace=0.1, max_inflight_dispatches=1), transport=transport
        )
        hung = asyncio.Event()

        async def stuck(event):
            hung.set()
            await asyncio.Event().wait()

        app.poller._dispatch = stuck
        await app.start()
        transport.push([
            TextMessage(chat_id=1, sender=Sender(user_id=1), text="a", message_id=1),
            TextMessage(chat_id=2, sender=Sender(user_id=1), text="b", message_id=2),
        ])
        await asyncio.wait_for(hung.wait(), 2)

        app.request_stop()
        await asyncio.wait_for(app.wait(), 3)
        assert transport.stopped
        assert len(transport.acked) == 1

    def test_missing_token_without_transport(self):
        with pytest.raises(ConfigError):
            RelayApp(settings(telegram_bot_token=""))


class TestRun:
    async def test_missing_token_exits_1(self):
        assert await run(settings(telegram_bot_token="")) == 1

    async def test_transport_failure_exits_1(self, monkeypatch):
        monkeypatch.setattr(
            main_module, "TelegramTransport", lambda *a, **kw: FakeTransport(fail_start=True)
        )
        assert await run(settings()) == 1

    async def test_crashed_api_exits_1(self, monkeypatch):
        monkeypatch.setattr(main_module, "TelegramTransport", lambda *a, **kw: FakeTransport())

        async def broken_run(self, stop):
            raise OSError("address already in use")

        monkeypatch.setattr(main_module.ControlAPI, "run", broken_run)
        code = await asyncio.wait_for(run(settings(api_enabled=True)), 5)
        assert code == 1

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
    async def test_sigterm_exits_0(self, monkeypatch):
        fake = FakeTransport()
        monkeypatch.setattr(main_module, "TelegramTransport", lambda *a, **kw: fake)
        loop = asyncio.get_running_loop()
        loop.call_later(0.3, os.kill, os.getpid(), signal.SIGTERM)

        code = await asyncio.wait_for(run(settings()), 5)
        assert code == 0
        assert fake.stopped


class TestCli:
    def test_missing_token_exit_code(self, monkeypatch, tmp_path):
        monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
        monkeypatch.chdir(tmp_path)
        result = CliRunner().invoke(cli, ["--no-api", "--log-level", "INFO"])
        assert result.exit_code == 1

    def test_invalid_env_value_exit_code(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
        monkeypatch.setenv("API_ENABLED", "maybe")
        monkeypatch.chdir(tmp_path)
        result = CliRunner().invoke(cli, ["--no-api"])
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
