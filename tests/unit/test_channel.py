"""
Unit tests for PushChannel.

Tests cover:
- Ordered delivery and listener isolation
- Idempotent subscribe and disposers
- Reconnect after a dropped or failed connection
"""

from contextlib import asynccontextmanager

import pytest

from marine_console.channel import PushChannel
from marine_console.models import Notification
from tests.conftest import eventually


class TestDispatch:
    """Tests for frame delivery."""

    @pytest.fixture
    def channel(self):
        return PushChannel("ws://testserver/ws/marines")

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, channel):
        received = []

        def broken(notification):
            raise RuntimeError("listener bug")

        channel.subscribe(broken)
        channel.subscribe(received.append)

        result = await channel.dispatch("created:5")

        assert result == Notification("created", "5")
        assert received == [Notification("created", "5")]

    @pytest.mark.asyncio
    async def test_async_listener_awaited(self, channel):
        received = []

        async def listener(notification):
            received.append(notification.kind)

        channel.subscribe(listener)
        await channel.dispatch("chapter_deleted:2")

        assert received == ["chapter_deleted"]

    @pytest.mark.asyncio
    async def test_arrival_order(self, channel):
        received = []
        channel.subscribe(received.append)

        for raw in ("created:1", "updated:1", "deleted:1"):
            await channel.dispatch(raw)

        assert [n.kind for n in received] == ["created", "updated", "deleted"]

    @pytest.mark.asyncio
    async def test_blank_frame_ignored(self, channel):
        received = []
        channel.subscribe(received.append)

        assert await channel.dispatch("  ") is None
        assert received == []


class TestSubscription:
    """Tests for listener registration."""

    @pytest.mark.asyncio
    async def test_subscribe_is_idempotent(self):
        channel = PushChannel("ws://testserver/ws/marines")
        received = []

        channel.subscribe(received.append)
        channel.subscribe(received.append)
        await channel.dispatch("created:1")

        assert channel.listener_count == 1
        assert len(received) == 1

    def test_disposer_unsubscribes(self):
        channel = PushChannel("ws://testserver/ws/marines")
        received = []

        dispose = channel.subscribe(received.append)
        dispose()
        dispose()

        assert channel.listener_count == 0


class TestConnection:
    """Tests for the connect/reconnect loop."""

    @pytest.mark.asyncio
    async def test_reconnects_after_drop(self, push):
        channel = PushChannel("ws://testserver/ws/marines", reconnect_delay=0.01, connector=push.connect)
        received = []
        channel.subscribe(received.append)

        push.send("created:1")
        push.drop()
        push.send("chapter_updated:2")
        await channel.start()
        await eventually(lambda: len(received) == 2)
        await channel.stop()

        assert [n.kind for n in received] == ["created", "chapter_updated"]
        assert channel.connect_count == 2
        assert push.urls == ["ws://testserver/ws/marines"] * 2
        assert not channel.is_connected

    @pytest.mark.asyncio
    async def test_reconnects_after_failure(self):
        attempts = []
        received = []

        @asynccontextmanager
        async def flaky(url):
            attempts.append(url)
            if len(attempts) == 1:
                raise ConnectionError("refused")

            async def frames():
                yield "imported"

            yield frames()

        channel = PushChannel("ws://testserver/ws/marines", reconnect_delay=0.01, connector=flaky)
        channel.subscribe(received.append)

        await channel.start()
        await eventually(lambda: len(received) >= 1)
        await channel.stop()

        assert received[0] == Notification("imported")
        assert len(attempts) >= 2
        assert channel.connect_count >= 1

    @pytest.mark.asyncio
    async def test_start_twice(self, push):
        channel = PushChannel("ws://testserver/ws/marines", connector=push.connect)

        await channel.start()
        await channel.start()
        await eventually(lambda: channel.is_connected)
        await channel.stop()

        assert push.connections == 1
        assert not channel.is_running

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        channel = PushChannel("ws://testserver/ws/marines")
        await channel.stop()
        assert not channel.is_running
