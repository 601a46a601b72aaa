"""
Message Channel Tests
=====================

Tests for request/response sends and the fire-and-forget wrapper.
"""

import logging

import pytest

from flash_guard.messaging import MessageChannel, SendResult


class TestMessageChannel:
    """Tests for MessageChannel."""

    @pytest.mark.asyncio
    async def test_send_to_receiver(self):
        channel = MessageChannel()

        async def echo(message):
            return {"success": True, "got": message["value"]}

        channel.register("echo", echo)
        result = await channel.send({"action": "echo", "value": 3})

        assert result == SendResult(success=True, response={"success": True, "got": 3})

    @pytest.mark.asyncio
    async def test_missing_receiver(self):
        result = await MessageChannel().send({"action": "updateStats"})
        assert not result.success
        assert "No receiver" in result.error

    @pytest.mark.asyncio
    async def test_receiver_error(self):
        channel = MessageChannel()

        async def broken(message):
            raise RuntimeError("boom")

        channel.register("broken", broken)
        result = await channel.send({"action": "broken"})

        assert not result.success
        assert result.error == "boom"
        assert channel.metrics()["messages_failed"] == 1

    @pytest.mark.asyncio
    async def test_unregister(self):
        channel = MessageChannel()

        async def handler(message):
            return None

        channel.register("a", handler)
        channel.unregister("a")
        assert not channel.has_receiver("a")

    @pytest.mark.asyncio
    async def test_fire_and_forget_logs_failure(self, caplog):
        channel = MessageChannel()

        with caplog.at_level(logging.WARNING, logger="flash_guard.messaging.channel"):
            channel.fire_and_forget({"action": "nobody"})
            await channel.drain()

        assert any("not delivered" in r.message for r in caplog.records)

    @pytest.mark.asyncio
    async def test_fire_and_forget_delivers(self):
        channel = MessageChannel()
        received = []

        async def handler(message):
            received.append(message)

        channel.register("note", handler)
        channel.fire_and_forget({"action": "note", "n": 1})
        await channel.drain()

        assert received == [{"action": "note", "n": 1}]
        assert channel.metrics()["pending_sends"] == 0
