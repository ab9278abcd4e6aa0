"""Tests for the outbound messaging channel."""

import json

import httpx
import pytest

from appointment_bot.config import ChannelConfig
from appointment_bot.tools.channel import MessagingChannel

CONFIG = ChannelConfig(api_url="http://gateway.test/", api_key="secret", timeout_sec=5)


def channel_with(handler) -> MessagingChannel:
    return MessagingChannel(CONFIG, transport=httpx.MockTransport(handler))


class TestMessagingChannel:
    @pytest.mark.asyncio
    async def test_posts_text_with_country_code(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"key": {"id": "XYZ"}})

        assert await channel_with(handler).send_text("bela", "(49) 99921-4230", "Olá!")
        request = seen[0]
        assert str(request.url) == "http://gateway.test/message/sendText/bela"
        assert request.headers["apikey"] == "secret"
        assert json.loads(request.content) == {"number": "5549999214230", "text": "Olá!"}

    @pytest.mark.asyncio
    async def test_rejected_send(self):
        def handler(request):
            return httpx.Response(500, text="instance offline")

        assert await channel_with(handler).send_text("bela", "49999214230", "Olá!") is False

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        assert await channel_with(handler).send_text("bela", "49999214230", "Olá!") is False
