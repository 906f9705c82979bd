"""
Tests for the provider gateway transports.

Requests go through an httpx MockTransport that records what was posted.
"""

import asyncio

import httpx
import pytest

from dispatch.channels import (
    ChannelType,
    DispatchResult,
    EmailTransport,
    SMSTransport,
    WhatsAppTransport,
    build_transports,
)
from shared.errors import TransportError


class TestPayloads:
    """Tests for what each transport posts."""

    def test_sms(self, gateway, http_client):
        transport = SMSTransport("https://gateway.test", "key-1", sender_id="TailorBuddy", client=http_client)

        asyncio.run(transport.send("+919876543210", "Your order is ready"))

        [request] = gateway.requests
        assert request.method == "POST"
        assert str(request.url) == "https://gateway.test/sms/send"
        assert request.headers["Authorization"] == "Bearer key-1"
        assert gateway.json(request) == {
            "to": "+919876543210",
            "message": "Your order is ready",
            "from": "TailorBuddy",
        }

    def test_whatsapp(self, gateway, http_client):
        transport = WhatsAppTransport("https://gateway.test/", "key-1", client=http_client)

        asyncio.run(transport.send("+919876543210", "Hello"))

        [request] = gateway.requests
        assert request.url.path == "/whatsapp/send"
        assert gateway.json(request) == {
            "to": "+919876543210",
            "type": "text",
            "text": {"body": "Hello"},
        }

    def test_email(self, gateway, http_client):
        transport = EmailTransport("https://gateway.test", "key-1", client=http_client)

        asyncio.run(transport.send("asha@example.com", "Body", subject="Subject"))

        assert gateway.bodies("/email/send") == [
            {"to": "asha@example.com", "subject": "Subject", "message": "Body"}
        ]

    def test_no_authorization_without_key(self, gateway, http_client):
        transport = SMSTransport("https://gateway.test", client=http_client)
        asyncio.run(transport.send("+91", "x"))
        assert "Authorization" not in gateway.requests[0].headers

    def test_long_sms_still_sent(self, gateway, http_client, caplog):
        transport = SMSTransport("https://gateway.test", client=http_client)

        asyncio.run(transport.send("+919876543210", "x" * 200))

        assert len(gateway.requests) == 1
        assert "exceeds 160" in caplog.text


class TestFailures:
    """Tests for provider and network failures."""

    def test_non_2xx_raises(self, gateway, http_client):
        gateway.fail_paths.add("/sms/send")
        transport = SMSTransport("https://gateway.test", client=http_client)

        with pytest.raises(TransportError) as excinfo:
            asyncio.run(transport.send("+919876543210", "Hello"))

        assert excinfo.value.channel == "sms"
        assert excinfo.value.recipient == "+919876543210"
        assert "503" in excinfo.value.reason

    def test_network_error_raises(self, gateway, http_client):
        gateway.unreachable.add("/whatsapp/send")
        transport = WhatsAppTransport("https://gateway.test", client=http_client)

        with pytest.raises(TransportError) as excinfo:
            asyncio.run(transport.send("+919876543210", "Hello"))

        assert "request error" in excinfo.value.reason

    def test_missing_url_raises_without_request(self, gateway, http_client):
        transport = EmailTransport("", client=http_client)

        with pytest.raises(TransportError):
            asyncio.run(transport.send("asha@example.com", "Body"))
        assert gateway.requests == []


class TestBuildTransports:
    """Tests for building transports from settings."""

    def test_one_per_channel(self, dispatch_settings):
        transports = build_transports(dispatch_settings)

        assert set(transports) == set(ChannelType)
        assert transports[ChannelType.SMS].url == "https://gateway.test/sms/send"
        assert transports[ChannelType.SMS].sender_id == "TailorBuddy"
        assert transports[ChannelType.EMAIL].api_key == "test-key"


class TestDispatchResult:
    """Tests for the result record."""

    def test_str_phone(self):
        result = DispatchResult(success=True, channel=ChannelType.SMS, recipient="+91", body="hello")
        assert str(result).startswith("✓ SMS to +91")

    def test_str_email(self):
        result = DispatchResult(
            success=False, channel=ChannelType.EMAIL, recipient="a@b.c", body="x", subject="Hi"
        )
        assert str(result) == "✗ EMAIL to a@b.c: Hi"
