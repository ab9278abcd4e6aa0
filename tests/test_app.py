"""Tests for the webhook payload parser and the HTTP app."""

import pytest
from fastapi.testclient import TestClient

from appointment_bot.agents import BookingAgent, InboundProcessor, ReplyAgent
from appointment_bot.app import build_processor, create_app, parse_webhook_payload
from appointment_bot.config import AppConfig, SchedulingConfig
from appointment_bot.conversation import DelayedTaskScheduler
from appointment_bot.schemas.conversation_schema import MessageType
from appointment_bot.tools.booking import BookingCommitEngine
from appointment_bot.tools.notifications import NotificationBroadcaster
from tests.conftest import FakeChannel, FakeCompletionClient


def upsert_payload(message=None, **key):
    return {
        "event": "messages.upsert",
        "instance": "bela",
        "data": {
            "key": {"remoteJid": "5549999214230@s.whatsapp.net", "fromMe": False, "id": "ABC1", **key},
            "pushName": "Maria",
            "message": message if message is not None else {"conversation": "oi, tudo bem?"},
            "messageType": "conversation",
            "messageTimestamp": 1742482800,
        },
    }


class TestParseWebhookPayload:
    def test_text_message(self):
        inbound = parse_webhook_payload("bela", upsert_payload())
        assert inbound.instance_name == "bela"
        assert inbound.contact_id == "5549999214230"
        assert inbound.text == "oi, tudo bem?"
        assert inbound.message_id == "ABC1"
        assert inbound.push_name == "Maria"
        assert inbound.timestamp.year == 2025

    def test_extended_text(self):
        payload = upsert_payload({"extendedTextMessage": {"text": "  quero marcar  "}})
        assert parse_webhook_payload("bela", payload).text == "quero marcar"

    def test_transcribed_audio(self):
        payload = upsert_payload({"audioMessage": {}})
        payload["data"]["speechToText"] = "quero um corte amanhã"
        inbound = parse_webhook_payload("bela", payload)
        assert inbound.message_type == MessageType.AUDIO
        assert inbound.text == "quero um corte amanhã"

    def test_audio_without_transcription(self):
        assert parse_webhook_payload("bela", upsert_payload({"audioMessage": {}})) is None

    def test_uppercase_event_name(self):
        payload = upsert_payload()
        payload["event"] = "MESSAGES_UPSERT"
        assert parse_webhook_payload("bela", payload) is not None

    @pytest.mark.parametrize("payload", [
        {"event": "connection.update", "data": {}},
        upsert_payload(fromMe=True),
        upsert_payload(remoteJid="120363025@g.us"),
        upsert_payload({"imageMessage": {}}),
        upsert_payload({"conversation": "   "}),
    ])
    def test_ignored(self, payload):
        assert parse_webhook_payload("bela", payload) is None

    def test_bad_timestamp_falls_back_to_now(self):
        payload = upsert_payload()
        payload["data"]["messageTimestamp"] = "ontem"
        assert parse_webhook_payload("bela", payload).timestamp.year >= 2025


@pytest.fixture
def processor(storage):
    config = AppConfig()
    return InboundProcessor(
        storage,
        FakeChannel(),
        BookingAgent(storage, BookingCommitEngine(storage, config=SchedulingConfig())),
        ReplyAgent(FakeCompletionClient(), config=config),
        scheduler=DelayedTaskScheduler(60),
        config=config,
    )


@pytest.fixture
def client(processor):
    app = create_app(processor=processor, broadcaster=NotificationBroadcaster(), config=AppConfig())
    with TestClient(app) as test_client:
        yield test_client


class TestHttpApp:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["pending_conversations"] == 0
        assert body["listeners"] == 0

    def test_message_is_queued(self, client, storage):
        response = client.post("/webhook/bela", json=upsert_payload())
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "queued"
        assert body["conversation_id"] in storage.conversations
        assert client.get("/health").json()["pending_conversations"] == 1

    def test_own_message_is_ignored(self, client, storage):
        response = client.post("/webhook/bela", json=upsert_payload(fromMe=True))
        assert response.json() == {"status": "ignored"}
        assert storage.messages == {}

    def test_unknown_instance_is_ignored(self, client):
        payload = upsert_payload()
        payload["instance"] = "outro"
        response = client.post("/webhook/outro", json=payload)
        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}

    def test_invalid_json_still_answers_200(self, client):
        response = client.post(
            "/webhook/bela", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}

    def test_handler_error_answers_200(self, client, processor, monkeypatch):
        async def explode(inbound):
            raise RuntimeError("storage offline")

        monkeypatch.setattr(processor, "handle", explode)
        response = client.post("/webhook/bela", json=upsert_payload())
        assert response.status_code == 200
        assert response.json() == {"status": "error"}


class TestBuildProcessor:
    def test_wires_production_collaborators(self, storage, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        processor = build_processor(storage, NotificationBroadcaster(), AppConfig())
        assert isinstance(processor, InboundProcessor)
        assert processor.scheduler.pending_keys == []
