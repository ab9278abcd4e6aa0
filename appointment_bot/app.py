"""
HTTP surface: messaging webhook, health check and the dashboard socket.

The webhook always answers 200 so the gateway never retries a message the
pipeline already stored; failures are logged instead.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect

from appointment_bot.agents.booking_agent import BookingAgent
from appointment_bot.agents.inbound import InboundProcessor
from appointment_bot.agents.reply_agent import ReplyAgent
from appointment_bot.config import AppConfig, settings
from appointment_bot.extraction.model_extractor import ModelExtractor
from appointment_bot.schemas.conversation_schema import InboundMessage, MessageType
from appointment_bot.tools.booking import BookingCommitEngine
from appointment_bot.tools.channel import MessagingChannel
from appointment_bot.tools.llm import OpenAICompletionClient
from appointment_bot.tools.notifications import NotificationBroadcaster
from appointment_bot.tools.storage import InMemoryStorage

logger = logging.getLogger(__name__)

_UPSERT_EVENTS = {"messages.upsert", "MESSAGES_UPSERT"}


def parse_webhook_payload(instance_name: str, payload: dict[str, Any]) -> Optional[InboundMessage]:
    """Turn a gateway ``messages.upsert`` event into an InboundMessage.

    Returns None for other events, our own messages, group chats and
    messages without usable text.
    """
    if payload.get("event") not in _UPSERT_EVENTS:
        return None
    data = payload.get("data") or {}
    key = data.get("key") or {}
    remote_jid = key.get("remoteJid") or ""
    if key.get("fromMe") or not remote_jid or remote_jid.endswith("@g.us"):
        return None

    message = data.get("message") or {}
    message_type = MessageType.TEXT
    text = message.get("conversation") or (message.get("extendedTextMessage") or {}).get("text")
    if not text and "audioMessage" in message:
        message_type = MessageType.AUDIO
        text = data.get("speechToText") or message.get("speechToText")
    if not text or not text.strip():
        logger.debug("Ignoring %s message without text", data.get("messageType"))
        return None

    raw_ts = data.get("messageTimestamp")
    try:
        timestamp = datetime.fromtimestamp(int(raw_ts), tz=timezone.utc)
    except (TypeError, ValueError):
        timestamp = datetime.now(timezone.utc)

    return InboundMessage(
        instance_name=payload.get("instance") or instance_name,
        contact_id=remote_jid.split("@")[0],
        text=text.strip(),
        message_id=key.get("id"),
        timestamp=timestamp,
        message_type=message_type,
        push_name=data.get("pushName"),
    )


def build_processor(
    storage: InMemoryStorage,
    broadcaster: NotificationBroadcaster,
    config: Optional[AppConfig] = None,
) -> InboundProcessor:
    """Wire the production collaborators around ``storage``."""
    config = config or settings
    completion = OpenAICompletionClient(config.model)
    engine = BookingCommitEngine(storage, broadcaster, config.scheduling)
    booking = BookingAgent(
        storage,
        engine,
        model_extractor=ModelExtractor(completion, config.model, config.scheduling.availability_days),
        config=config.scheduling,
    )
    return InboundProcessor(
        storage,
        MessagingChannel(config.channel),
        booking,
        ReplyAgent(completion, config),
        config=config,
    )


def create_app(
    processor: Optional[InboundProcessor] = None,
    broadcaster: Optional[NotificationBroadcaster] = None,
    config: Optional[AppConfig] = None,
) -> FastAPI:
    config = config or settings
    broadcaster = broadcaster or NotificationBroadcaster()
    if processor is None:
        storage = (
            InMemoryStorage.from_json(config.seed_data_path)
            if config.seed_data_path else InMemoryStorage()
        )
        processor = build_processor(storage, broadcaster, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s started", config.app_name)
        yield
        await processor.scheduler.shutdown()
        logger.info("%s stopped", config.app_name)

    app = FastAPI(title=config.app_name, lifespan=lifespan)
    app.state.processor = processor
    app.state.broadcaster = broadcaster

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "service": config.app_name,
            "pending_conversations": len(processor.scheduler.pending_keys),
            "listeners": broadcaster.listener_count,
        }

    @app.post("/webhook/{instance_name}")
    async def webhook(instance_name: str, request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except ValueError:
            logger.warning("Webhook for %s with invalid JSON body", instance_name)
            return {"status": "ignored"}
        if not isinstance(payload, dict):
            return {"status": "ignored"}

        inbound = parse_webhook_payload(instance_name, payload)
        if inbound is None:
            return {"status": "ignored"}
        try:
            thread = await processor.handle(inbound)
        except Exception:
            logger.exception("Failed to handle webhook message for %s", instance_name)
            return {"status": "error"}
        if thread is None:
            return {"status": "ignored"}
        return {"status": "queued", "conversation_id": thread.id}

    @app.websocket("/ws/notifications")
    async def notifications(websocket: WebSocket) -> None:
        await websocket.accept()
        queue = broadcaster.subscribe()
        try:
            while True:
                event = await queue.get()
                await websocket.send_json(event)
        except WebSocketDisconnect:
            logger.debug("Dashboard listener disconnected")
        finally:
            broadcaster.unsubscribe(queue)

    return app
