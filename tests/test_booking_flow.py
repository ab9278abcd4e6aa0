"""End-to-end tests of booking detection, extraction, commit and replies."""

import json
import logging
from dataclasses import replace

import pytest

from appointment_bot.agents import BookingAgent, InboundProcessor, ReplyAgent
from appointment_bot.agents.inbound import CONFLICT_REPLY
from appointment_bot.agents.reply_agent import FALLBACK_REPLY
from appointment_bot.config import AppConfig, ModelConfig, SchedulingConfig
from appointment_bot.conversation import DelayedTaskScheduler
from appointment_bot.conversation.state_machine import SignalKind
from appointment_bot.errors import CompletionError
from appointment_bot.extraction.model_extractor import ModelExtractor
from appointment_bot.schemas.conversation_schema import (
    ConversationThread,
    InboundMessage,
    MessageRole,
)
from appointment_bot.tools.booking import BookingCommitEngine, CommitOutcome
from appointment_bot.tools.storage import InMemoryStorage
from tests.conftest import (
    CUSTOMER_PHONE,
    NEXT_TUESDAY,
    PROFESSIONALS,
    SERVICES,
    SUMMARY_TEXT,
    TENANT,
    TODAY,
    FakeChannel,
    FakeCompletionClient,
    booking_conversation,
    make_appointment,
    make_conversation,
)

ANNOUNCEMENT_TURNS = [
    ("user", "Barba com o Carlos terça às 10:00, meu nome é João Pereira"),
    ("assistant", "Carlos está livre terça às 10:00. Posso marcar?"),
    ("user", "pode sim"),
]
ANNOUNCEMENT_TEXT = "Pronto, agendamento confirmado para terça às 10:00!"
JOAO_ANSWER = json.dumps({
    "clientName": "João Pereira",
    "clientPhone": None,
    "professionalId": 11,
    "serviceId": 21,
    "appointmentDate": "2025-03-25",
    "appointmentTime": "10:00",
})


def build_agent(storage, model_client=None, config=None):
    config = config or SchedulingConfig()
    extractor = ModelExtractor(model_client, config=ModelConfig()) if model_client else None
    engine = BookingCommitEngine(storage, config=config)
    return BookingAgent(storage, engine, model_extractor=extractor, config=config)


def build_processor(storage, channel, reply_client, model_client=None, delay=0.0):
    config = AppConfig()
    return InboundProcessor(
        storage,
        channel,
        build_agent(storage, model_client),
        ReplyAgent(reply_client, config=config),
        scheduler=DelayedTaskScheduler(delay),
        config=config,
    )


async def seed_thread(storage, turns=None):
    thread = await storage.create_conversation(ConversationThread(
        tenant_id=TENANT.id, instance_name="bela", phone_number=CUSTOMER_PHONE,
    ))
    messages = booking_conversation() if turns is None else make_conversation(turns)
    for message in messages:
        await storage.create_message(message.model_copy(update={"conversation_id": thread.id}))
    return thread


def seeded(storage_cls=InMemoryStorage):
    store = storage_cls()
    store.add_tenant(TENANT)
    for professional in PROFESSIONALS:
        store.add_professional(professional)
    for service in SERVICES:
        store.add_service(service)
    return store


class FailingStorage(InMemoryStorage):
    async def create_appointment(self, appointment):
        raise RuntimeError("disk full")


class BrokenCompletionClient:
    async def complete(self, messages, temperature, max_tokens):
        raise CompletionError("timeout")


class TestBookingAgent:
    @pytest.mark.asyncio
    async def test_books_from_confirmed_summary(self, storage, thread):
        attempt = await build_agent(storage).try_book(TENANT, thread, booking_conversation(), TODAY)
        assert attempt is not None
        assert attempt.signal.kind == SignalKind.SUMMARY
        assert attempt.result.outcome == CommitOutcome.CREATED
        stored = list(storage.appointments.values())
        assert len(stored) == 1
        assert stored[0].client_name == "Maria Silva"
        assert stored[0].appointment_date == NEXT_TUESDAY
        assert stored[0].appointment_time == "14:00"
        assert stored[0].client_phone == "(49) 99921-4230"

    @pytest.mark.asyncio
    async def test_second_sim_is_a_duplicate(self, storage, thread):
        agent = build_agent(storage)
        await agent.try_book(TENANT, thread, booking_conversation(), TODAY)
        again = await agent.try_book(TENANT, thread, booking_conversation(), TODAY)
        assert again.result.outcome == CommitOutcome.DUPLICATE
        assert len(storage.appointments) == 1

    @pytest.mark.asyncio
    async def test_no_confirmation_no_booking(self, storage, thread):
        messages = booking_conversation(reply="na verdade prefiro quarta")
        assert await build_agent(storage).try_book(TENANT, thread, messages, TODAY) is None
        assert storage.appointments == {}

    @pytest.mark.asyncio
    async def test_no_date_reference_skips_extraction(self, storage, thread):
        turns = [
            ("user", "Barba com o Carlos às 10:00"),
            ("assistant", "Posso marcar?"),
            ("user", "pode sim"),
            ("assistant", "Pronto, agendamento confirmado para as 10:00!"),
        ]
        model = FakeCompletionClient(JOAO_ANSWER)
        attempt = await build_agent(storage, model).try_book(
            TENANT, thread, make_conversation(turns), TODAY
        )
        assert attempt is None
        assert model.calls == []

    @pytest.mark.asyncio
    async def test_model_fallback_cannot_invent_a_time(self, storage, thread):
        summary = SUMMARY_TEXT.replace("14:00", "à tarde")
        messages = make_conversation([
            ("user", "Quero um corte com a Ana terça à tarde"),
            ("assistant", "Qual seu nome?"),
            ("user", "Maria Silva"),
            ("assistant", summary),
            ("user", "sim"),
        ])
        model = FakeCompletionClient(json.dumps({
            "clientName": "Maria Silva", "clientPhone": "", "professionalId": 10,
            "serviceId": 20, "appointmentDate": "2025-03-25", "appointmentTime": "14:00",
        }))
        attempt = await build_agent(storage, model).try_book(TENANT, thread, messages, TODAY)
        assert attempt is None
        assert len(model.calls) == 1
        assert storage.appointments == {}

    @pytest.mark.asyncio
    async def test_announcement_without_a_time_is_not_booked(self, storage, thread):
        messages = make_conversation([
            ("user", "Barba com o Carlos terça, meu nome é João Pereira"),
            ("assistant", "Posso marcar?"),
            ("user", "pode sim"),
            ("assistant", "Pronto, agendamento confirmado!"),
        ])
        model = FakeCompletionClient(JOAO_ANSWER)
        attempt = await build_agent(storage, model).try_book(TENANT, thread, messages, TODAY)
        assert attempt is None
        assert storage.appointments == {}

    @pytest.mark.asyncio
    async def test_numeric_date_alone_is_not_a_date_reference(self, storage, thread):
        messages = make_conversation([
            ("user", "Corte com a Ana dia 25/03 às 14h, sou a Maria Silva"),
            ("assistant", SUMMARY_TEXT),
            ("user", "sim"),
        ])
        assert await build_agent(storage).try_book(TENANT, thread, messages, TODAY) is None
        assert storage.appointments == {}

    @pytest.mark.asyncio
    async def test_weekday_in_summary_counts_as_date_reference(self, storage, thread):
        summary = SUMMARY_TEXT.replace("25/03/2025", "terça-feira, 25/03/2025")
        messages = make_conversation([
            ("user", "Corte com a Ana dia 25/03 às 14h, sou a Maria Silva"),
            ("assistant", summary),
            ("user", "sim"),
        ])
        attempt = await build_agent(storage).try_book(TENANT, thread, messages, TODAY)
        assert attempt.result.outcome == CommitOutcome.CREATED
        assert attempt.candidate.appointment_date == NEXT_TUESDAY

    @pytest.mark.asyncio
    async def test_fallback_can_be_disabled(self, storage, thread):
        summary = SUMMARY_TEXT.replace("14:00", "à tarde")
        messages = booking_conversation(summary)
        messages = [m for m in messages if "14h" not in m.content]
        model = FakeCompletionClient(JOAO_ANSWER)
        config = replace(SchedulingConfig(), model_fallback_enabled=False)
        attempt = await build_agent(storage, model, config).try_book(TENANT, thread, messages, TODAY)
        assert attempt is None
        assert model.calls == []

    @pytest.mark.asyncio
    async def test_announcement_uses_model(self, storage, thread):
        messages = make_conversation([*ANNOUNCEMENT_TURNS, ("assistant", ANNOUNCEMENT_TEXT)])
        model = FakeCompletionClient(JOAO_ANSWER)
        attempt = await build_agent(storage, model).try_book(TENANT, thread, messages, TODAY)
        assert attempt.signal.kind == SignalKind.ANNOUNCEMENT
        assert attempt.candidate.client_name == "João Pereira"
        assert attempt.candidate.professional_name == "Carlos"
        assert attempt.result.outcome == CommitOutcome.CREATED

    @pytest.mark.asyncio
    async def test_announcement_without_model_is_nothing(self, storage, thread):
        messages = make_conversation([*ANNOUNCEMENT_TURNS, ("assistant", ANNOUNCEMENT_TEXT)])
        assert await build_agent(storage).try_book(TENANT, thread, messages, TODAY) is None

    @pytest.mark.asyncio
    async def test_unparseable_model_answer_is_nothing(self, storage, thread):
        messages = make_conversation([*ANNOUNCEMENT_TURNS, ("assistant", ANNOUNCEMENT_TEXT)])
        model = FakeCompletionClient("Claro, já agendei!")
        assert await build_agent(storage, model).try_book(TENANT, thread, messages, TODAY) is None
        assert storage.appointments == {}


class TestReplyAgent:
    @pytest.mark.asyncio
    async def test_prompt_and_history(self):
        client = FakeCompletionClient("Olá! Em que posso ajudar?")
        agent = ReplyAgent(client, config=AppConfig())
        text = await agent.reply(
            TENANT, PROFESSIONALS, SERVICES, [], make_conversation([("user", "oi")]), TODAY
        )
        assert text == "Olá! Em que posso ajudar?"
        chat = client.calls[0]["messages"]
        assert "Salão Bela" in chat[0]["content"]
        assert "Hoje é quinta-feira, 20/03/2025" in chat[0]["content"]
        assert chat[1] == {"role": "user", "content": "oi"}

    @pytest.mark.asyncio
    async def test_completion_failure_falls_back(self):
        agent = ReplyAgent(BrokenCompletionClient(), config=AppConfig())
        text = await agent.reply(TENANT, PROFESSIONALS, SERVICES, [], [], TODAY)
        assert text == FALLBACK_REPLY


class TestInboundProcessor:
    @pytest.mark.asyncio
    async def test_unknown_instance_is_ignored(self, storage):
        processor = build_processor(storage, FakeChannel(), FakeCompletionClient())
        inbound = InboundMessage(instance_name="outro", contact_id="5549999214230", text="oi")
        assert await processor.handle(inbound) is None
        assert storage.messages == {}

    @pytest.mark.asyncio
    async def test_message_is_stored_and_answered(self, storage):
        channel = FakeChannel()
        processor = build_processor(storage, channel, FakeCompletionClient("Olá! Qual serviço?"))
        inbound = InboundMessage(
            instance_name="bela", contact_id="5549999214230", text="oi", push_name="Maria"
        )
        thread = await processor.handle(inbound)
        await processor.scheduler.drain()

        assert thread.phone_number == CUSTOMER_PHONE
        assert thread.contact_name == "Maria"
        assert channel.sent == [("bela", CUSTOMER_PHONE, "Olá! Qual serviço?")]
        history = await storage.get_messages_by_conversation(thread.id)
        assert [m.role for m in history] == [MessageRole.CUSTOMER, MessageRole.ASSISTANT]

    @pytest.mark.asyncio
    async def test_burst_is_answered_once_on_the_same_thread(self, storage):
        channel = FakeChannel()
        processor = build_processor(storage, channel, FakeCompletionClient("Certo!"), delay=0.05)
        first = await processor.handle(
            InboundMessage(instance_name="bela", contact_id="5549999214230", text="oi")
        )
        second = await processor.handle(
            InboundMessage(instance_name="bela", contact_id="5549999214230", text="quero marcar")
        )
        await processor.scheduler.drain()
        assert first.id == second.id
        assert len(storage.conversations) == 1
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_confirmed_summary_books_and_confirms(self, storage):
        channel = FakeChannel()
        reply_client = FakeCompletionClient()
        processor = build_processor(storage, channel, reply_client)
        thread = await seed_thread(storage)

        await processor.process(TENANT, thread, today=TODAY)

        assert len(storage.appointments) == 1
        assert len(channel.sent) == 1
        assert channel.sent[0][2].startswith("✅ Agendamento confirmado!")
        assert reply_client.calls == []

    @pytest.mark.asyncio
    async def test_taken_slot_gets_conflict_reply(self, storage):
        storage.appointments[99] = make_appointment("14:00")
        channel = FakeChannel()
        processor = build_processor(storage, channel, FakeCompletionClient())
        thread = await seed_thread(storage)

        await processor.process(TENANT, thread, today=TODAY)

        assert list(storage.appointments) == [99]
        assert channel.sent[0][2] == CONFLICT_REPLY

    @pytest.mark.asyncio
    async def test_reply_that_announces_booking_is_committed(self, storage):
        channel = FakeChannel()
        processor = build_processor(
            storage, channel, FakeCompletionClient(ANNOUNCEMENT_TEXT),
            model_client=FakeCompletionClient(JOAO_ANSWER),
        )
        thread = await seed_thread(storage, ANNOUNCEMENT_TURNS)

        await processor.process(TENANT, thread, today=TODAY)

        assert [text for _, _, text in channel.sent] == [ANNOUNCEMENT_TEXT]
        stored = list(storage.appointments.values())
        assert len(stored) == 1
        assert stored[0].professional_id == 11
        assert stored[0].appointment_time == "10:00"

    @pytest.mark.asyncio
    async def test_persistence_failure_is_logged(self, caplog):
        storage = seeded(FailingStorage)
        channel = FakeChannel()
        processor = build_processor(storage, channel, FakeCompletionClient())
        thread = await seed_thread(storage)

        with caplog.at_level(logging.ERROR):
            await processor.process(TENANT, thread, today=TODAY)

        assert storage.appointments == {}
        assert channel.sent == []
        assert "could not be saved" in caplog.text

    @pytest.mark.asyncio
    async def test_undelivered_reply_is_still_stored(self, storage):
        processor = build_processor(storage, FakeChannel(succeed=False), FakeCompletionClient("Oi!"))
        thread = await seed_thread(storage, [("user", "oi")])

        await processor.process(TENANT, thread, today=TODAY)

        history = await storage.get_messages_by_conversation(thread.id)
        assert history[-1].content == "Oi!"
