"""Tests for the booking event broadcaster."""

import logging
from datetime import date

import pytest

from appointment_bot.schemas.booking_schema import BookingCreatedEvent
from appointment_bot.tools.notifications import NotificationBroadcaster


def make_event(appointment_id: int = 1) -> BookingCreatedEvent:
    return BookingCreatedEvent(
        appointment_id=appointment_id,
        client_name="Maria Silva",
        service_name="Corte Feminino",
        professional_name="Ana",
        appointment_date=date(2025, 3, 25),
        appointment_time="14:00",
    )


class TestBroadcaster:
    @pytest.mark.asyncio
    async def test_every_listener_receives_the_event(self):
        broadcaster = NotificationBroadcaster()
        first, second = broadcaster.subscribe(), broadcaster.subscribe()
        assert broadcaster.publish(make_event()) == 2
        assert (await first.get())["appointment_id"] == 1
        assert (await second.get())["client_name"] == "Maria Silva"

    @pytest.mark.asyncio
    async def test_payload_is_json_ready(self):
        broadcaster = NotificationBroadcaster()
        queue = broadcaster.subscribe()
        broadcaster.publish(make_event())
        payload = queue.get_nowait()
        assert payload["type"] == "new_appointment"
        assert payload["appointment_date"] == "2025-03-25"

    @pytest.mark.asyncio
    async def test_no_listeners(self):
        assert NotificationBroadcaster().publish(make_event()) == 0

    @pytest.mark.asyncio
    async def test_unsubscribed_listener_gets_nothing(self):
        broadcaster = NotificationBroadcaster()
        queue = broadcaster.subscribe()
        broadcaster.unsubscribe(queue)
        broadcaster.publish(make_event())
        assert queue.empty()
        assert broadcaster.listener_count == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_without_blocking_others(self, caplog):
        broadcaster = NotificationBroadcaster(max_queue_size=1)
        slow, fast = broadcaster.subscribe(), broadcaster.subscribe()
        broadcaster.publish(make_event(1))
        fast.get_nowait()
        with caplog.at_level(logging.WARNING):
            delivered = broadcaster.publish(make_event(2))
        assert delivered == 1
        assert slow.get_nowait()["appointment_id"] == 1
        assert fast.get_nowait()["appointment_id"] == 2
        assert "queue full" in caplog.text
