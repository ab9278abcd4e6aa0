from appointment_bot.agents.booking_agent import BookingAgent, BookingAttempt
from appointment_bot.agents.inbound import InboundProcessor
from appointment_bot.agents.reply_agent import ReplyAgent

__all__ = ["BookingAgent", "BookingAttempt", "InboundProcessor", "ReplyAgent"]
