"""Dynamic prompt construction from the tenant catalog and the current date."""

from datetime import date, timedelta
from typing import Optional, Sequence

from appointment_bot.conversation.date_resolver import next_weekday_table, weekday_label
from appointment_bot.prompts.system_prompts import (
    CHAT_STYLE_RULES,
    EXTRACTION_SYSTEM_PROMPT,
    REPLY_SYSTEM_PROMPT,
    SUMMARY_FORMAT,
)
from appointment_bot.schemas.booking_schema import Appointment
from appointment_bot.schemas.customer_schema import Professional, Service, Tenant
from appointment_bot.tools.availability import render_availability


def build_date_block(today: date) -> str:
    """Current date, its weekday, and the weekday -> next date table."""
    lines = [f"Hoje é {weekday_label(today)}, {today.strftime('%d/%m/%Y')}."]
    lines.append(f"Amanhã é {(today + timedelta(days=1)).strftime('%d/%m/%Y')}.")
    lines.append("Próximas datas por dia da semana:")
    for label, day in next_weekday_table(today):
        lines.append(f"  {label}: {day.strftime('%d/%m/%Y')}")
    return "\n".join(lines)


def build_catalog_block(
    professionals: Sequence[Professional],
    services: Sequence[Service],
    appointments: Sequence[Appointment] = (),
    today: Optional[date] = None,
    days: int = 7,
) -> str:
    """Active professionals (with availability when ``today`` is given) and services."""
    lines = ["Profissionais:"]
    active = [p for p in professionals if p.active]
    for professional in active:
        lines.append(f"  [id {professional.id}] {professional.name}")
    if not active:
        lines.append("  (nenhum profissional ativo)")

    lines.append("Serviços:")
    for service in services:
        lines.append(
            f"  [id {service.id}] {service.name} - {service.duration} min - R$ {service.price:.2f}"
        )

    if today is not None and active:
        lines.append(f"Disponibilidade dos próximos {days} dias:")
        for professional in active:
            lines.append(render_availability(professional, appointments, today, days))
    return "\n".join(lines)


def build_reply_system_prompt(
    tenant: Tenant,
    professionals: Sequence[Professional],
    services: Sequence[Service],
    appointments: Sequence[Appointment],
    today: date,
    days: int = 7,
) -> str:
    """System prompt for the conversational reply completion."""
    custom = f"\nINSTRUÇÕES DA EMPRESA:\n{tenant.assistant_prompt}\n" if tenant.assistant_prompt else ""
    header = REPLY_SYSTEM_PROMPT.format(
        company=tenant.name,
        style=CHAT_STYLE_RULES,
        summary_format=SUMMARY_FORMAT,
        custom=custom,
    )
    return "\n\n".join([
        header,
        build_date_block(today),
        build_catalog_block(professionals, services, appointments, today, days),
    ])


def build_extraction_messages(
    transcript: str,
    professionals: Sequence[Professional],
    services: Sequence[Service],
    appointments: Sequence[Appointment],
    today: date,
    days: int = 7,
) -> list[dict[str, str]]:
    """Chat messages for the single structured-extraction completion."""
    user = "\n\n".join([
        build_date_block(today),
        build_catalog_block(professionals, services, appointments, today, days),
        f"Conversa:\n{transcript}",
    ])
    return [
        {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


def build_booking_confirmation(
    appointment: Appointment,
    professional_name: str,
    service_name: str,
) -> str:
    """Message sent to the customer after a booking is committed."""
    day = appointment.appointment_date
    lines = [
        "✅ Agendamento confirmado!",
        "",
        f"👤 {appointment.client_name}",
        f"💇 {professional_name}",
        f"✂️ {service_name}",
        f"📅 {weekday_label(day)}, {day.strftime('%d/%m/%Y')}",
        f"⏰ {appointment.appointment_time}",
    ]
    if appointment.total_price:
        lines.append(f"💰 R$ {appointment.total_price:.2f}")
    lines.extend(["", "Até lá!"])
    return "\n".join(lines)
