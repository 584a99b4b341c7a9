"""Appointment reminders sent through the WhatsApp gateway (run by the worker cron)"""

import logging
from datetime import datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Appointment, Barbershop
from ...models_whatsapp import WhatsAppAutomationLog
from ...services.evolution_service import EvolutionService
from ...shared.enums import AppointmentStatus, AutomationType, InstanceStatus
from ...shared.validators import to_whatsapp_number
from .recovery import REMOTE_ERRORS
from .repository import WhatsAppRepository

logger = logging.getLogger(__name__)

REMINDABLE_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)

TEMPLATES = {
    AutomationType.REMINDER_24H: (
        "Olá {client}! Lembrete: amanhã ({date}) às {time} você tem {service} "
        "com {barber} na {barbershop}. Até lá!"
    ),
    AutomationType.REMINDER_1H: (
        "Olá {client}! Seu horário de {service} com {barber} na {barbershop} "
        "começa às {time}. Estamos te esperando!"
    ),
}


def render_reminder(automation_type: AutomationType, appointment: Appointment, barbershop: Barbershop) -> str:
    return TEMPLATES[automation_type].format(
        client=appointment.client.name.split(" ")[0],
        date=appointment.appointment_date.strftime("%d/%m"),
        time=appointment.start_time.strftime("%H:%M"),
        service=appointment.service.name,
        barber=appointment.barber.full_name,
        barbershop=barbershop.name,
    )


class ReminderService:
    def __init__(self, db: Session, evolution: Optional[EvolutionService] = None):
        self.db = db
        self.repo = WhatsAppRepository()
        self.evolution = evolution or EvolutionService()

    def _base_query(self):
        return (
            self.db.query(Appointment)
            .options(
                joinedload(Appointment.client),
                joinedload(Appointment.barber),
                joinedload(Appointment.service),
            )
            .filter(Appointment.status.in_(REMINDABLE_STATUSES))
        )

    def due_24h(self, now: datetime) -> list[Appointment]:
        """Every active appointment tomorrow"""
        tomorrow = (now + timedelta(days=1)).date()
        return self._base_query().filter(Appointment.appointment_date == tomorrow).all()

    def due_1h(self, now: datetime) -> list[Appointment]:
        """Active appointments starting within the next hour, same day"""
        window_end = now + timedelta(hours=1)
        end_time = window_end.time() if window_end.date() == now.date() else time(23, 59, 59)
        return (
            self._base_query()
            .filter(
                Appointment.appointment_date == now.date(),
                Appointment.start_time > now.time().replace(microsecond=0),
                Appointment.start_time <= end_time,
            )
            .all()
        )

    async def send_due_reminders(self, now: Optional[datetime] = None) -> dict:
        now = now or datetime.now()
        summary = {"reminders_24h": 0, "reminders_1h": 0, "skipped": 0, "failed": 0}

        batches = [
            (AutomationType.REMINDER_24H, "reminders_24h", self.due_24h(now)),
            (AutomationType.REMINDER_1H, "reminders_1h", self.due_1h(now)),
        ]
        for automation_type, counter, appointments in batches:
            logger.info(f"⏰ {len(appointments)} appointment(s) due for {automation_type.value}")
            for appointment in appointments:
                outcome = await self._send(automation_type, appointment)
                if outcome == "sent":
                    summary[counter] += 1
                else:
                    summary[outcome] += 1

        logger.info(f"✅ Reminder run finished: {summary}")
        return summary

    async def _send(self, automation_type: AutomationType, appointment: Appointment) -> str:
        if self.repo.reminder_sent(self.db, appointment.id, automation_type):
            return "skipped"
        if not appointment.client or not appointment.client.phone:
            return "skipped"

        instance = self.repo.get_instance(self.db, appointment.barbershop_id)
        if not instance or instance.status != InstanceStatus.CONNECTED:
            logger.debug(f"No connected instance for barbershop {appointment.barbershop_id}")
            return "skipped"

        barbershop = self.db.get(Barbershop, appointment.barbershop_id)
        text = render_reminder(automation_type, appointment, barbershop)
        number = to_whatsapp_number(appointment.client.phone)
        log = WhatsAppAutomationLog(
            barbershop_id=appointment.barbershop_id,
            appointment_id=appointment.id,
            automation_type=automation_type,
            payload={"number": number, "text": text},
        )
        try:
            await self.evolution.send_text(instance.instance_name, number, text)
            log.status = "sent"
        except REMOTE_ERRORS as e:
            logger.error(f"❌ {automation_type.value} for appointment {appointment.id} failed: {str(e)}")
            log.status = "failed"
            log.error_message = str(e)
        self.repo.log_automation(self.db, log)
        return "sent" if log.status == "sent" else "failed"
