from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest

from barberhub.domain.whatsapp.reminders import ReminderService
from barberhub.models import Appointment
from barberhub.models_whatsapp import WhatsAppAutomationLog, WhatsAppInstance
from barberhub.shared.enums import AppointmentStatus, AutomationType, InstanceStatus
from conftest import FakeEvolution, auth_headers

SEND = ("POST", "/message/sendText/navalha")


@pytest.fixture
def connected(db, shop):
    instance = WhatsAppInstance(barbershop_id=shop.id, instance_name="navalha", status=InstanceStatus.CONNECTED)
    db.add(instance)
    db.commit()
    return instance


@pytest.fixture
def make_appointment(db, shop, customer, barber, haircut):
    def make(day, start, status=AppointmentStatus.SCHEDULED):
        appointment = Appointment(
            barbershop_id=shop.id,
            client_id=customer.id,
            barber_id=barber.id,
            service_id=haircut.id,
            appointment_date=day,
            start_time=start,
            end_time=(datetime.combine(day, start) + timedelta(minutes=30)).time(),
            price=Decimal("50.00"),
            status=status,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return make


def test_due_24h_selects_active_appointments_tomorrow(db, make_appointment):
    wanted = make_appointment(date(2030, 1, 7), time(10, 0))
    make_appointment(date(2030, 1, 7), time(11, 0), status=AppointmentStatus.CANCELLED)
    make_appointment(date(2030, 1, 8), time(10, 0))

    due = ReminderService(db, FakeEvolution().service()).due_24h(datetime(2030, 1, 6, 12, 0))

    assert [a.id for a in due] == [wanted.id]


def test_due_1h_is_a_same_day_window(db, make_appointment):
    make_appointment(date(2030, 1, 7), time(9, 30))
    inside = make_appointment(date(2030, 1, 7), time(10, 15))
    make_appointment(date(2030, 1, 7), time(11, 0))

    due = ReminderService(db, FakeEvolution().service()).due_1h(datetime(2030, 1, 7, 9, 30))

    assert [a.id for a in due] == [inside.id]


async def test_reminders_are_sent_once(db, connected, make_appointment):
    appointment = make_appointment(date(2030, 1, 7), time(10, 0))
    gateway = FakeEvolution({SEND: (201, {"key": {"id": "r1"}})})
    service = ReminderService(db, gateway.service())

    first = await service.send_due_reminders(now=datetime(2030, 1, 6, 12, 0))
    second = await service.send_due_reminders(now=datetime(2030, 1, 6, 12, 15))

    assert first["reminders_24h"] == 1
    assert second == {"reminders_24h": 0, "reminders_1h": 0, "skipped": 1, "failed": 0}
    sent = gateway.sent_json("/message/sendText")
    assert len(sent) == 1
    assert sent[0]["number"] == "5511987654321"
    assert sent[0]["text"].startswith("Olá João! Lembrete: amanhã (07/01) às 10:00 você tem Corte com Carlos Lima")
    log = db.query(WhatsAppAutomationLog).one()
    assert log.appointment_id == appointment.id
    assert log.automation_type == AutomationType.REMINDER_24H
    assert log.status == "sent"


async def test_one_hour_reminder_is_independent_of_the_daily_one(db, connected, make_appointment):
    make_appointment(date(2030, 1, 7), time(10, 0))
    gateway = FakeEvolution({SEND: (201, {})})
    service = ReminderService(db, gateway.service())

    await service.send_due_reminders(now=datetime(2030, 1, 6, 12, 0))
    summary = await service.send_due_reminders(now=datetime(2030, 1, 7, 9, 15))

    assert summary["reminders_1h"] == 1
    assert "começa às 10:00" in gateway.sent_json("/message/sendText")[1]["text"]


async def test_nothing_is_sent_without_a_connected_instance(db, shop, make_appointment):
    db.add(WhatsAppInstance(barbershop_id=shop.id, instance_name="navalha", status=InstanceStatus.DISCONNECTED))
    db.commit()
    make_appointment(date(2030, 1, 7), time(10, 0))
    gateway = FakeEvolution({SEND: (201, {})})

    summary = await ReminderService(db, gateway.service()).send_due_reminders(now=datetime(2030, 1, 6, 12, 0))

    assert summary["skipped"] == 1
    assert gateway.requests == []
    assert db.query(WhatsAppAutomationLog).count() == 0


async def test_failed_delivery_is_logged_and_retried_next_run(db, connected, make_appointment):
    make_appointment(date(2030, 1, 7), time(10, 0))
    failing = FakeEvolution({SEND: (400, {"error": "number not on WhatsApp"})})

    summary = await ReminderService(db, failing.service()).send_due_reminders(now=datetime(2030, 1, 6, 12, 0))

    assert summary["failed"] == 1
    log = db.query(WhatsAppAutomationLog).one()
    assert log.status == "failed"
    assert "400" in log.error_message

    working = FakeEvolution({SEND: (201, {})})
    retry = await ReminderService(db, working.service()).send_due_reminders(now=datetime(2030, 1, 6, 12, 15))
    assert retry["reminders_24h"] == 1


def test_reminder_endpoint_is_admin_only(client, receptionist):
    response = client.post("/whatsapp/reminders/run", headers=auth_headers(receptionist))
    assert response.status_code == 403
