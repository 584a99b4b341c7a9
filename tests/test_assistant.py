import json

import pytest

from barberhub.domain.whatsapp.assistant import FALLBACK_MESSAGE, HANDOFF_MESSAGE, WhatsAppAssistant
from barberhub.domain.whatsapp.router import get_openai_service
from barberhub.main import app
from barberhub.models import Appointment, Client
from barberhub.models_whatsapp import WhatsAppAIContext, WhatsAppConversation, WhatsAppMessage
from barberhub.services.openai_service import OpenAIError
from barberhub.shared.enums import AppointmentSource, MessageDirection
from barberhub.shared.retry import RetryError
from conftest import FakeOpenAI, auth_headers, text_reply, tool_reply

PHONE = "11912345678"


@pytest.fixture
def catalog(shop, barber, haircut):
    return shop


async def test_plain_reply_is_stored_with_the_conversation(db, catalog):
    fake = FakeOpenAI(text_reply("Olá! Como posso ajudar?"))
    assistant = WhatsAppAssistant(db, fake.service(), max_rounds=3)

    result = await assistant.handle_message(catalog.id, PHONE, "Oi")

    assert result["success"] is True
    assert result["ai_response"] == "Olá! Como posso ajudar?"
    conversation = db.get(WhatsAppConversation, result["conversation_id"])
    directions = [m.direction for m in conversation.messages]
    assert directions == [MessageDirection.INCOMING, MessageDirection.OUTGOING]
    assert conversation.messages[1].from_ai is True
    assert conversation.ai_context.step == "conversation"


async def test_system_prompt_lists_services_and_barbers(db, catalog):
    fake = FakeOpenAI(text_reply("Olá"))
    await WhatsAppAssistant(db, fake.service()).handle_message(catalog.id, PHONE, "Oi")

    body = fake.bodies[0]
    system = body["messages"][0]["content"]
    assert "Navalha de Ouro" in system
    assert "Corte: 30min" in system
    assert "Carlos Lima" in system
    assert [t["function"]["name"] for t in body["tools"]] == [
        "check_availability",
        "create_booking",
        "transfer_to_human",
    ]


async def test_availability_then_booking_creates_a_whatsapp_appointment(db, catalog, barber, haircut):
    fake = FakeOpenAI(
        tool_reply("check_availability", {"service": "corte", "date": "2030-01-07"}),
        tool_reply(
            "create_booking",
            {"service": "Corte", "barber": "carlos", "date": "2030-01-07", "time": "10:00", "client_name": "Marcos"},
            call_id="call_2",
        ),
        text_reply("Agendado para 07/01 às 10:00 com Carlos."),
    )
    assistant = WhatsAppAssistant(db, fake.service(), max_rounds=3)

    result = await assistant.handle_message(catalog.id, PHONE, "Quero cortar o cabelo dia 7 às 10h")

    assert result["ai_response"] == "Agendado para 07/01 às 10:00 com Carlos."
    assert result["intent"] == "booking"
    assert result["collected_data"]["name"] == "Marcos"

    appointment = db.get(Appointment, result["appointment_id"])
    assert appointment.source == AppointmentSource.WHATSAPP
    assert appointment.barber_id == barber.id
    assert appointment.service_id == haircut.id
    assert db.query(Client).filter(Client.phone == PHONE).one().name == "Marcos"

    availability = json.loads(fake.bodies[1]["messages"][-1]["content"])
    assert "10:00" in availability["available"]["Carlos Lima"]

    context = db.query(WhatsAppAIContext).one()
    assert context.step == "booked"
    assert db.get(WhatsAppConversation, result["conversation_id"]).client_name == "Marcos"


async def test_booking_conflict_is_reported_back_to_the_model(db, catalog, customer, barber, haircut):
    booking = {"service": "Corte", "barber": "Carlos", "date": "2030-01-07", "time": "10:00", "client_name": "Ana"}
    first = WhatsAppAssistant(
        db, FakeOpenAI(tool_reply("create_booking", booking), text_reply("ok")).service()
    )
    await first.handle_message(catalog.id, PHONE, "10h")

    fake = FakeOpenAI(tool_reply("create_booking", booking), text_reply("Esse horário já está ocupado."))
    result = await WhatsAppAssistant(db, fake.service()).handle_message(catalog.id, "11900001111", "10h")

    tool_result = json.loads(fake.bodies[1]["messages"][-1]["content"])
    assert tool_result["success"] is False
    assert result["appointment_id"] is None
    assert db.query(Appointment).count() == 1


@pytest.mark.parametrize("tool", ["check_availability", "create_booking"])
async def test_missing_date_is_reported_back_to_the_model(db, catalog, barber, haircut, tool):
    args = {"service": "Corte", "barber": "Carlos", "date": None, "time": None}
    fake = FakeOpenAI(tool_reply(tool, args), text_reply("Para qual dia?"))

    result = await WhatsAppAssistant(db, fake.service()).handle_message(catalog.id, PHONE, "quero cortar")

    tool_result = json.loads(fake.bodies[1]["messages"][-1]["content"])
    assert tool_result["error"] == "date must be YYYY-MM-DD"
    assert result["ai_response"] == "Para qual dia?"
    assert db.query(Appointment).count() == 0


async def test_transfer_to_human_sets_takeover_and_silences_the_assistant(db, catalog):
    fake = FakeOpenAI(tool_reply("transfer_to_human", {"reason": "reclamação"}))
    assistant = WhatsAppAssistant(db, fake.service())

    result = await assistant.handle_message(catalog.id, PHONE, "Quero falar com o gerente")

    assert result["ai_response"] == HANDOFF_MESSAGE
    assert result["human_takeover"] is True
    assert result["intent"] == "transfer_human"

    follow_up = await assistant.handle_message(catalog.id, PHONE, "Alô?")
    assert follow_up["ai_response"] is None
    assert follow_up["human_takeover"] is True
    assert len(fake.bodies) == 1
    assert db.query(WhatsAppMessage).count() == 3


async def test_exhausted_tool_rounds_ask_for_a_final_answer_without_tools(db, catalog):
    fake = FakeOpenAI(
        tool_reply("check_availability", {"service": "Corte", "date": "2030-01-07"}),
        text_reply("Temos horários a partir das 09:00."),
    )
    result = await WhatsAppAssistant(db, fake.service(), max_rounds=1).handle_message(catalog.id, PHONE, "Horários?")

    assert result["ai_response"] == "Temos horários a partir das 09:00."
    assert "tools" not in fake.bodies[1]


async def test_empty_model_reply_falls_back_to_a_canned_message(db, catalog):
    fake = FakeOpenAI(text_reply(""))
    result = await WhatsAppAssistant(db, fake.service()).handle_message(catalog.id, PHONE, "Oi")
    assert result["ai_response"] == FALLBACK_MESSAGE


async def test_transient_provider_errors_are_retried(db, catalog):
    fake = FakeOpenAI(503, text_reply("Olá"))
    result = await WhatsAppAssistant(db, fake.service()).handle_message(catalog.id, PHONE, "Oi")
    assert result["ai_response"] == "Olá"
    assert len(fake.bodies) == 2


async def test_persistent_provider_errors_surface(db, catalog):
    fake = FakeOpenAI(503, 503)
    with pytest.raises(RetryError):
        await WhatsAppAssistant(db, fake.service()).handle_message(catalog.id, PHONE, "Oi")


async def test_client_errors_are_not_retried(db, catalog):
    fake = FakeOpenAI(401)
    with pytest.raises(OpenAIError):
        await WhatsAppAssistant(db, fake.service()).handle_message(catalog.id, PHONE, "Oi")
    assert len(fake.bodies) == 1


def test_assistant_endpoint_answers_for_own_barbershop(client, catalog, receptionist):
    fake = FakeOpenAI(text_reply("Olá!"))
    app.dependency_overrides[get_openai_service] = fake.service

    response = client.post(
        "/whatsapp/assistant",
        json={"message": "Oi", "phone": "+55 11 91234-5678", "barbershop_id": catalog.id},
        headers=auth_headers(receptionist),
    )

    assert response.status_code == 200
    assert response.json()["ai_response"] == "Olá!"


def test_assistant_endpoint_rejects_other_barbershops(client, catalog, receptionist):
    app.dependency_overrides[get_openai_service] = FakeOpenAI().service
    response = client.post(
        "/whatsapp/assistant",
        json={"message": "Oi", "phone": PHONE, "barbershop_id": catalog.id + 1},
        headers=auth_headers(receptionist),
    )
    assert response.status_code == 403


def test_assistant_endpoint_maps_provider_failure_to_bad_gateway(client, catalog, receptionist):
    app.dependency_overrides[get_openai_service] = FakeOpenAI(500, 500).service
    response = client.post(
        "/whatsapp/assistant",
        json={"message": "Oi", "phone": PHONE, "barbershop_id": catalog.id},
        headers=auth_headers(receptionist),
    )
    assert response.status_code == 502
