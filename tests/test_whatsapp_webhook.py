import pytest

from barberhub.domain.whatsapp.router import get_evolution_service, get_openai_service
from barberhub.main import app
from barberhub.models_whatsapp import WhatsAppConversation, WhatsAppInstance, WhatsAppMessage
from barberhub.shared.enums import InstanceStatus, MessageDirection
from conftest import FakeEvolution, FakeOpenAI, auth_headers, text_reply


@pytest.fixture
def instance(db, shop, barber, haircut):
    record = WhatsAppInstance(
        barbershop_id=shop.id,
        instance_name="navalha",
        status=InstanceStatus.CONNECTED,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def gateway():
    fake = FakeEvolution({("POST", "/message/sendText/navalha"): (201, {"key": {"id": "out-1"}})})
    app.dependency_overrides[get_evolution_service] = fake.service
    return fake


def inbound(text="Oi, tem horário amanhã?", jid="5511912345678@s.whatsapp.net", from_me=False):
    return {
        "event": "messages.upsert",
        "instance": "navalha",
        "data": {
            "key": {"remoteJid": jid, "fromMe": from_me, "id": "in-1"},
            "pushName": "Rodrigo",
            "message": {"conversation": text},
        },
    }


def test_test_payload_is_only_acknowledged(client, instance, gateway):
    response = client.post("/whatsapp/webhook", json={**inbound(), "test": True})

    assert response.json() == {"success": True, "test": True}
    assert gateway.requests == []


def test_unknown_instance_is_reported(client, shop, gateway):
    response = client.post("/whatsapp/webhook", json={**inbound(), "instance": "desconhecida"})

    assert response.status_code == 200
    assert response.json()["success"] is False


def test_inbound_message_is_answered_by_the_assistant(db, client, instance, gateway):
    app.dependency_overrides[get_openai_service] = FakeOpenAI(text_reply("Olá Rodrigo! Temos sim.")).service

    response = client.post("/whatsapp/webhook", json=inbound())

    assert response.json()["success"] is True
    sent = gateway.sent_json("/message/sendText/navalha")
    assert sent == [{"number": "5511912345678", "text": "Olá Rodrigo! Temos sim."}]

    conversation = db.query(WhatsAppConversation).one()
    assert conversation.client_phone == "11912345678"
    assert conversation.client_name == "Rodrigo"
    directions = [m.direction for m in db.query(WhatsAppMessage).order_by(WhatsAppMessage.id)]
    assert directions == [MessageDirection.INCOMING, MessageDirection.OUTGOING]


def test_extended_text_messages_are_read(client, instance, gateway):
    fake = FakeOpenAI(text_reply("Certo."))
    app.dependency_overrides[get_openai_service] = fake.service
    payload = inbound()
    payload["data"]["message"] = {"extendedTextMessage": {"text": "Qual o endereço?"}}

    client.post("/whatsapp/webhook", json=payload)

    assert fake.bodies[0]["messages"][-1] == {"role": "user", "content": "Qual o endereço?"}


@pytest.mark.parametrize(
    "payload",
    [
        inbound(from_me=True),
        inbound(jid="120363025246125888@g.us"),
        inbound(text="   "),
    ],
)
def test_own_group_and_empty_messages_are_ignored(db, client, instance, gateway, payload):
    fake = FakeOpenAI()
    app.dependency_overrides[get_openai_service] = fake.service

    response = client.post("/whatsapp/webhook", json=payload)

    assert response.json()["success"] is True
    assert "ignored" in response.json()
    assert fake.bodies == []
    assert db.query(WhatsAppConversation).count() == 0


def test_assistant_failure_does_not_fail_the_webhook(client, instance, gateway):
    app.dependency_overrides[get_openai_service] = FakeOpenAI(500, 500).service

    response = client.post("/whatsapp/webhook", json=inbound())

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert gateway.requests == []


def test_connection_update_tracks_the_gateway_state(db, client, instance, gateway):
    instance.status = InstanceStatus.AWAITING_QR_SCAN
    instance.qr_code = "base64-qr"
    db.commit()

    opened = client.post(
        "/whatsapp/webhook",
        json={"event": "CONNECTION_UPDATE", "instance": "navalha", "data": {"state": "open"}},
    )
    assert opened.json()["status"] == "connected"
    db.refresh(instance)
    assert instance.qr_code is None
    assert instance.last_connected_at is not None

    closed = client.post(
        "/whatsapp/webhook",
        json={"event": "connection.update", "instance": "navalha", "data": {"state": "close"}},
    )
    assert closed.json()["status"] == "disconnected"


def test_qrcode_update_stores_the_new_code(db, client, instance, gateway):
    client.post(
        "/whatsapp/webhook",
        json={"event": "qrcode.updated", "instance": "navalha", "data": {"qrcode": {"base64": "novo-qr"}}},
    )

    db.refresh(instance)
    assert instance.status == InstanceStatus.AWAITING_QR_SCAN
    assert instance.qr_code == "novo-qr"


def test_human_takeover_from_the_inbox_silences_replies(db, client, instance, gateway, receptionist):
    app.dependency_overrides[get_openai_service] = FakeOpenAI(text_reply("Olá!")).service
    client.post("/whatsapp/webhook", json=inbound())
    conversation_id = db.query(WhatsAppConversation).one().id
    headers = auth_headers(receptionist)

    taken = client.patch(
        f"/whatsapp/conversations/{conversation_id}", json={"human_takeover": True}, headers=headers
    )
    assert taken.json()["human_takeover"] is True

    client.post("/whatsapp/webhook", json=inbound(text="Ainda está aí?"))

    assert len(gateway.calls_to("/message/sendText")) == 1
    history = client.get(f"/whatsapp/conversations/{conversation_id}/messages", headers=headers).json()
    assert [m["content"] for m in history] == ["Oi, tem horário amanhã?", "Olá!", "Ainda está aí?"]
