import httpx
import pytest

from barberhub.domain.whatsapp.recovery import WhatsAppRecoveryService
from barberhub.domain.whatsapp.router import get_evolution_service
from barberhub.domain.whatsapp.verify_fix import VerifyAndFixService
from barberhub.main import app
from barberhub.models_whatsapp import WhatsAppInstance, WhatsAppMessage
from barberhub.shared.enums import InstanceStatus, MessageDirection
from conftest import FakeEvolution, auth_headers

WEBHOOK = "https://api.barberhub.test/whatsapp/webhook"
STATE = ("GET", "/instance/connectionState/navalha")
FIND_WEBHOOK = ("GET", "/webhook/find/navalha")
SET_WEBHOOK = ("POST", "/webhook/set/navalha")
CONNECT = ("GET", "/instance/connect/navalha")
FETCH = ("GET", "/instance/fetchInstances")


@pytest.fixture
def instance(db, shop):
    record = WhatsAppInstance(
        barbershop_id=shop.id,
        instance_name="navalha",
        status=InstanceStatus.DISCONNECTED,
        webhook_url=WEBHOOK,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def healthy_gateway():
    routes = {
        STATE: (200, {"instance": {"instanceName": "navalha", "state": "open"}}),
        FIND_WEBHOOK: (200, {"url": WEBHOOK, "enabled": True}),
        SET_WEBHOOK: (201, {"webhook": {"url": WEBHOOK}}),
        CONNECT: (200, {"base64": "qr-base64"}),
        FETCH: (200, [{"instance": {"ownerJid": "5511912345678@s.whatsapp.net"}}]),
    }
    return FakeEvolution(routes)


# ============================================================================
# full_diagnosis
# ============================================================================


async def test_diagnosis_without_instance_is_critical(db, shop):
    result = await WhatsAppRecoveryService(db, healthy_gateway().service()).full_diagnosis(shop.id)

    assert result["instance"]["exists"] is False
    assert result["recommendations"][0]["severity"] == "critical"


async def test_healthy_diagnosis(db, instance):
    instance.status = InstanceStatus.CONNECTED
    db.commit()

    result = await WhatsAppRecoveryService(db, healthy_gateway().service()).full_diagnosis(instance.barbershop_id)

    assert result["evolution_api"] == {"reachable": True, "state": "open"}
    assert result["webhook"]["configured"] is True
    assert result["recommendations"] == [{"severity": "info", "message": "WhatsApp integration is healthy"}]


async def test_sending_without_receiving_is_flagged(db, instance, shop):
    from barberhub.models_whatsapp import WhatsAppConversation

    conversation = WhatsAppConversation(barbershop_id=shop.id, client_phone="11912345678")
    db.add(conversation)
    db.commit()
    db.add(
        WhatsAppMessage(
            conversation_id=conversation.id,
            barbershop_id=shop.id,
            direction=MessageDirection.OUTGOING,
            content="Lembrete",
        )
    )
    db.commit()
    gateway = healthy_gateway()
    gateway.routes[FIND_WEBHOOK] = (200, {"url": "http://old.example/hook"})

    result = await WhatsAppRecoveryService(db, gateway.service()).full_diagnosis(shop.id)

    assert result["messages"]["outgoing_24h"] == 1
    assert result["messages"]["incoming_24h"] == 0
    messages = [r["message"] for r in result["recommendations"]]
    assert "System is sending but not receiving messages" in messages
    assert result["webhook"] == {"configured": False, "url": "http://old.example/hook", "expected_url": WEBHOOK}


async def test_unreachable_gateway_is_critical(db, instance):
    gateway = healthy_gateway()
    gateway.routes[STATE] = (503, {"error": "down"})

    result = await WhatsAppRecoveryService(db, gateway.service()).full_diagnosis(instance.barbershop_id)

    assert result["evolution_api"]["reachable"] is False
    assert {"severity": "critical", "message": "Evolution API is unreachable"} in result["recommendations"]
    assert len(gateway.calls_to("/instance/connectionState")) == 2


# ============================================================================
# recover_system
# ============================================================================


async def test_recovery_runs_every_step_in_order(db, instance):
    gateway = healthy_gateway()
    gateway.routes[FIND_WEBHOOK] = (200, {})
    gateway.routes[STATE] = (200, {"instance": {"state": "close"}})

    result = await WhatsAppRecoveryService(db, gateway.service()).recover_system(instance.barbershop_id)

    assert result["success"] is True
    assert [(s["step"], s["status"]) for s in result["steps"]] == [
        ("instance_check", "success"),
        ("webhook_config", "success"),
        ("connection_check", "success"),
        ("reconnect", "success"),
        ("database_update", "success"),
    ]
    assert gateway.sent_json("/webhook/set")[0]["url"] == WEBHOOK
    db.refresh(instance)
    assert instance.status == InstanceStatus.AWAITING_QR_SCAN
    assert instance.qr_code == "qr-base64"


async def test_recovery_stops_at_first_failure_and_resumes(db, instance):
    broken = healthy_gateway()
    broken.routes[STATE] = (500, {"error": "boom"})

    first = await WhatsAppRecoveryService(db, broken.service()).recover_system(instance.barbershop_id)

    assert first["success"] is False
    assert first["stopped_at"] == "connection_check"
    assert [s["step"] for s in first["steps"]][-1] == "connection_check"
    assert broken.calls_to("/instance/connect") == []
    db.refresh(instance)
    assert instance.last_error.startswith("connection_check")

    second = await WhatsAppRecoveryService(db, healthy_gateway().service()).recover_system(instance.barbershop_id)

    statuses = {s["step"]: s["status"] for s in second["steps"]}
    assert statuses["webhook_config"] == "skipped"
    assert statuses["reconnect"] == "skipped"
    assert statuses["database_update"] == "success"
    db.refresh(instance)
    assert instance.status == InstanceStatus.CONNECTED
    assert instance.last_error is None


async def test_recovery_without_instance_fails_first_step(db, shop):
    result = await WhatsAppRecoveryService(db, healthy_gateway().service()).recover_system(shop.id)
    assert result["stopped_at"] == "instance_check"


# ============================================================================
# test_webhook
# ============================================================================


async def test_webhook_self_test_posts_a_synthetic_message(db, instance):
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(200, json={"success": True, "test": True})

    service = WhatsAppRecoveryService(db, healthy_gateway().service(), http_transport=httpx.MockTransport(handler))
    result = await service.test_webhook(instance.barbershop_id)

    assert result["success"] is True
    assert result["status"] == 200
    assert str(received[0].url) == WEBHOOK
    assert b'"test":true' in received[0].content.replace(b" ", b"")


async def test_webhook_self_test_reports_connection_errors(db, instance):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    service = WhatsAppRecoveryService(db, healthy_gateway().service(), http_transport=httpx.MockTransport(handler))
    result = await service.test_webhook(instance.barbershop_id)

    assert result["success"] is False
    assert "connection refused" in result["error"]


# ============================================================================
# HTTP surface
# ============================================================================


def test_recovery_endpoint_accepts_camel_case(client, instance, admin):
    app.dependency_overrides[get_evolution_service] = healthy_gateway().service

    response = client.post(
        "/whatsapp/recovery",
        json={"action": "full_diagnosis", "barbershopId": instance.barbershop_id},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    assert response.json()["action"] == "full_diagnosis"


def test_unknown_recovery_action_is_rejected(client, instance, admin):
    app.dependency_overrides[get_evolution_service] = healthy_gateway().service
    response = client.post(
        "/whatsapp/recovery",
        json={"action": "reboot_everything", "barbershopId": instance.barbershop_id},
        headers=auth_headers(admin),
    )
    assert response.status_code == 400


def test_recovery_is_admin_only(client, instance, receptionist):
    app.dependency_overrides[get_evolution_service] = healthy_gateway().service
    response = client.post(
        "/whatsapp/recovery",
        json={"action": "full_diagnosis", "barbershopId": instance.barbershop_id},
        headers=auth_headers(receptionist),
    )
    assert response.status_code == 403


# ============================================================================
# verify-and-fix
# ============================================================================


async def test_ghost_connection_is_fixed_with_a_new_qr_code(db, instance):
    instance.status = InstanceStatus.CONNECTED
    db.commit()
    gateway = healthy_gateway()
    gateway.routes[STATE] = (200, {"instance": {"state": "close"}})

    result = await VerifyAndFixService(db, gateway.service()).verify_and_fix(instance.barbershop_id)

    assert result["diagnosis"]["ghost_connection_detected"] is True
    assert "Ghost connection fixed" in result["applied_fixes"]
    assert "New QR code generated" in result["applied_fixes"]
    assert result["qr_code"] == "data:image/png;base64,qr-base64"
    db.refresh(instance)
    assert instance.status == InstanceStatus.AWAITING_QR_SCAN


async def test_connected_instance_gets_phone_and_webhook(db, instance):
    gateway = healthy_gateway()
    gateway.routes[FIND_WEBHOOK] = (404, {"error": "not found"})

    result = await VerifyAndFixService(db, gateway.service()).verify_and_fix(instance.barbershop_id)

    assert result["diagnosis"]["real_status"] == "connected"
    assert result["diagnosis"]["phone_connected"] is True
    assert "Webhook configured" in result["applied_fixes"]
    assert result["qr_code"] is None
    db.refresh(instance)
    assert instance.phone_number == "5511912345678"
    assert instance.status == InstanceStatus.CONNECTED


def test_verify_and_fix_endpoint_maps_gateway_outage(client, instance, admin):
    gateway = healthy_gateway()
    gateway.routes[STATE] = (502, {"error": "bad gateway"})
    app.dependency_overrides[get_evolution_service] = gateway.service

    response = client.post("/whatsapp/verify-and-fix", headers=auth_headers(admin))
    assert response.status_code == 502


def test_verify_and_fix_without_instance_is_not_found(client, admin):
    app.dependency_overrides[get_evolution_service] = healthy_gateway().service
    response = client.post("/whatsapp/verify-and-fix", headers=auth_headers(admin))
    assert response.status_code == 404
