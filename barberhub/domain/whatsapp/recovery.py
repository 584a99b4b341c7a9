"""
WhatsApp recovery toolkit
Full diagnosis, resumable step-by-step recovery and webhook self-test
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

import httpx
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import HTTP_TIMEOUT_SECONDS, WHATSAPP_WEBHOOK_URL
from ...models_whatsapp import WhatsAppInstance
from ...services.evolution_service import EvolutionAPIError, EvolutionService
from ...shared.enums import InstanceStatus, RecoveryAction, Severity, StepStatus
from ...shared.retry import RetryError
from .repository import WhatsAppRepository

logger = logging.getLogger(__name__)

REMOTE_ERRORS = (EvolutionAPIError, RetryError, httpx.HTTPError)

# Remote connection state -> stored instance status
STATE_TO_STATUS = {
    "open": InstanceStatus.CONNECTED,
    "connecting": InstanceStatus.AWAITING_QR_SCAN,
}


def status_for_state(state: Optional[str]) -> InstanceStatus:
    return STATE_TO_STATUS.get(state or "", InstanceStatus.DISCONNECTED)


def webhook_matches(webhook: Optional[dict], expected_url: str) -> bool:
    if not webhook:
        return False
    return webhook.get("url") == expected_url and webhook.get("enabled", True) is not False


class RecoveryReport:
    """Ordered step results; the first failure stops the run"""

    def __init__(self):
        self.steps: list[dict[str, Any]] = []

    def add(self, step: str, status: StepStatus, message: str) -> None:
        self.steps.append({"step": step, "status": status.value, "message": message})
        icon = {"success": "✅", "skipped": "⏭️", "failed": "❌"}[status.value]
        logger.info(f"{icon} Recovery step {step}: {message}")

    @property
    def failed(self) -> bool:
        return any(s["status"] == StepStatus.FAILED.value for s in self.steps)

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": not self.failed,
            "steps": self.steps,
            "stopped_at": self.steps[-1]["step"] if self.failed else None,
        }


class WhatsAppRecoveryService:
    """Diagnosis and recovery for a barbershop's gateway instance"""

    def __init__(
        self,
        db: Session,
        evolution: Optional[EvolutionService] = None,
        webhook_url: str = WHATSAPP_WEBHOOK_URL,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.repo = WhatsAppRepository()
        self.evolution = evolution or EvolutionService()
        self.webhook_url = webhook_url
        self.http_transport = http_transport

    def _expected_webhook(self, instance: Optional[WhatsAppInstance]) -> str:
        return (instance.webhook_url if instance and instance.webhook_url else None) or self.webhook_url

    # ------------------------------------------------------------------
    # full_diagnosis
    # ------------------------------------------------------------------

    async def full_diagnosis(self, barbershop_id: int) -> dict[str, Any]:
        logger.info(f"🔍 Starting full WhatsApp diagnosis for barbershop {barbershop_id}")
        instance = self.repo.get_instance(self.db, barbershop_id)
        messages = self.repo.message_counts_since(
            self.db, barbershop_id, datetime.now() - timedelta(hours=24)
        )

        diagnosis: dict[str, Any] = {
            "instance": {
                "exists": instance is not None,
                "status": instance.status.value if instance else None,
                "instance_name": instance.instance_name if instance else None,
                "has_qr_code": bool(instance and instance.qr_code),
                "updated_at": instance.updated_at if instance else None,
            },
            "messages": messages,
            "evolution_api": None,
            "webhook": None,
            "recommendations": [],
        }
        recommendations = diagnosis["recommendations"]

        if not instance:
            recommendations.append(
                {"severity": Severity.CRITICAL.value, "message": "No WhatsApp instance configured"}
            )
            return diagnosis

        expected = self._expected_webhook(instance)
        try:
            state = await self.evolution.connection_state(instance.instance_name)
            diagnosis["evolution_api"] = {"reachable": True, "state": state}
        except REMOTE_ERRORS as e:
            logger.error(f"❌ Evolution API unreachable during diagnosis: {str(e)}")
            diagnosis["evolution_api"] = {"reachable": False, "state": None, "error": str(e)}

        try:
            webhook = await self.evolution.find_webhook(instance.instance_name)
            diagnosis["webhook"] = {
                "configured": webhook_matches(webhook, expected),
                "url": (webhook or {}).get("url"),
                "expected_url": expected,
            }
        except REMOTE_ERRORS as e:
            diagnosis["webhook"] = {"configured": False, "url": None, "expected_url": expected, "error": str(e)}

        if messages["incoming_24h"] == 0 and messages["outgoing_24h"] > 0:
            recommendations.append(
                {
                    "severity": Severity.CRITICAL.value,
                    "message": "System is sending but not receiving messages",
                }
            )
        if not diagnosis["evolution_api"]["reachable"]:
            recommendations.append(
                {"severity": Severity.CRITICAL.value, "message": "Evolution API is unreachable"}
            )
        elif diagnosis["evolution_api"]["state"] != "open":
            recommendations.append(
                {
                    "severity": Severity.WARNING.value,
                    "message": f"WhatsApp connection state is {diagnosis['evolution_api']['state']}",
                }
            )
        if instance.qr_code and instance.status != InstanceStatus.CONNECTED:
            recommendations.append(
                {"severity": Severity.WARNING.value, "message": "Instance is waiting for a QR code scan"}
            )
        if not diagnosis["webhook"]["configured"]:
            recommendations.append(
                {
                    "severity": Severity.WARNING.value,
                    "message": "Webhook is missing or points elsewhere; run recover_system",
                }
            )
        if not recommendations:
            recommendations.append({"severity": Severity.INFO.value, "message": "WhatsApp integration is healthy"})

        return diagnosis

    # ------------------------------------------------------------------
    # recover_system
    # ------------------------------------------------------------------

    async def recover_system(self, barbershop_id: int) -> dict[str, Any]:
        """
        Run the recovery steps in order.

        Every step first checks whether its target state already holds and is
        skipped if so, which makes a rerun after a failure resume where the
        previous run stopped.
        """
        logger.info(f"🔄 Starting WhatsApp recovery for barbershop {barbershop_id}")
        report = RecoveryReport()

        instance = self.repo.get_instance(self.db, barbershop_id)
        if not instance:
            report.add("instance_check", StepStatus.FAILED, "Instance not found")
            return report.as_dict()
        report.add("instance_check", StepStatus.SUCCESS, f"Instance {instance.instance_name} found")

        name = instance.instance_name
        expected = self._expected_webhook(instance)
        remote_state: dict[str, Optional[str]] = {"state": None}

        async def webhook_config():
            webhook = await self.evolution.find_webhook(name)
            if webhook_matches(webhook, expected):
                return StepStatus.SKIPPED, "Webhook already configured"
            await self.evolution.set_webhook(name, expected)
            instance.webhook_url = expected
            self.db.commit()
            return StepStatus.SUCCESS, f"Webhook set to {expected}"

        async def connection_check():
            remote_state["state"] = await self.evolution.connection_state(name)
            return StepStatus.SUCCESS, f"Connection state is {remote_state['state']}"

        async def reconnect():
            if remote_state["state"] == "open":
                return StepStatus.SKIPPED, "Instance already connected"
            qr_code = await self.evolution.connect(name)
            if qr_code:
                instance.qr_code = qr_code
                self.db.commit()
            return StepStatus.SUCCESS, "Reconnection started"

        async def database_update():
            status = status_for_state(remote_state["state"])
            if remote_state["state"] != "open" and instance.qr_code:
                status = InstanceStatus.AWAITING_QR_SCAN
            if instance.status == status and not instance.last_error:
                return StepStatus.SKIPPED, f"Stored status already {status.value}"
            instance.status = status
            instance.last_error = None
            if status == InstanceStatus.CONNECTED:
                instance.last_connected_at = datetime.now()
            self.db.commit()
            return StepStatus.SUCCESS, f"Stored status set to {status.value}"

        steps: list[tuple[str, Callable[[], Awaitable[tuple[StepStatus, str]]]]] = [
            ("webhook_config", webhook_config),
            ("connection_check", connection_check),
            ("reconnect", reconnect),
            ("database_update", database_update),
        ]
        for step_name, step in steps:
            try:
                status, message = await step()
            except REMOTE_ERRORS as e:
                instance.last_error = f"{step_name}: {str(e)}"
                self.db.commit()
                report.add(step_name, StepStatus.FAILED, str(e))
                break
            report.add(step_name, status, message)

        return report.as_dict()

    # ------------------------------------------------------------------
    # test_webhook
    # ------------------------------------------------------------------

    async def test_webhook(self, barbershop_id: int) -> dict[str, Any]:
        """Post a synthetic inbound message to the configured webhook"""
        instance = self.repo.get_instance(self.db, barbershop_id)
        url = self._expected_webhook(instance)
        payload = {
            "event": "messages.upsert",
            "instance": instance.instance_name if instance else "test_webhook",
            "test": True,
            "data": {
                "key": {
                    "remoteJid": "5511999999999@s.whatsapp.net",
                    "fromMe": False,
                    "id": f"test_{int(time.time() * 1000)}",
                },
                "messageTimestamp": int(time.time()),
                "pushName": "Webhook Test",
                "message": {"conversation": "Recovery webhook test message"},
            },
        }

        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS, transport=self.http_transport) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"❌ Webhook test failed for {url}: {str(e)}")
            return {"success": False, "url": url, "status": None, "latency_ms": None, "error": str(e)}

        latency_ms = round((time.monotonic() - started) * 1000, 1)
        success = response.is_success
        logger.info(f"🧪 Webhook test {url} -> {response.status_code} in {latency_ms}ms")
        return {
            "success": success,
            "url": url,
            "status": response.status_code,
            "latency_ms": latency_ms,
            "message": "Webhook responded" if success else "Webhook returned an error",
        }

    async def run(self, action: Optional[RecoveryAction], barbershop_id: int) -> dict[str, Any]:
        handlers = {
            RecoveryAction.FULL_DIAGNOSIS: self.full_diagnosis,
            RecoveryAction.RECOVER_SYSTEM: self.recover_system,
            RecoveryAction.TEST_WEBHOOK: self.test_webhook,
        }
        if action not in handlers:
            raise HTTPException(status_code=400, detail="Unknown recovery action")
        logger.info(f"🔧 WhatsApp recovery action {action.value} for barbershop {barbershop_id}")
        result = await handlers[action](barbershop_id)
        return {"action": action.value, **result}
