"""Compare stored instance state with the gateway and repair what drifted"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import WHATSAPP_WEBHOOK_URL
from ...services.evolution_service import EvolutionService
from ...shared.enums import InstanceStatus
from .recovery import REMOTE_ERRORS, status_for_state, webhook_matches
from .repository import WhatsAppRepository

logger = logging.getLogger(__name__)


class VerifyAndFixService:
    def __init__(
        self,
        db: Session,
        evolution: Optional[EvolutionService] = None,
        webhook_url: str = WHATSAPP_WEBHOOK_URL,
    ):
        self.db = db
        self.repo = WhatsAppRepository()
        self.evolution = evolution or EvolutionService()
        self.webhook_url = webhook_url

    async def verify_and_fix(self, barbershop_id: int) -> dict[str, Any]:
        instance = self.repo.get_instance(self.db, barbershop_id)
        if not instance:
            raise HTTPException(status_code=404, detail="WhatsApp instance not found")

        name = instance.instance_name
        expected_webhook = instance.webhook_url or self.webhook_url
        logger.info(f"🔍 Verifying WhatsApp instance {name}")

        applied_fixes: list[str] = []
        recommendations: list[str] = []

        # 1. Real connection state and phone number
        remote_state = "close"
        phone_number = None
        try:
            remote_state = await self.evolution.connection_state(name)
            if remote_state == "open":
                phone_number = await self.evolution.phone_number(name)
        except REMOTE_ERRORS as e:
            logger.error(f"❌ Could not read connection state for {name}: {str(e)}")
            raise HTTPException(status_code=502, detail="Evolution API unavailable") from e

        # 2. Webhook lookup
        webhook_ok = False
        try:
            webhook_ok = webhook_matches(await self.evolution.find_webhook(name), expected_webhook)
        except REMOTE_ERRORS as e:
            logger.warning(f"⚠️ Webhook lookup failed for {name}: {str(e)}")

        stored_status = instance.status
        actual_status = status_for_state(remote_state)
        ghost_connection = stored_status == InstanceStatus.CONNECTED and remote_state != "open"

        # Fix 1: stored status and phone number
        if stored_status != actual_status or (phone_number and instance.phone_number != phone_number):
            instance.status = actual_status
            if phone_number:
                if instance.phone_number != phone_number:
                    applied_fixes.append(f"Phone number updated: {instance.phone_number} -> {phone_number}")
                instance.phone_number = phone_number
            if actual_status == InstanceStatus.CONNECTED:
                instance.last_connected_at = datetime.now()
            if stored_status != actual_status:
                applied_fixes.append(f"Status updated: {stored_status.value} -> {actual_status.value}")
            if ghost_connection:
                applied_fixes.append("Ghost connection fixed")
            self.db.commit()

        # Fix 2: webhook
        if not webhook_ok:
            try:
                await self.evolution.set_webhook(name, expected_webhook)
                instance.webhook_url = expected_webhook
                self.db.commit()
                applied_fixes.append("Webhook configured")
            except REMOTE_ERRORS as e:
                logger.error(f"❌ Could not configure webhook for {name}: {str(e)}")
                recommendations.append("Webhook could not be configured; check the Evolution API key")

        # Fix 3: new QR code when not connected
        qr_code = None
        if actual_status != InstanceStatus.CONNECTED:
            try:
                qr_code = await self.evolution.connect(name)
            except REMOTE_ERRORS as e:
                logger.error(f"❌ Could not request QR code for {name}: {str(e)}")
            if qr_code:
                instance.qr_code = qr_code
                instance.status = InstanceStatus.AWAITING_QR_SCAN
                self.db.commit()
                applied_fixes.append("New QR code generated")

        if ghost_connection:
            recommendations.append("Ghost connection fixed; stored status now matches the gateway")
        if qr_code:
            recommendations.append("Scan the new QR code with WhatsApp to connect a device")
        elif actual_status == InstanceStatus.CONNECTED:
            recommendations.append("WhatsApp connected; incoming messages are being received")
        else:
            recommendations.append("Try forcing a new connection if the problem persists")

        logger.info(f"✅ Verify-and-fix for {name} applied {len(applied_fixes)} fix(es)")
        return {
            "diagnosis": {
                "database_status": stored_status.value,
                "real_state": remote_state,
                "real_status": instance.status.value,
                "phone_connected": bool(phone_number),
                "webhook_configured": webhook_ok,
                "ghost_connection_detected": ghost_connection,
            },
            "applied_fixes": applied_fixes,
            "qr_code": f"data:image/png;base64,{qr_code}" if qr_code and not qr_code.startswith("data:") else qr_code,
            "recommendations": recommendations,
        }
