"""WhatsApp router - Assistant, gateway recovery, inbound webhook and conversation inbox"""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...auth import get_current_profile, require_admin
from ...database import get_db
from ...models import Profile
from ...models_whatsapp import WhatsAppInstance
from ...services.evolution_service import EvolutionService
from ...services.openai_service import OpenAIError, OpenAIService
from ...shared.enums import InstanceStatus
from ...shared.retry import RetryError
from ...shared.validators import to_whatsapp_number, validate_br_phone
from .assistant import WhatsAppAssistant
from .recovery import REMOTE_ERRORS, WhatsAppRecoveryService, status_for_state
from .reminders import ReminderService
from .repository import WhatsAppRepository
from .schemas import (
    AssistantRequest,
    AssistantResponse,
    ConversationResponse,
    ConversationUpdate,
    InstanceCreate,
    InstanceResponse,
    MessageResponse,
    RecoveryRequest,
)
from .verify_fix import VerifyAndFixService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/whatsapp", tags=["WhatsApp"])


def get_evolution_service() -> EvolutionService:
    return EvolutionService()


def get_openai_service() -> OpenAIService:
    return OpenAIService()


def _require_same_barbershop(profile: Profile, barbershop_id: int) -> None:
    if profile.barbershop_id != barbershop_id:
        logger.warning(f"⚠️ Profile {profile.id} tried to act on barbershop {barbershop_id}")
        raise HTTPException(status_code=403, detail="Access denied to this barbershop")


# ============================================================================
# ASSISTANT
# ============================================================================


@router.post("/assistant", response_model=AssistantResponse)
async def run_assistant(
    data: AssistantRequest,
    current_profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
    openai: OpenAIService = Depends(get_openai_service),
):
    """Answer a client message as the virtual receptionist"""
    _require_same_barbershop(current_profile, data.barbershop_id)
    assistant = WhatsAppAssistant(db, openai)
    try:
        return await assistant.handle_message(data.barbershop_id, data.phone, data.message)
    except (OpenAIError, RetryError) as e:
        logger.error(f"❌ Assistant failed for barbershop {data.barbershop_id}: {str(e)}")
        raise HTTPException(status_code=502, detail="AI provider unavailable") from e


# ============================================================================
# INSTANCE AND RECOVERY
# ============================================================================


@router.get("/instance", response_model=InstanceResponse)
async def get_instance(
    current_profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    instance = WhatsAppRepository.get_instance(db, current_profile.barbershop_id)
    if not instance:
        raise HTTPException(status_code=404, detail="WhatsApp instance not found")
    return instance


@router.post("/instance", response_model=InstanceResponse, status_code=201)
async def register_instance(
    data: InstanceCreate,
    current_profile: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Link an existing gateway instance to the barbershop"""
    instance = WhatsAppInstance(
        barbershop_id=current_profile.barbershop_id,
        instance_name=data.instance_name,
        webhook_url=data.webhook_url,
    )
    db.add(instance)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail="Instance already registered") from e
    db.refresh(instance)
    logger.info(f"✅ WhatsApp instance {instance.instance_name} linked to barbershop {instance.barbershop_id}")
    return instance


@router.post("/recovery")
async def run_recovery(
    data: RecoveryRequest,
    current_profile: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
    evolution: EvolutionService = Depends(get_evolution_service),
):
    """full_diagnosis, recover_system or test_webhook"""
    _require_same_barbershop(current_profile, data.barbershop_id)
    service = WhatsAppRecoveryService(db, evolution)
    return await service.run(data.parsed_action(), data.barbershop_id)


@router.post("/verify-and-fix")
async def verify_and_fix(
    current_profile: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
    evolution: EvolutionService = Depends(get_evolution_service),
):
    """Reconcile stored instance state with the gateway"""
    service = VerifyAndFixService(db, evolution)
    return await service.verify_and_fix(current_profile.barbershop_id)


@router.post("/reminders/run")
async def run_reminders(
    current_profile: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
    evolution: EvolutionService = Depends(get_evolution_service),
):
    """Send due reminders now instead of waiting for the worker"""
    return await ReminderService(db, evolution).send_due_reminders()


# ============================================================================
# INBOUND WEBHOOK (called by the Evolution API)
# ============================================================================


def _message_text(message: dict) -> str:
    return (
        message.get("conversation")
        or (message.get("extendedTextMessage") or {}).get("text")
        or ""
    ).strip()


@router.post("/webhook")
async def evolution_webhook(
    request: Request,
    db: Session = Depends(get_db),
    evolution: EvolutionService = Depends(get_evolution_service),
    openai: OpenAIService = Depends(get_openai_service),
):
    payload: dict[str, Any] = await request.json()
    event = (payload.get("event") or "").lower().replace("_", ".")
    data = payload.get("data") or {}
    logger.info(f"📨 Evolution webhook event {event} for instance {payload.get('instance')}")

    if payload.get("test"):
        return {"success": True, "test": True}

    instance = WhatsAppRepository.get_instance_by_name(db, payload.get("instance") or "")
    if not instance:
        logger.warning(f"⚠️ Webhook for unknown instance {payload.get('instance')}")
        return {"success": False, "reason": "unknown instance"}

    if event == "connection.update":
        state = data.get("state")
        instance.status = status_for_state(state)
        if instance.status == InstanceStatus.CONNECTED:
            instance.last_connected_at = datetime.now()
            instance.qr_code = None
        db.commit()
        return {"success": True, "status": instance.status.value}

    if event == "qrcode.updated":
        instance.qr_code = (data.get("qrcode") or {}).get("base64") or data.get("base64")
        instance.status = InstanceStatus.AWAITING_QR_SCAN
        db.commit()
        return {"success": True}

    if event != "messages.upsert":
        return {"success": True, "ignored": event}

    key = data.get("key") or {}
    remote_jid = key.get("remoteJid") or ""
    if key.get("fromMe") or not remote_jid.endswith("@s.whatsapp.net"):
        return {"success": True, "ignored": "own or group message"}

    text = _message_text(data.get("message") or {})
    if not text:
        return {"success": True, "ignored": "non-text message"}

    try:
        phone = validate_br_phone(remote_jid.split("@")[0])
    except ValueError:
        logger.warning(f"⚠️ Ignoring message from non-Brazilian number {remote_jid}")
        return {"success": True, "ignored": "unsupported number"}

    assistant = WhatsAppAssistant(db, openai)
    try:
        result = await assistant.handle_message(instance.barbershop_id, phone, text)
    except (OpenAIError, RetryError) as e:
        logger.error(f"❌ Assistant failed for inbound message on {instance.instance_name}: {str(e)}")
        return {"success": False, "reason": "assistant unavailable"}

    conversation = WhatsAppRepository.get_conversation(db, result["conversation_id"], instance.barbershop_id)
    if conversation and not conversation.client_name and data.get("pushName"):
        conversation.client_name = data["pushName"]
        db.commit()

    if result.get("ai_response"):
        try:
            await evolution.send_text(instance.instance_name, to_whatsapp_number(phone), result["ai_response"])
        except REMOTE_ERRORS as e:
            logger.error(f"❌ Could not deliver assistant reply to {phone}: {str(e)}")
            return {"success": False, "reason": "delivery failed", "conversation_id": result["conversation_id"]}

    return {"success": True, "conversation_id": result["conversation_id"]}


# ============================================================================
# CONVERSATION INBOX
# ============================================================================


@router.get("/conversations", response_model=list[ConversationResponse])
async def list_conversations(
    current_profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    return WhatsAppRepository.list_conversations(db, current_profile.barbershop_id)


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    conversation_id: int,
    current_profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    conversation = WhatsAppRepository.get_conversation(db, conversation_id, current_profile.barbershop_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return WhatsAppRepository.list_messages(db, conversation.id)


@router.patch("/conversations/{conversation_id}", response_model=ConversationResponse)
async def update_conversation(
    conversation_id: int,
    data: ConversationUpdate,
    current_profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    """Take over from the assistant or hand the conversation back"""
    conversation = WhatsAppRepository.get_conversation(db, conversation_id, current_profile.barbershop_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(conversation, key, value)
    return WhatsAppRepository.save(db, conversation)
