"""WhatsApp repository - Database operations for instances, conversations and automation logs"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models_whatsapp import (
    WhatsAppAIContext,
    WhatsAppAutomationLog,
    WhatsAppConversation,
    WhatsAppInstance,
    WhatsAppMessage,
)
from ...shared.enums import AutomationType, MessageDirection


class WhatsAppRepository:
    """Repository for WhatsApp database operations"""

    @staticmethod
    def get_instance(db: Session, barbershop_id: int) -> Optional[WhatsAppInstance]:
        return db.query(WhatsAppInstance).filter(WhatsAppInstance.barbershop_id == barbershop_id).first()

    @staticmethod
    def get_instance_by_name(db: Session, instance_name: str) -> Optional[WhatsAppInstance]:
        return db.query(WhatsAppInstance).filter(WhatsAppInstance.instance_name == instance_name).first()

    @staticmethod
    def get_conversation(db: Session, conversation_id: int, barbershop_id: int) -> Optional[WhatsAppConversation]:
        return (
            db.query(WhatsAppConversation)
            .filter(
                WhatsAppConversation.id == conversation_id,
                WhatsAppConversation.barbershop_id == barbershop_id,
            )
            .first()
        )

    @staticmethod
    def get_or_create_conversation(db: Session, barbershop_id: int, phone: str) -> WhatsAppConversation:
        """One conversation per (barbershop, phone); a concurrent insert falls back to the existing row"""
        query = db.query(WhatsAppConversation).filter(
            WhatsAppConversation.barbershop_id == barbershop_id,
            WhatsAppConversation.client_phone == phone,
        )
        conversation = query.first()
        if conversation:
            return conversation

        conversation = WhatsAppConversation(barbershop_id=barbershop_id, client_phone=phone)
        db.add(conversation)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return query.one()
        db.refresh(conversation)
        return conversation

    @staticmethod
    def get_or_create_context(db: Session, conversation: WhatsAppConversation) -> WhatsAppAIContext:
        context = (
            db.query(WhatsAppAIContext)
            .filter(WhatsAppAIContext.conversation_id == conversation.id)
            .first()
        )
        if context:
            return context
        context = WhatsAppAIContext(
            conversation_id=conversation.id, step="greeting", collected_data={}, context_data={}
        )
        db.add(context)
        db.commit()
        db.refresh(context)
        return context

    @staticmethod
    def add_message(
        db: Session,
        conversation: WhatsAppConversation,
        direction: MessageDirection,
        content: str,
        from_ai: bool = False,
    ) -> WhatsAppMessage:
        message = WhatsAppMessage(
            conversation_id=conversation.id,
            barbershop_id=conversation.barbershop_id,
            direction=direction,
            content=content,
            from_ai=from_ai,
        )
        db.add(message)
        conversation.last_message_at = datetime.now()
        db.commit()
        db.refresh(message)
        return message

    @staticmethod
    def list_conversations(db: Session, barbershop_id: int) -> list[WhatsAppConversation]:
        return (
            db.query(WhatsAppConversation)
            .filter(WhatsAppConversation.barbershop_id == barbershop_id)
            .order_by(WhatsAppConversation.last_message_at.desc(), WhatsAppConversation.id.desc())
            .all()
        )

    @staticmethod
    def list_messages(db: Session, conversation_id: int, limit: int = 100) -> list[WhatsAppMessage]:
        return (
            db.query(WhatsAppMessage)
            .filter(WhatsAppMessage.conversation_id == conversation_id)
            .order_by(WhatsAppMessage.id.desc())
            .limit(limit)
            .all()[::-1]
        )

    @staticmethod
    def message_counts_since(db: Session, barbershop_id: int, since: datetime) -> dict:
        """Incoming/outgoing counts and latest timestamps since a point in time"""
        rows = (
            db.query(
                WhatsAppMessage.direction,
                func.count(WhatsAppMessage.id),
                func.max(WhatsAppMessage.created_at),
            )
            .filter(
                WhatsAppMessage.barbershop_id == barbershop_id,
                WhatsAppMessage.created_at >= since,
            )
            .group_by(WhatsAppMessage.direction)
            .all()
        )
        counts = {
            "incoming_24h": 0,
            "outgoing_24h": 0,
            "last_incoming": None,
            "last_outgoing": None,
        }
        for direction, count, last in rows:
            key = MessageDirection(direction).value
            counts[f"{key}_24h"] = count
            counts[f"last_{key}"] = last
        counts["total_24h"] = counts["incoming_24h"] + counts["outgoing_24h"]
        return counts

    @staticmethod
    def reminder_sent(db: Session, appointment_id: int, automation_type: AutomationType) -> bool:
        return (
            db.query(WhatsAppAutomationLog.id)
            .filter(
                WhatsAppAutomationLog.appointment_id == appointment_id,
                WhatsAppAutomationLog.automation_type == automation_type,
                WhatsAppAutomationLog.status == "sent",
            )
            .first()
            is not None
        )

    @staticmethod
    def log_automation(db: Session, log: WhatsAppAutomationLog) -> WhatsAppAutomationLog:
        db.add(log)
        db.commit()
        db.refresh(log)
        return log

    @staticmethod
    def save(db: Session, entity):
        db.commit()
        db.refresh(entity)
        return entity
