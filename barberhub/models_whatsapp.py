"""
WhatsApp Integration Models
Gateway instance state, conversations, messages and automation logs
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import enum_column
from .shared.enums import (
    AutomationType,
    ConversationStatus,
    InstanceStatus,
    MessageDirection,
)


class WhatsAppInstance(Base):
    """Evolution API instance linked to a barbershop"""

    __tablename__ = "whatsapp_instances"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, unique=True)
    instance_name = Column(String(100), nullable=False, unique=True)
    status = enum_column(InstanceStatus, default=InstanceStatus.DISCONNECTED, nullable=False)
    phone_number = Column(String(20), nullable=True)
    qr_code = Column(Text, nullable=True)
    webhook_url = Column(String(500), nullable=True)
    last_connected_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class WhatsAppConversation(Base):
    __tablename__ = "whatsapp_conversations"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    client_phone = Column(String(20), nullable=False)
    client_name = Column(String(255), nullable=True)
    status = enum_column(ConversationStatus, default=ConversationStatus.ACTIVE, nullable=False)
    ai_enabled = Column(Boolean, default=True, nullable=False)
    human_takeover = Column(Boolean, default=False, nullable=False)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    messages = relationship(
        "WhatsAppMessage", back_populates="conversation", order_by="WhatsAppMessage.id"
    )
    ai_context = relationship("WhatsAppAIContext", back_populates="conversation", uselist=False)

    __table_args__ = (
        UniqueConstraint("barbershop_id", "client_phone", name="uq_conversation_phone"),
    )


class WhatsAppMessage(Base):
    __tablename__ = "whatsapp_messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(
        Integer, ForeignKey("whatsapp_conversations.id"), nullable=False, index=True
    )
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    direction = enum_column(MessageDirection, nullable=False)
    content = Column(Text, nullable=False)
    from_ai = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), index=True)

    conversation = relationship("WhatsAppConversation", back_populates="messages")


class WhatsAppAIContext(Base):
    """Assistant state carried between turns of a conversation"""

    __tablename__ = "whatsapp_ai_context"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(
        Integer, ForeignKey("whatsapp_conversations.id"), nullable=False, unique=True
    )
    step = Column(String(50), default="greeting", nullable=False)
    intent = Column(String(50), nullable=True)
    collected_data = Column(JSON, default=dict, nullable=False)
    context_data = Column(JSON, default=dict, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    conversation = relationship("WhatsAppConversation", back_populates="ai_context")


class WhatsAppAutomationLog(Base):
    """One row per automated message; used to avoid sending a reminder twice"""

    __tablename__ = "whatsapp_automation_logs"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    automation_type = enum_column(AutomationType, nullable=False)
    status = Column(String(20), nullable=False)  # sent, failed
    error_message = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)
    sent_at = Column(DateTime, server_default=func.now())
