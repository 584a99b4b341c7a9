"""WhatsApp domain schemas - Assistant, recovery and inbound webhook payloads"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.enums import ConversationStatus, InstanceStatus, MessageDirection, RecoveryAction
from ...shared.validators import validate_br_phone


class AssistantRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    phone: str
    barbershop_id: int

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_br_phone(v)


class AssistantResponse(BaseModel):
    success: bool = True
    ai_response: Optional[str] = None
    conversation_id: Optional[int] = None
    intent: Optional[str] = None
    collected_data: dict[str, Any] = Field(default_factory=dict)
    human_takeover: bool = False
    appointment_id: Optional[int] = None


class RecoveryRequest(BaseModel):
    """Accepts the gateway dashboard's camelCase field name"""

    action: str
    barbershop_id: int = Field(..., alias="barbershopId")

    class Config:
        populate_by_name = True

    def parsed_action(self) -> Optional[RecoveryAction]:
        try:
            return RecoveryAction(self.action)
        except ValueError:
            return None


class InstanceCreate(BaseModel):
    instance_name: str = Field(..., min_length=3, max_length=100, pattern=r"^[A-Za-z0-9_-]+$")
    webhook_url: Optional[str] = None


class InstanceResponse(BaseModel):
    id: int
    instance_name: str
    status: InstanceStatus
    phone_number: Optional[str] = None
    qr_code: Optional[str] = None
    webhook_url: Optional[str] = None
    last_connected_at: Optional[datetime] = None
    last_error: Optional[str] = None

    class Config:
        from_attributes = True


class ConversationResponse(BaseModel):
    id: int
    client_phone: str
    client_name: Optional[str] = None
    status: ConversationStatus
    ai_enabled: bool
    human_takeover: bool
    last_message_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ConversationUpdate(BaseModel):
    ai_enabled: Optional[bool] = None
    human_takeover: Optional[bool] = None
    status: Optional[ConversationStatus] = None


class MessageResponse(BaseModel):
    id: int
    direction: MessageDirection
    content: str
    from_ai: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
