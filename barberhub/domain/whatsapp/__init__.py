"""WhatsApp domain - Virtual receptionist, gateway recovery and reminders"""

from .assistant import WhatsAppAssistant
from .recovery import WhatsAppRecoveryService
from .reminders import ReminderService
from .router import router

__all__ = ["router", "WhatsAppAssistant", "WhatsAppRecoveryService", "ReminderService"]
