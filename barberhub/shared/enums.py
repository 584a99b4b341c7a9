"""Closed status vocabularies shared by models, schemas and services"""

from enum import Enum


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)

    @property
    def occupies_slot(self) -> bool:
        return self is not AppointmentStatus.CANCELLED


# Allowed appointment status transitions (terminal states map to nothing)
APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, frozenset] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


class AppointmentSource(str, Enum):
    MANUAL = "manual"
    ONLINE = "online"
    WHATSAPP = "whatsapp"
    GENERATOR = "generator"


class ProfileRole(str, Enum):
    ADMIN = "admin"
    BARBER = "barber"
    RECEPTIONIST = "receptionist"


class CommandStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ItemType(str, Enum):
    SERVICE = "service"
    PRODUCT = "product"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    PIX = "pix"
    MULTIPLE = "multiple"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class CommissionStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class CashRegisterStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class CashMovementType(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    PENDING_PAYMENT = "pending_payment"


class InstanceStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_QR_SCAN = "awaiting_qr_scan"
    ERROR = "error"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class MessageDirection(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class AutomationType(str, Enum):
    REMINDER_24H = "reminder_24h"
    REMINDER_1H = "reminder_1h"


class RecoveryAction(str, Enum):
    FULL_DIAGNOSIS = "full_diagnosis"
    RECOVER_SYSTEM = "recover_system"
    TEST_WEBHOOK = "test_webhook"


class StepStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"
