import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .shared.enums import (
    AppointmentSource,
    AppointmentStatus,
    CashMovementType,
    CashRegisterStatus,
    CommandStatus,
    CommissionStatus,
    ItemType,
    PaymentMethod,
    PaymentStatus,
    ProfileRole,
    SubscriptionStatus,
)


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


def enum_column(enum_cls, **kwargs):
    """Store a str Enum by value in a VARCHAR column, loading it back as the member"""
    return Column(
        Enum(
            enum_cls,
            values_callable=lambda members: [m.value for m in members],
            native_enum=False,
            validate_strings=True,
            length=32,
        ),
        **kwargs,
    )


def Money(**kwargs):  # noqa: N802 - reads like a column type
    return Column(Numeric(10, 2), **kwargs)


class Barbershop(Base):
    __tablename__ = "barbershops"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, default=generate_public_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, index=True, nullable=False)
    address = Column(String(500), nullable=True)
    phone = Column(String(20), nullable=True)
    # {"monday": {"open": "09:00", "close": "18:00", "closed": false}, ...}
    opening_hours = Column(JSON, default=dict, nullable=True)
    slot_interval_minutes = Column(Integer, default=15, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    profiles = relationship("Profile", back_populates="barbershop")
    services = relationship("Service", back_populates="barbershop")


class Profile(Base):
    """Staff member of a barbershop (admin, barber or receptionist)"""

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    user_id = Column(String(255), unique=True, index=True, nullable=False)  # JWT subject
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    role = enum_column(ProfileRole, default=ProfileRole.BARBER, nullable=False)
    commission_rate = Column(Numeric(5, 2), default=0, nullable=False)  # percent
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    barbershop = relationship("Barbershop", back_populates="profiles")


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True, index=True)
    email = Column(String(255), nullable=True)
    birth_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    is_generated = Column(Boolean, default=False, nullable=False)  # seeded by data generator
    created_at = Column(DateTime, server_default=func.now())


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=30)
    price = Money(nullable=False, default=0)
    commission_rate = Column(Numeric(5, 2), nullable=True)  # percent; None = barber's rate
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    barbershop = relationship("Barbershop", back_populates="services")


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price = Money(nullable=False, default=0)
    stock_quantity = Column(Integer, default=0, nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    barber_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    appointment_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    # Derived from service duration at creation time
    end_time = Column(Time, nullable=False)
    price = Money(nullable=False, default=0)
    status = enum_column(AppointmentStatus, default=AppointmentStatus.SCHEDULED, nullable=False)
    source = enum_column(AppointmentSource, default=AppointmentSource.MANUAL, nullable=False)
    notes = Column(Text, nullable=True)  # may carry the informal "no_show" marker
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client")
    barber = relationship("Profile")
    service = relationship("Service")


class Command(Base):
    """Open tab of services/products for one client visit"""

    __tablename__ = "commands"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True, unique=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    barber_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    command_number = Column(Integer, nullable=False)
    status = enum_column(CommandStatus, default=CommandStatus.OPEN, nullable=False)
    # Denormalized sum of item totals; recomputed on every add/remove
    total_amount = Money(nullable=False, default=0)
    discount_amount = Money(nullable=False, default=0)
    final_amount = Money(nullable=True)
    payment_method = enum_column(PaymentMethod, nullable=True)
    payment_status = enum_column(PaymentStatus, default=PaymentStatus.PENDING, nullable=False)
    notes = Column(Text, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    items = relationship(
        "CommandItem",
        back_populates="command",
        cascade="all, delete-orphan",
        order_by="CommandItem.id",
    )
    sale = relationship("Sale", back_populates="command", uselist=False)
    client = relationship("Client")
    barber = relationship("Profile")

    __table_args__ = (UniqueConstraint("barbershop_id", "command_number", name="uq_command_number"),)


class CommandItem(Base):
    __tablename__ = "command_items"

    id = Column(Integer, primary_key=True, index=True)
    command_id = Column(Integer, ForeignKey("commands.id"), nullable=False, index=True)
    item_type = enum_column(ItemType, nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Money(nullable=False)
    total_price = Money(nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False, default=0)
    commission_amount = Money(nullable=False, default=0)
    # Set when the item was covered by a client subscription
    subscription_id = Column(Integer, ForeignKey("client_subscriptions.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    command = relationship("Command", back_populates="items")


class Sale(Base):
    """Immutable financial record created when a command is closed"""

    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    command_id = Column(Integer, ForeignKey("commands.id"), nullable=True, unique=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)
    barber_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    cash_register_id = Column(Integer, ForeignKey("cash_registers.id"), nullable=True)
    total_amount = Money(nullable=False)
    discount_amount = Money(nullable=False, default=0)
    final_amount = Money(nullable=False)
    payment_method = enum_column(PaymentMethod, nullable=False)
    payment_status = enum_column(PaymentStatus, default=PaymentStatus.PAID, nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)

    command = relationship("Command", back_populates="sale")
    items = relationship("SaleItem", back_populates="sale", order_by="SaleItem.id")
    commissions = relationship("Commission", back_populates="sale", order_by="Commission.id")


class SaleItem(Base):
    __tablename__ = "sale_items"

    id = Column(Integer, primary_key=True, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False, index=True)
    item_type = enum_column(ItemType, nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Money(nullable=False)
    total_price = Money(nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False, default=0)
    commission_amount = Money(nullable=False, default=0)

    sale = relationship("Sale", back_populates="items")


class Commission(Base):
    __tablename__ = "commissions"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    barber_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False)
    sale_item_id = Column(Integer, ForeignKey("sale_items.id"), nullable=False)
    commission_type = enum_column(ItemType, nullable=False)
    base_amount = Money(nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False)
    commission_amount = Money(nullable=False)
    status = enum_column(CommissionStatus, default=CommissionStatus.PENDING, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    sale = relationship("Sale", back_populates="commissions")


class CashRegister(Base):
    """Cash register session for one shift"""

    __tablename__ = "cash_registers"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    opened_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    closed_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    status = enum_column(CashRegisterStatus, default=CashRegisterStatus.OPEN, nullable=False)
    opening_balance = Money(nullable=False, default=0)
    closing_balance = Money(nullable=True)
    total_sales = Money(nullable=False, default=0)
    total_cash = Money(nullable=False, default=0)
    total_card = Money(nullable=False, default=0)
    total_pix = Money(nullable=False, default=0)
    total_multiple = Money(nullable=False, default=0)
    sales_count = Column(Integer, nullable=False, default=0)
    total_entries = Money(nullable=False, default=0)
    total_exits = Money(nullable=False, default=0)
    notes = Column(Text, nullable=True)
    opened_at = Column(DateTime, server_default=func.now())
    closed_at = Column(DateTime, nullable=True)

    movements = relationship("CashMovement", back_populates="cash_register", order_by="CashMovement.id")


class CashMovement(Base):
    """Manual cash in or out of the drawer (change float, withdrawal, petty expense)"""

    __tablename__ = "cash_movements"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    cash_register_id = Column(Integer, ForeignKey("cash_registers.id"), nullable=False, index=True)
    movement_type = enum_column(CashMovementType, nullable=False)
    description = Column(String(255), nullable=False)
    amount = Money(nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    cash_register = relationship("CashRegister", back_populates="movements")


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    monthly_price = Money(nullable=False)
    included_services_count = Column(Integer, nullable=False, default=0)
    enabled_service_ids = Column(JSON, default=list, nullable=False)
    commission_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class ClientSubscription(Base):
    __tablename__ = "client_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False)
    status = enum_column(SubscriptionStatus, default=SubscriptionStatus.ACTIVE, nullable=False)
    remaining_services = Column(Integer, nullable=False, default=0)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    next_billing_date = Column(Date, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    plan = relationship("SubscriptionPlan")
    client = relationship("Client")


class SubscriptionFinancialRecord(Base):
    __tablename__ = "subscription_financial_records"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("client_subscriptions.id"), nullable=False)
    amount = Money(nullable=False)
    commission_amount = Money(nullable=False)
    net_amount = Money(nullable=False)
    billing_date = Column(Date, nullable=False)
    status = enum_column(PaymentStatus, default=PaymentStatus.PENDING, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class PublicClientReview(Base):
    __tablename__ = "public_client_reviews"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    barber_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)
    client_name = Column(String(255), nullable=False)
    client_phone = Column(String(20), nullable=False)
    nps_score = Column(Integer, nullable=False)
    star_rating = Column(Integer, nullable=True)
    review_text = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    barbershop_id = Column(Integer, ForeignKey("barbershops.id"), nullable=False, index=True)
    actor_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    action = Column(String(100), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
