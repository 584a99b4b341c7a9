"""
Historical data generator
Seeds a tenant with realistic clients, past and future appointments and closed sales
"""

import logging
import random
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..cache import invalidate_appointment
from ..domain.ledger.command_service import CommandService
from ..domain.ledger.schemas import CloseCommandRequest, CommandCreate, CommandItemCreate
from ..domain.scheduling import slots
from ..domain.scheduling.repository import AppointmentRepository
from ..models import (
    Appointment,
    Client,
    Command,
    CommandItem,
    Commission,
    Product,
    Profile,
    Sale,
    SaleItem,
    Service,
)
from ..models_whatsapp import WhatsAppAutomationLog
from ..shared.enums import AppointmentSource, AppointmentStatus, ItemType, PaymentMethod, ProfileRole

logger = logging.getLogger(__name__)

FIRST_NAMES = [
    "João", "Maria", "Pedro", "Ana", "Carlos", "Lucia", "Rafael", "Carla", "Bruno", "Sofia",
    "Fernando", "Patricia", "Ricardo", "Juliana", "Marcos", "Beatriz", "Gustavo", "Camila",
]
LAST_NAMES = [
    "Silva", "Santos", "Oliveira", "Souza", "Lima", "Pereira", "Costa", "Rodrigues",
    "Almeida", "Nascimento", "Ferreira", "Araújo", "Gomes", "Ribeiro",
]
BUSINESS_HOURS = [9, 10, 11, 13, 14, 15, 16, 17]
HISTORICAL_SHARE = 0.85
CANCELLATION_RATE = 0.15
SALE_PAYMENT_METHODS = [PaymentMethod.CASH, PaymentMethod.CARD, PaymentMethod.PIX]
MAX_SLOT_ATTEMPTS = 5


@dataclass(frozen=True)
class ClientPattern:
    kind: str
    frequency_days: int
    probability: float
    product_purchase: float


PATTERNS = [
    ClientPattern("VIP", 15, 0.15, 0.6),
    ClientPattern("Regular", 30, 0.50, 0.3),
    ClientPattern("Occasional", 60, 0.30, 0.1),
    ClientPattern("Inactive", 120, 0.05, 0.05),
]


@dataclass
class GeneratorConfig:
    barbershop_id: int
    clients_to_create: int
    appointments_to_create: int
    start_date: date
    end_date: date
    preserve_existing: bool = True


class PhaseTimer:
    """Collects one phase's report entry"""

    def __init__(self, phase: str):
        self.phase = phase
        self.records = 0
        self.errors = 0
        self.attempts = 0
        self._started = time.monotonic()

    def result(self) -> dict[str, Any]:
        duration_ms = round((time.monotonic() - self._started) * 1000, 1)
        return {
            "phase": self.phase,
            "duration": duration_ms,
            "recordsCreated": self.records,
            "errors": self.errors,
            "avgResponseTime": round(duration_ms / self.attempts, 2) if self.attempts else 0,
        }


class HistoricalDataGenerator:
    def __init__(self, db: Session, rng: Optional[random.Random] = None, today: Optional[date] = None):
        self.db = db
        self.rng = rng or random.Random()
        self.today = today or date.today()
        self.commands = CommandService(db)

    # ------------------------------------------------------------------
    # Random helpers
    # ------------------------------------------------------------------

    def _pattern(self) -> ClientPattern:
        roll = self.rng.random()
        cumulative = 0.0
        for pattern in PATTERNS:
            cumulative += pattern.probability
            if roll <= cumulative:
                return pattern
        return PATTERNS[1]

    def _phone(self) -> str:
        return f"119{self.rng.randint(0, 99999999):08d}"

    def _business_time(self) -> str:
        return f"{self.rng.choice(BUSINESS_HOURS):02d}:{self.rng.choice(['00', '30'])}"

    def _birth_date(self) -> date:
        year = self.today.year - self.rng.randint(18, 80)
        return date(year, self.rng.randint(1, 12), self.rng.randint(1, 28))

    def _random_day(self, start: date, end: date) -> date:
        span = max((end - start).days, 0)
        return start + timedelta(days=self.rng.randint(0, span))

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, config: GeneratorConfig) -> dict[str, Any]:
        barbers = (
            self.db.query(Profile)
            .filter(
                Profile.barbershop_id == config.barbershop_id,
                Profile.role == ProfileRole.BARBER,
                Profile.is_active.is_(True),
            )
            .all()
        )
        if not barbers:
            raise HTTPException(status_code=400, detail="No barbers found for this barbershop")
        services = (
            self.db.query(Service)
            .filter(Service.barbershop_id == config.barbershop_id, Service.is_active.is_(True))
            .all()
        )
        if not services:
            raise HTTPException(status_code=400, detail="No services found for this barbershop")
        products = (
            self.db.query(Product)
            .filter(Product.barbershop_id == config.barbershop_id, Product.is_active.is_(True))
            .all()
        )
        logger.info(
            f"🏭 Generating data for barbershop {config.barbershop_id}: "
            f"{len(barbers)} barbers, {len(services)} services, {len(products)} products"
        )

        removed = 0 if config.preserve_existing else self.remove_generated(config.barbershop_id)

        results = []
        clients, timer = self._create_clients(config)
        results.append(timer.result())
        past, timer = self._create_historical_appointments(config, clients, barbers, services)
        results.append(timer.result())
        timer = self._create_future_appointments(config, clients, barbers, services, len(past))
        results.append(timer.result())
        timer = self._close_commands(config, past, products)
        results.append(timer.result())

        total_duration = sum(r["duration"] for r in results)
        total_records = sum(r["recordsCreated"] for r in results)
        total_errors = sum(r["errors"] for r in results)
        summary = {
            "totalDuration": round(total_duration, 1),
            "totalRecords": total_records,
            "totalErrors": total_errors,
            "recordsPerSecond": round(total_records / total_duration * 1000) if total_duration else 0,
            "errorRate": round(total_errors / total_records * 100, 2) if total_records else 0,
            "removedRecords": removed,
        }
        logger.info(f"✅ Historical data generation finished: {summary}")
        return {"results": results, "summary": summary, "timestamp": datetime.now().isoformat()}

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _create_clients(self, config: GeneratorConfig):
        timer = PhaseTimer("clients")
        created: list[tuple[Client, ClientPattern, date]] = []
        registration_end = min(self.today, config.end_date)

        for _ in range(config.clients_to_create):
            timer.attempts += 1
            first, last = self.rng.choice(FIRST_NAMES), self.rng.choice(LAST_NAMES)
            client = Client(
                barbershop_id=config.barbershop_id,
                name=f"{first} {last}",
                phone=self._phone(),
                email=f"{first.lower()}.{last.lower()}{self.rng.randint(0, 99)}@example.com"
                if self.rng.random() > 0.2
                else None,
                birth_date=self._birth_date() if self.rng.random() > 0.3 else None,
                is_generated=True,
            )
            self.db.add(client)
            created.append((client, self._pattern(), self._random_day(config.start_date, registration_end)))

        try:
            self.db.commit()
            timer.records = len(created)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Client batch failed: {str(e)}")
            timer.errors = len(created)
            created = []
        return created, timer

    def _insert_appointment(self, config, client, barbers, services, day, status) -> Optional[Appointment]:
        """Place one appointment in a free business-hours slot; None when every try collides"""
        service = self.rng.choice(services)
        for _ in range(MAX_SLOT_ATTEMPTS):
            barber = self.rng.choice(barbers)
            start_minute = slots.time_to_minutes(self._business_time())
            if start_minute + service.duration_minutes >= slots.MINUTES_PER_DAY:
                continue
            start = slots.label_to_time(slots.minutes_to_time(start_minute))
            end = slots.label_to_time(slots.minutes_to_time(start_minute + service.duration_minutes))
            if AppointmentRepository.find_conflict(self.db, config.barbershop_id, barber.id, day, start, end):
                continue
            appointment = Appointment(
                barbershop_id=config.barbershop_id,
                client_id=client.id,
                barber_id=barber.id,
                service_id=service.id,
                appointment_date=day,
                start_time=start,
                end_time=end,
                price=service.price,
                status=status,
                source=AppointmentSource.GENERATOR,
            )
            self.db.add(appointment)
            self.db.flush()
            invalidate_appointment(config.barbershop_id, appointment.id, day)
            return appointment
        return None

    def _create_historical_appointments(self, config, clients, barbers, services):
        timer = PhaseTimer("historical_appointments")
        target = int(config.appointments_to_create * HISTORICAL_SHARE)
        created: list[tuple[Appointment, ClientPattern]] = []
        last_day = min(self.today - timedelta(days=1), config.end_date)

        for client, pattern, registered in clients:
            day = registered
            while day <= last_day and len(created) < target:
                # Mostly closed on Sundays
                if day.weekday() == 6 and self.rng.random() > 0.1:
                    day += timedelta(days=1)
                    continue
                timer.attempts += 1
                status = (
                    AppointmentStatus.CANCELLED
                    if self.rng.random() < CANCELLATION_RATE
                    else AppointmentStatus.COMPLETED
                )
                appointment = self._insert_appointment(config, client, barbers, services, day, status)
                if appointment:
                    created.append((appointment, pattern))
                else:
                    timer.errors += 1
                day += timedelta(days=pattern.frequency_days + self.rng.randint(-3, 3))

        try:
            self.db.commit()
            timer.records = len(created)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Historical appointment batch failed: {str(e)}")
            timer.errors += len(created)
            created = []
        return created, timer

    def _create_future_appointments(self, config, clients, barbers, services, historical_count):
        timer = PhaseTimer("future_appointments")
        remaining = config.appointments_to_create - historical_count
        created = 0

        for client, pattern, _ in clients:
            if created >= remaining:
                break
            if pattern.kind == "Inactive":
                continue
            for _ in range(self.rng.choice([1, 2])):
                if created >= remaining:
                    break
                day = self.today + timedelta(days=self.rng.randint(1, 30))
                if day > config.end_date:
                    continue
                timer.attempts += 1
                if self._insert_appointment(
                    config, client, barbers, services, day, AppointmentStatus.SCHEDULED
                ):
                    created += 1
                else:
                    timer.errors += 1

        try:
            self.db.commit()
            timer.records = created
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Future appointment batch failed: {str(e)}")
            timer.errors += created
        return timer

    def _close_commands(self, config, past, products):
        """Close a command through the ledger for every completed past appointment"""
        timer = PhaseTimer("commands_sales")
        for appointment, pattern in past:
            if appointment.status != AppointmentStatus.COMPLETED:
                continue
            timer.attempts += 1
            try:
                command = self.commands.open_command(
                    config.barbershop_id, CommandCreate(appointment_id=appointment.id)
                )
                self.commands.add_item(
                    command.id,
                    config.barbershop_id,
                    CommandItemCreate(item_type=ItemType.SERVICE, service_id=appointment.service_id),
                )
                if products and self.rng.random() < pattern.product_purchase:
                    for _ in range(2 if self.rng.random() > 0.7 else 1):
                        self.commands.add_item(
                            command.id,
                            config.barbershop_id,
                            CommandItemCreate(
                                item_type=ItemType.PRODUCT,
                                product_id=self.rng.choice(products).id,
                                quantity=2 if self.rng.random() > 0.8 else 1,
                            ),
                        )
                closed_at = datetime.combine(appointment.appointment_date, appointment.end_time)
                self.commands.close_command(
                    command.id,
                    config.barbershop_id,
                    CloseCommandRequest(payment_method=self.rng.choice(SALE_PAYMENT_METHODS)),
                    closed_at=closed_at,
                    use_register=False,
                )
                timer.records += 1
            except (HTTPException, SQLAlchemyError) as e:
                self.db.rollback()
                timer.errors += 1
                logger.error(f"❌ Sale for appointment {appointment.id} failed: {str(e)}")
        return timer

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def remove_generated(self, barbershop_id: int) -> int:
        """Delete every row hanging off the tenant's generated clients"""
        client_ids = [
            row.id
            for row in self.db.query(Client.id).filter(
                Client.barbershop_id == barbershop_id, Client.is_generated.is_(True)
            )
        ]
        if not client_ids:
            return 0

        sale_ids = [row.id for row in self.db.query(Sale.id).filter(Sale.client_id.in_(client_ids))]
        command_ids = [row.id for row in self.db.query(Command.id).filter(Command.client_id.in_(client_ids))]
        appointment_days = {
            row.id: row.appointment_date
            for row in self.db.query(Appointment.id, Appointment.appointment_date).filter(
                Appointment.client_id.in_(client_ids)
            )
        }
        appointment_ids = list(appointment_days)

        removed = 0
        try:
            if sale_ids:
                removed += self.db.query(Commission).filter(Commission.sale_id.in_(sale_ids)).delete(
                    synchronize_session=False
                )
                removed += self.db.query(SaleItem).filter(SaleItem.sale_id.in_(sale_ids)).delete(
                    synchronize_session=False
                )
                removed += self.db.query(Sale).filter(Sale.id.in_(sale_ids)).delete(synchronize_session=False)
            if command_ids:
                removed += self.db.query(CommandItem).filter(CommandItem.command_id.in_(command_ids)).delete(
                    synchronize_session=False
                )
                removed += self.db.query(Command).filter(Command.id.in_(command_ids)).delete(
                    synchronize_session=False
                )
            if appointment_ids:
                self.db.query(WhatsAppAutomationLog).filter(
                    WhatsAppAutomationLog.appointment_id.in_(appointment_ids)
                ).delete(synchronize_session=False)
                removed += self.db.query(Appointment).filter(Appointment.id.in_(appointment_ids)).delete(
                    synchronize_session=False
                )
            removed += self.db.query(Client).filter(Client.id.in_(client_ids)).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"❌ Removing generated data for barbershop {barbershop_id} failed; rolled back")
            raise

        self.db.expire_all()
        for appointment_id, day in appointment_days.items():
            invalidate_appointment(barbershop_id, appointment_id, day)
        logger.info(f"🧹 Removed {removed} generated rows for barbershop {barbershop_id}")
        return removed
