"""Catalog service - Business logic for barbershop settings and tenant catalog"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...cache import invalidate_barbershop_grids
from ...models import Barbershop, Client, Product, Profile, Service
from ...shared.enums import ProfileRole
from .repository import CatalogRepository
from .schemas import (
    BarbershopCreate,
    BarbershopUpdate,
    ClientCreate,
    ClientUpdate,
    ProductCreate,
    ProductUpdate,
    ServiceCreate,
    ServiceUpdate,
    StaffCreate,
    StaffUpdate,
)

logger = logging.getLogger(__name__)


def _hours_payload(opening_hours) -> Optional[dict]:
    if opening_hours is None:
        return None
    return {day: hours.model_dump() for day, hours in opening_hours.items()}


class CatalogService:
    """Service layer for barbershop settings, staff, services, products and clients"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CatalogRepository()

    # ------------------------------------------------------------------
    # Barbershop
    # ------------------------------------------------------------------

    def create_barbershop(self, user_id: str, data: BarbershopCreate) -> tuple[Barbershop, Profile]:
        """Onboard a barbershop with the caller as its admin"""
        if self.repo.get_profile_by_user(self.db, user_id):
            raise HTTPException(status_code=409, detail="User already belongs to a barbershop")

        barbershop = Barbershop(
            name=data.name,
            slug=data.slug,
            address=data.address,
            phone=data.phone,
            opening_hours=_hours_payload(data.opening_hours),
            slot_interval_minutes=data.slot_interval_minutes,
        )
        try:
            self.db.add(barbershop)
            self.db.flush()
            admin = Profile(
                barbershop_id=barbershop.id,
                user_id=user_id,
                full_name=data.owner_name,
                role=ProfileRole.ADMIN,
            )
            self.db.add(admin)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Barbershop slug '{data.slug}' already taken")
            raise HTTPException(status_code=409, detail="Slug already in use") from e

        self.db.refresh(barbershop)
        self.db.refresh(admin)
        logger.info(f"✅ Barbershop {barbershop.id} '{barbershop.slug}' onboarded")
        return barbershop, admin

    def get_barbershop(self, barbershop_id: int) -> Barbershop:
        barbershop = self.repo.get_barbershop(self.db, barbershop_id)
        if not barbershop:
            raise HTTPException(status_code=404, detail="Barbershop not found")
        return barbershop

    def get_barbershop_by_slug(self, slug: str) -> Barbershop:
        barbershop = self.repo.get_barbershop_by_slug(self.db, slug)
        if not barbershop:
            raise HTTPException(status_code=404, detail="Barbershop not found")
        return barbershop

    def update_barbershop(self, barbershop_id: int, data: BarbershopUpdate) -> Barbershop:
        barbershop = self.get_barbershop(barbershop_id)
        updates = data.model_dump(exclude_unset=True, exclude={"opening_hours"})
        if data.opening_hours is not None:
            updates["opening_hours"] = _hours_payload(data.opening_hours)
        barbershop = self.repo.update(self.db, barbershop, **updates)
        invalidate_barbershop_grids(barbershop_id)
        return barbershop

    # ------------------------------------------------------------------
    # Staff
    # ------------------------------------------------------------------

    def list_staff(self, barbershop_id: int, include_inactive: bool = False) -> list[Profile]:
        return self.repo.list_staff(self.db, barbershop_id, include_inactive)

    def create_staff(self, barbershop_id: int, data: StaffCreate) -> Profile:
        if self.repo.get_profile_by_user(self.db, data.user_id):
            raise HTTPException(status_code=409, detail="User already has a profile")
        profile = self.repo.add(self.db, Profile(barbershop_id=barbershop_id, **data.model_dump()))
        invalidate_barbershop_grids(barbershop_id)
        return profile

    def update_staff(self, profile_id: int, barbershop_id: int, data: StaffUpdate) -> Profile:
        profile = self.repo.get_scoped(self.db, Profile, profile_id, barbershop_id)
        if not profile:
            raise HTTPException(status_code=404, detail="Staff member not found")
        profile = self.repo.update(self.db, profile, **data.model_dump(exclude_unset=True))
        invalidate_barbershop_grids(barbershop_id)
        return profile

    # ------------------------------------------------------------------
    # Services and products
    # ------------------------------------------------------------------

    def list_services(self, barbershop_id: int, include_inactive: bool = False) -> list[Service]:
        return self.repo.list_services(self.db, barbershop_id, include_inactive)

    def create_service(self, barbershop_id: int, data: ServiceCreate) -> Service:
        return self.repo.add(self.db, Service(barbershop_id=barbershop_id, **data.model_dump()))

    def update_service(self, service_id: int, barbershop_id: int, data: ServiceUpdate) -> Service:
        """Duration edits do not touch end times of existing appointments"""
        service = self.repo.get_scoped(self.db, Service, service_id, barbershop_id)
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")
        service = self.repo.update(self.db, service, **data.model_dump(exclude_unset=True))
        invalidate_barbershop_grids(barbershop_id)
        return service

    def list_products(self, barbershop_id: int, include_inactive: bool = False) -> list[Product]:
        return self.repo.list_products(self.db, barbershop_id, include_inactive)

    def create_product(self, barbershop_id: int, data: ProductCreate) -> Product:
        return self.repo.add(self.db, Product(barbershop_id=barbershop_id, **data.model_dump()))

    def update_product(self, product_id: int, barbershop_id: int, data: ProductUpdate) -> Product:
        product = self.repo.get_scoped(self.db, Product, product_id, barbershop_id)
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")
        return self.repo.update(self.db, product, **data.model_dump(exclude_unset=True))

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    def list_clients(self, barbershop_id: int, search: Optional[str] = None) -> list[Client]:
        return self.repo.list_clients(self.db, barbershop_id, search)

    def get_client(self, client_id: int, barbershop_id: int) -> Client:
        client = self.repo.get_scoped(self.db, Client, client_id, barbershop_id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")
        return client

    def create_client(self, barbershop_id: int, data: ClientCreate) -> Client:
        logger.info(f"📥 Creating client for barbershop {barbershop_id}")
        return self.repo.add(self.db, Client(barbershop_id=barbershop_id, **data.model_dump()))

    def update_client(self, client_id: int, barbershop_id: int, data: ClientUpdate) -> Client:
        client = self.get_client(client_id, barbershop_id)
        return self.repo.update(self.db, client, **data.model_dump(exclude_unset=True))

    def find_or_create_client(self, barbershop_id: int, phone: str, name: Optional[str] = None) -> Client:
        """Match a client by phone, creating one named after the phone if none exists"""
        client = self.repo.get_client_by_phone(self.db, barbershop_id, phone)
        if client:
            if name and client.name == client.phone:
                client = self.repo.update(self.db, client, name=name)
            return client
        return self.repo.add(
            self.db, Client(barbershop_id=barbershop_id, name=name or phone, phone=phone)
        )
