"""Catalog repository - Database operations for barbershops, staff, services, products and clients"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Barbershop, Client, Product, Profile, Service


class CatalogRepository:
    """Repository for tenant catalog database operations"""

    @staticmethod
    def get_barbershop(db: Session, barbershop_id: int) -> Optional[Barbershop]:
        return db.query(Barbershop).filter(Barbershop.id == barbershop_id).first()

    @staticmethod
    def get_barbershop_by_slug(db: Session, slug: str) -> Optional[Barbershop]:
        return (
            db.query(Barbershop)
            .filter(Barbershop.slug == slug, Barbershop.is_active.is_(True))
            .first()
        )

    @staticmethod
    def get_profile_by_user(db: Session, user_id: str) -> Optional[Profile]:
        return db.query(Profile).filter(Profile.user_id == user_id).first()

    @staticmethod
    def get_scoped(db: Session, model, entity_id: int, barbershop_id: int):
        """Get a tenant-owned row by id"""
        return (
            db.query(model)
            .filter(model.id == entity_id, model.barbershop_id == barbershop_id)
            .first()
        )

    @staticmethod
    def list_staff(db: Session, barbershop_id: int, include_inactive: bool = False) -> list[Profile]:
        query = db.query(Profile).filter(Profile.barbershop_id == barbershop_id)
        if not include_inactive:
            query = query.filter(Profile.is_active.is_(True))
        return query.order_by(Profile.full_name).all()

    @staticmethod
    def list_services(db: Session, barbershop_id: int, include_inactive: bool = False) -> list[Service]:
        query = db.query(Service).filter(Service.barbershop_id == barbershop_id)
        if not include_inactive:
            query = query.filter(Service.is_active.is_(True))
        return query.order_by(Service.name).all()

    @staticmethod
    def list_products(db: Session, barbershop_id: int, include_inactive: bool = False) -> list[Product]:
        query = db.query(Product).filter(Product.barbershop_id == barbershop_id)
        if not include_inactive:
            query = query.filter(Product.is_active.is_(True))
        return query.order_by(Product.name).all()

    @staticmethod
    def list_clients(db: Session, barbershop_id: int, search: Optional[str] = None) -> list[Client]:
        query = db.query(Client).filter(Client.barbershop_id == barbershop_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Client.name.ilike(pattern), Client.phone.ilike(pattern)))
        return query.order_by(Client.name).all()

    @staticmethod
    def get_client_by_phone(db: Session, barbershop_id: int, phone: str) -> Optional[Client]:
        return (
            db.query(Client)
            .filter(Client.barbershop_id == barbershop_id, Client.phone == phone)
            .order_by(Client.id)
            .first()
        )

    @staticmethod
    def add(db: Session, entity):
        db.add(entity)
        db.commit()
        db.refresh(entity)
        return entity

    @staticmethod
    def update(db: Session, entity, **updates):
        """Update an entity with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(entity, key):
                setattr(entity, key, value)
        db.commit()
        db.refresh(entity)
        return entity
