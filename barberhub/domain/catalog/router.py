"""Catalog router - Barbershop onboarding, settings, staff, services, products and clients"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_profile, get_token_subject, require_admin, require_front_desk
from ...database import get_db
from ...models import Profile
from .schemas import (
    BarbershopCreate,
    BarbershopResponse,
    BarbershopUpdate,
    ClientCreate,
    ClientResponse,
    ClientUpdate,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    ServiceCreate,
    ServiceResponse,
    ServiceUpdate,
    StaffCreate,
    StaffResponse,
    StaffUpdate,
)
from .service import CatalogService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Catalog"])


def get_catalog_service(db: Session = Depends(get_db)) -> CatalogService:
    """Dependency injection for CatalogService"""
    return CatalogService(db)


# ============================================================================
# BARBERSHOP ONBOARDING AND SETTINGS
# ============================================================================


@router.post("/barbershops", response_model=BarbershopResponse, status_code=201)
async def create_barbershop(
    data: BarbershopCreate,
    user_id: str = Depends(get_token_subject),
    service: CatalogService = Depends(get_catalog_service),
):
    """Create a barbershop and make the caller its admin"""
    barbershop, _ = service.create_barbershop(user_id, data)
    return barbershop


@router.get("/barbershops/me", response_model=BarbershopResponse)
async def get_my_barbershop(
    current_profile: Profile = Depends(get_current_profile),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.get_barbershop(current_profile.barbershop_id)


@router.patch("/barbershops/me", response_model=BarbershopResponse)
async def update_my_barbershop(
    data: BarbershopUpdate,
    current_profile: Profile = Depends(require_admin),
    service: CatalogService = Depends(get_catalog_service),
):
    """Update name, contact, opening hours or slot interval"""
    return service.update_barbershop(current_profile.barbershop_id, data)


# ============================================================================
# STAFF
# ============================================================================


@router.get("/staff", response_model=list[StaffResponse])
async def list_staff(
    include_inactive: bool = False,
    current_profile: Profile = Depends(get_current_profile),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.list_staff(current_profile.barbershop_id, include_inactive)


@router.post("/staff", response_model=StaffResponse, status_code=201)
async def create_staff(
    data: StaffCreate,
    current_profile: Profile = Depends(require_admin),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_staff(current_profile.barbershop_id, data)


@router.patch("/staff/{profile_id}", response_model=StaffResponse)
async def update_staff(
    profile_id: int,
    data: StaffUpdate,
    current_profile: Profile = Depends(require_admin),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.update_staff(profile_id, current_profile.barbershop_id, data)


# ============================================================================
# SERVICES AND PRODUCTS
# ============================================================================


@router.get("/services", response_model=list[ServiceResponse])
async def list_services(
    include_inactive: bool = False,
    current_profile: Profile = Depends(get_current_profile),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.list_services(current_profile.barbershop_id, include_inactive)


@router.post("/services", response_model=ServiceResponse, status_code=201)
async def create_service(
    data: ServiceCreate,
    current_profile: Profile = Depends(require_admin),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_service(current_profile.barbershop_id, data)


@router.patch("/services/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: int,
    data: ServiceUpdate,
    current_profile: Profile = Depends(require_admin),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.update_service(service_id, current_profile.barbershop_id, data)


@router.get("/products", response_model=list[ProductResponse])
async def list_products(
    include_inactive: bool = False,
    current_profile: Profile = Depends(get_current_profile),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.list_products(current_profile.barbershop_id, include_inactive)


@router.post("/products", response_model=ProductResponse, status_code=201)
async def create_product(
    data: ProductCreate,
    current_profile: Profile = Depends(require_admin),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_product(current_profile.barbershop_id, data)


@router.patch("/products/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    data: ProductUpdate,
    current_profile: Profile = Depends(require_admin),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.update_product(product_id, current_profile.barbershop_id, data)


# ============================================================================
# CLIENTS
# ============================================================================


@router.get("/clients", response_model=list[ClientResponse])
async def list_clients(
    search: Optional[str] = None,
    current_profile: Profile = Depends(get_current_profile),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.list_clients(current_profile.barbershop_id, search)


@router.get("/clients/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    current_profile: Profile = Depends(get_current_profile),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.get_client(client_id, current_profile.barbershop_id)


@router.post("/clients", response_model=ClientResponse, status_code=201)
async def create_client(
    data: ClientCreate,
    current_profile: Profile = Depends(require_front_desk),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_client(current_profile.barbershop_id, data)


@router.patch("/clients/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: int,
    data: ClientUpdate,
    current_profile: Profile = Depends(require_front_desk),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.update_client(client_id, current_profile.barbershop_id, data)
