"""Catalog domain - Barbershop settings, staff, services, products and clients"""

from .router import router
from .service import CatalogService

__all__ = ["router", "CatalogService"]
