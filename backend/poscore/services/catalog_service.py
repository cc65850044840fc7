# Overview: Read-only catalog lookups (products by UPC, departments) for checkout.

"""
Catalog collaborator.

Business, department and product CRUD belong to the back-office side of the
system. Checkout only needs two reads, so it depends on this small interface
rather than on the models directly.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Department, Product


class CatalogService:
    """Interface consumed by the checkout orchestrator."""

    def get_product_by_upc(self, business_id: int, upc: str) -> Product | None:
        raise NotImplementedError

    def get_department(self, business_id: int, department_id: int) -> Department | None:
        raise NotImplementedError


class SqlCatalog(CatalogService):
    """Catalog backed by the application database."""

    def get_product_by_upc(self, business_id: int, upc: str) -> Product | None:
        return db.session.query(Product).filter_by(
            business_id=business_id,
            upc=upc,
            active=True,
        ).first()

    def get_department(self, business_id: int, department_id: int) -> Department | None:
        return db.session.query(Department).filter_by(
            business_id=business_id,
            id=department_id,
        ).first()
