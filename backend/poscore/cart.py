"""
In-progress sale held for one checkout session.

A Cart is owned by a single cashier terminal and is never shared between
threads; it is not persisted. Totals are derived on every access so they can
never drift from the line items.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from . import money
from .restrictions import is_age_restricted
from .validation import InvalidQuantity, ValidationError


@dataclass
class CartItem:
    product_id: Optional[int]
    name: str
    department: object
    unit_price: int
    quantity: int
    tax_rate: money.Rate

    @property
    def department_id(self):
        return self.department.id

    @property
    def taxable(self) -> bool:
        return bool(self.department.taxable)

    @property
    def age_restriction(self) -> Optional[int]:
        return is_age_restricted(self.department)

    @property
    def line_subtotal(self) -> int:
        return money.line_total(self.unit_price, self.quantity)

    @property
    def tax_amount(self) -> int:
        if not self.taxable:
            return 0
        return money.tax(self.line_subtotal, self.tax_rate)

    @property
    def line_total(self) -> int:
        return self.line_subtotal + self.tax_amount

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "department_id": self.department_id,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "taxable": self.taxable,
            "age_restriction": self.age_restriction,
            "subtotal": self.line_subtotal,
            "tax_amount": self.tax_amount,
            "total": self.line_total,
        }


@dataclass
class Cart:
    items: list[CartItem] = field(default_factory=list)
    customer_age_verified: bool = False
    verified_age: Optional[int] = None
    _by_product: dict = field(default_factory=dict, repr=False)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add_item(self, product, quantity: int = 1, tax_rate: money.Rate = 0) -> CartItem:
        """Add a catalog product, merging with an existing line for the same product."""
        if quantity <= 0:
            raise InvalidQuantity("Quantity must be at least 1", {"quantity": quantity})

        existing = self._by_product.get(product.id)
        if existing is not None:
            existing.quantity += quantity
            return existing

        item = CartItem(
            product_id=product.id,
            name=product.name,
            department=product.department,
            unit_price=product.price_cents,
            quantity=quantity,
            tax_rate=tax_rate,
        )
        self.items.append(item)
        self._by_product[product.id] = item
        return item

    def add_manual_item(self, department, unit_price: int, quantity: int = 1, tax_rate: money.Rate = 0) -> CartItem:
        """Add a non-cataloged item priced by the cashier. Never merged."""
        if quantity <= 0:
            raise InvalidQuantity("Quantity must be at least 1", {"quantity": quantity})
        if unit_price < 0:
            raise ValidationError("price must be non-negative")

        item = CartItem(
            product_id=None,
            name=f"{department.name} Item",
            department=department,
            unit_price=unit_price,
            quantity=quantity,
            tax_rate=tax_rate,
        )
        self.items.append(item)
        return item

    def remove_item(self, index: int) -> CartItem:
        try:
            item = self.items.pop(index)
        except IndexError:
            raise ValidationError(f"No cart item at index {index}")
        if item.product_id is not None:
            self._by_product.pop(item.product_id, None)
        return item

    def update_quantity(self, index: int, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(index)
            return
        try:
            self.items[index].quantity = quantity
        except IndexError:
            raise ValidationError(f"No cart item at index {index}")

    def clear(self) -> None:
        self.items.clear()
        self._by_product.clear()
        self.customer_age_verified = False
        self.verified_age = None

    def verify_age(self, age: int) -> None:
        # Attestation by the cashier; there is no external ID check.
        self.verified_age = age
        self.customer_age_verified = True

    # -------------------------------------------------------------------------
    # Derived totals
    # -------------------------------------------------------------------------

    @property
    def subtotal(self) -> int:
        return sum(item.line_subtotal for item in self.items)

    @property
    def tax_amount(self) -> int:
        return sum(item.tax_amount for item in self.items)

    @property
    def total(self) -> int:
        return self.subtotal + self.tax_amount

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def requires_age_verification(self) -> bool:
        return any(item.age_restriction for item in self.items)

    @property
    def highest_age_requirement(self) -> Optional[int]:
        ages = [item.age_restriction for item in self.items if item.age_restriction]
        return max(ages) if ages else None

    def is_age_verified(self) -> bool:
        required = self.highest_age_requirement
        if required is None:
            return True
        if not self.customer_age_verified or self.verified_age is None:
            return False
        return self.verified_age >= required

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "subtotal": self.subtotal,
            "tax_amount": self.tax_amount,
            "total": self.total,
            "item_count": self.item_count,
            "requires_age_verification": self.requires_age_verification,
            "highest_age_requirement": self.highest_age_requirement,
            "customer_age_verified": self.customer_age_verified,
            "verified_age": self.verified_age,
        }
