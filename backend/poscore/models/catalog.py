from __future__ import annotations

from ..extensions import db
from ..restrictions import TimeRestriction


class Department(db.Model):
    """
    Tax / age / time-restriction policy bucket that products belong to.

    Time restriction hours are 0-23 local time; the restricted window is
    [start, end) and may wrap midnight.
    """
    __tablename__ = "departments"
    __table_args__ = (
        db.CheckConstraint("time_restriction_start IS NULL OR (time_restriction_start BETWEEN 0 AND 23)", name="ck_departments_time_start"),
        db.CheckConstraint("time_restriction_end IS NULL OR (time_restriction_end BETWEEN 0 AND 23)", name="ck_departments_time_end"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    taxable = db.Column(db.Boolean, nullable=False, default=True)
    age_restriction = db.Column(db.Integer, nullable=True)
    time_restriction_start = db.Column(db.Integer, nullable=True)
    time_restriction_end = db.Column(db.Integer, nullable=True)
    system = db.Column(db.Boolean, nullable=False, default=False)

    business = db.relationship("Business", backref=db.backref("departments", lazy=True))

    @property
    def time_restriction(self) -> TimeRestriction | None:
        if self.time_restriction_start is None or self.time_restriction_end is None:
            return None
        return TimeRestriction(self.time_restriction_start, self.time_restriction_end)

    def to_dict(self) -> dict:
        restriction = self.time_restriction
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "taxable": self.taxable,
            "age_restriction": self.age_restriction,
            "time_restriction": restriction.to_dict() if restriction else None,
            "system": self.system,
        }


class Product(db.Model):
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("business_id", "upc", name="uq_products_business_upc"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    upc = db.Column(db.String(14), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    department = db.relationship("Department", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "department_id": self.department_id,
            "name": self.name,
            "upc": self.upc,
            "price_cents": self.price_cents,
            "active": self.active,
        }
