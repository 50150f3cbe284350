from __future__ import annotations

from ..extensions import db
from ..money import format_decimal, COST_SCALE, MONEY_SCALE, QUANTITY_SCALE
from ..time_utils import to_utc_z
from .types import Cost, Money, Quantity


class ProductAnnualStat(db.Model):
    """
    Per-product, per-fiscal-year purchase/sale totals and weighted average cost.

    A cache over finalized valuation-impacting documents: every row can be
    deleted and replayed from the documents of its year with the same result.
    version_id guards against two concurrent finalizations losing an update.
    """
    __tablename__ = "product_annual_stats"
    __table_args__ = (
        db.UniqueConstraint("org_id", "product_id", "year", name="uq_product_annual_stats_org_product_year"),
        db.Index("ix_product_annual_stats_org_year", "org_id", "year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)

    purchased_quantity = db.Column(Quantity(), nullable=False)
    purchased_amount = db.Column(Money(), nullable=False)
    sold_quantity = db.Column(Quantity(), nullable=False)
    sold_amount = db.Column(Money(), nullable=False)
    weighted_average_cost = db.Column(Cost(), nullable=False)
    last_cost = db.Column(Cost(), nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    __mapper_args__ = {"version_id_col": version_id}

    def values(self) -> tuple:
        """The derived fields, for comparing incremental and rebuilt rows."""
        return (
            self.purchased_quantity,
            self.purchased_amount,
            self.sold_quantity,
            self.sold_amount,
            self.weighted_average_cost,
            self.last_cost,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "product_id": self.product_id,
            "year": self.year,
            "purchased_quantity": format_decimal(self.purchased_quantity, QUANTITY_SCALE),
            "purchased_amount": format_decimal(self.purchased_amount, MONEY_SCALE),
            "sold_quantity": format_decimal(self.sold_quantity, QUANTITY_SCALE),
            "sold_amount": format_decimal(self.sold_amount, MONEY_SCALE),
            "weighted_average_cost": format_decimal(self.weighted_average_cost, COST_SCALE),
            "last_cost": format_decimal(self.last_cost, COST_SCALE),
            "updated_at": to_utc_z(self.updated_at),
        }


class ValuationLock(db.Model):
    """
    Lock anchor per (tenant, fiscal year).

    Finalizations that touch valuation take it shared; a rebuild takes it
    exclusive for the whole delete-and-replay.
    """
    __tablename__ = "valuation_locks"
    __table_args__ = (
        db.UniqueConstraint("org_id", "year", name="uq_valuation_locks_org_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    last_rebuilt_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_rebuild_documents = db.Column(db.Integer, nullable=True)
