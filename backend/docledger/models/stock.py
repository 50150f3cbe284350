from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..money import format_decimal, QUANTITY_SCALE
from ..time_utils import to_utc_z
from .types import Quantity


class StockMovement(db.Model):
    """
    Append-only stock ledger row.

    Current stock for (product, warehouse) is the sum of signed_quantity.
    Rows are never updated or deleted; a document's stock effect is undone
    by inserting compensating rows that point back via reversal_of_id.
    document_id is nullable so manual adjustments and transfers can live in
    the same ledger.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_org_product_warehouse", "org_id", "product_id", "warehouse_id"),
        db.Index("ix_stock_movements_org_occurred", "org_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    signed_quantity = db.Column(Quantity(), nullable=False)
    movement_type = db.Column(db.String(32), nullable=False, index=True)

    document_id = db.Column(
        db.Integer,
        db.ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    document_number_snapshot = db.Column(db.String(64), nullable=True)
    reversal_of_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    product = db.relationship("Product")
    warehouse = db.relationship("Warehouse")

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} "
            f"warehouse_id={self.warehouse_id} qty={self.signed_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "signed_quantity": format_decimal(self.signed_quantity, QUANTITY_SCALE),
            "movement_type": self.movement_type,
            "document_id": self.document_id,
            "document_number": self.document_number_snapshot,
            "reversal_of_id": self.reversal_of_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class ImmutableMovementError(RuntimeError):
    pass


@event.listens_for(StockMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise ImmutableMovementError(f"Stock movement {target.id} is append-only")


@event.listens_for(StockMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise ImmutableMovementError(f"Stock movement {target.id} is append-only")
