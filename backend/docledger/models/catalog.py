from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog item.

    manage_stock=False marks services: their lines never produce stock
    movements. quantity_decimals caps the fractional digits accepted on
    document lines for this product (0..4).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_products_org_code"),
        db.CheckConstraint("quantity_decimals BETWEEN 0 AND 4", name="quantity_decimals_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    manage_stock = db.Column(db.Boolean, nullable=False, default=True)
    default_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True)
    quantity_decimals = db.Column(db.Integer, nullable=False, default=4)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    default_warehouse = db.relationship("Warehouse", foreign_keys=[default_warehouse_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "name": self.name,
            "manage_stock": self.manage_stock,
            "default_warehouse_id": self.default_warehouse_id,
            "quantity_decimals": self.quantity_decimals,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
