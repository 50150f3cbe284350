from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Organization(db.Model):
    """
    Multi-tenant root: every tenant is an Organization.

    All warehouses, counterparties, products, documents, movements and
    statistics carry org_id. No query may cross organization boundaries.
    Deactivation blocks writes; data is kept.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Warehouse(db.Model):
    """Physical or logical stock location. Codes are unique within an organization."""
    __tablename__ = "warehouses"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_warehouses_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("warehouses", lazy=True))

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} code={self.code!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Counterparty(db.Model):
    """
    Customer or supplier.

    Documents copy these fields at finalization; later edits here never
    reach an already finalized document.
    """
    __tablename__ = "counterparties"
    __table_args__ = (
        db.Index("ix_counterparties_org_name", "org_id", "business_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False, default="CUSTOMER")  # CUSTOMER, SUPPLIER, BOTH

    business_name = db.Column(db.String(255), nullable=False)
    vat_number = db.Column(db.String(32), nullable=True)
    fiscal_code = db.Column(db.String(32), nullable=True)
    sdi_code = db.Column(db.String(16), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    province = db.Column(db.String(8), nullable=True)
    zip_code = db.Column(db.String(16), nullable=True)
    country = db.Column(db.String(2), nullable=False, default="IT")

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("counterparties", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Counterparty id={self.id} name={self.business_name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "kind": self.kind,
            "business_name": self.business_name,
            "vat_number": self.vat_number,
            "fiscal_code": self.fiscal_code,
            "sdi_code": self.sdi_code,
            "address": self.address,
            "city": self.city,
            "province": self.province,
            "zip_code": self.zip_code,
            "country": self.country,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
