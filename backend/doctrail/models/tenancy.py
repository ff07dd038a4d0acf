from __future__ import annotations

from ..extensions import db
from doctrail.time_utils import to_utc_z


class Store(db.Model):
    """
    Store (tenant boundary).

    MULTI-TENANT: Every document, vendor, customer, product and inventory unit
    carries a store_id. Lifecycle operations receive the store_id explicitly and
    refuse documents that belong to another store.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    # Store-level configuration
    timezone = db.Column(db.String(64), nullable=False, default='UTC')
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)  # Basis points (e.g., 825 = 8.25%)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "timezone": self.timezone,
            "tax_rate_bps": self.tax_rate_bps,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
