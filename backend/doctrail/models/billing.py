from __future__ import annotations

from ..extensions import db
from doctrail.time_utils import to_utc_z


class Invoice(db.Model):
    """
    Sale record produced when a memo or repair receives payment.

    Lines are a snapshot of the document's active lines at payment time;
    later edits to the document never change an issued invoice.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("store_id", "invoice_number", name="uq_invoices_store_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)

    invoice_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PAID")  # PAID, REFUNDED

    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    service_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    document = db.relationship("Document", backref=db.backref("invoices", lazy=True))
    lines = db.relationship("InvoiceLine", backref="invoice", lazy=True, order_by="InvoiceLine.id")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "document_id": self.document_id,
            "invoice_number": self.invoice_number,
            "status": self.status,
            "vendor_id": self.vendor_id,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "service_fee_cents": self.service_fee_cents,
            "tax_cents": self.tax_cents,
            "shipping_cents": self.shipping_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "created_at": to_utc_z(self.created_at),
            "paid_at": to_utc_z(self.paid_at),
            "refunded_at": to_utc_z(self.refunded_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class InvoiceLine(db.Model):
    __tablename__ = "invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    document_line_id = db.Column(db.Integer, db.ForeignKey("document_lines.id"), nullable=True)

    sku = db.Column(db.String(64), nullable=True)
    title = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "document_line_id": self.document_line_id,
            "sku": self.sku,
            "title": self.title,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
        }


class Payment(db.Model):
    """Money received against a document (negative amounts are refunds)."""
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)

    method = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED")  # COMPLETED, REFUNDED

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    document = db.relationship("Document", backref=db.backref("payments", lazy=True))
    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "document_id": self.document_id,
            "invoice_id": self.invoice_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
