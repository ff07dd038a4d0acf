from __future__ import annotations

from ..extensions import db
from doctrail.time_utils import to_utc_z, add_days, days_between, utcnow


class Document(db.Model):
    """
    Commercial document moving through a status lifecycle.

    VARIANTS (document_type):
    - memo:   goods consigned to a vendor. Counterparty: vendor.
    - repair: goods sent to a vendor for work, billed to a customer.
              Appraisals are repairs with is_appraisal=True.
    - return: goods coming back from a customer. Counterparty: customer.

    LIFECYCLE:
    status only changes through lifecycle_service. The allowed statuses and
    transitions for each document_type live in services/document_states.py.

    MONEY:
    All amounts in cents. tax_rate_bps and percent adjustments are basis points.
    The *_cents totals are derived by totals_service and persisted so listings
    do not need to load lines.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("store_id", "document_number", name="uq_documents_store_docnum"),
        db.Index("ix_documents_document_number", "document_number"),
        # Composite index for store-scoped queries by type, status and date
        db.Index("ix_documents_store_type_status_created", "store_id", "document_type", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    document_type = db.Column(db.String(16), nullable=False, index=True)  # memo, repair, return
    is_appraisal = db.Column(db.Boolean, nullable=False, default=False)

    # Human-readable document number (e.g., "MEM-001-0042")
    document_number = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(32), nullable=False, index=True)

    # Counterparties
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    description = db.Column(db.Text, nullable=True)
    reason = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    # Memo payment terms (days)
    tenure_days = db.Column(db.Integer, nullable=True)

    # Adjustment inputs
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    charge_taxes = db.Column(db.Boolean, nullable=False, default=False)
    discount_value = db.Column(db.Integer, nullable=False, default=0)
    discount_unit = db.Column(db.String(16), nullable=False, default="fixed")  # fixed (cents) | percent (bps)
    discount_reason = db.Column(db.String(255), nullable=True)
    service_fee_value = db.Column(db.Integer, nullable=False, default=0)
    service_fee_unit = db.Column(db.String(16), nullable=False, default="fixed")
    service_fee_reason = db.Column(db.String(255), nullable=True)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    restocking_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    # Derived totals (totals_service.apply_totals)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    service_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=True)
    refund_method = db.Column(db.String(32), nullable=True)

    # Days the goods spent with the counterparty (set when the document closes)
    duration_days = db.Column(db.Integer, nullable=True)

    # Milestone timestamps (set/cleared by lifecycle_service)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("documents", lazy=True))
    vendor = db.relationship("Vendor", backref=db.backref("documents", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("documents", lazy=True))
    lines = db.relationship(
        "DocumentLine",
        backref="document",
        lazy=True,
        order_by="DocumentLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Document id={self.id} type={self.document_type} number={self.document_number!r} status={self.status}>"

    @property
    def active_lines(self) -> list["DocumentLine"]:
        return [line for line in self.lines if not line.is_returned]

    @property
    def due_date(self):
        """Memo due date: created_at + tenure."""
        if self.document_type != "memo":
            return None
        return add_days(self.created_at, self.tenure_days)

    @property
    def is_overdue(self) -> bool:
        due = self.due_date
        return bool(due and due < utcnow() and self.status == "vendor_received")

    @property
    def days_with_counterparty(self) -> int:
        """Days since the counterparty received the goods, frozen once the document closes."""
        if not self.received_at:
            return 0
        end = (
            self.paid_at
            or self.returned_at
            or self.completed_at
            or self.cancelled_at
            or self.archived_at
            or utcnow()
        )
        return days_between(self.received_at, end)

    def to_dict(self, *, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "document_type": self.document_type,
            "is_appraisal": self.is_appraisal,
            "document_number": self.document_number,
            "status": self.status,
            "vendor_id": self.vendor_id,
            "customer_id": self.customer_id,
            "description": self.description,
            "reason": self.reason,
            "rejection_reason": self.rejection_reason,
            "tenure_days": self.tenure_days,
            "due_date": to_utc_z(self.due_date),
            "is_overdue": self.is_overdue,
            "days_with_counterparty": self.days_with_counterparty,
            "duration_days": self.duration_days,
            "tax_rate_bps": self.tax_rate_bps,
            "charge_taxes": self.charge_taxes,
            "discount_value": self.discount_value,
            "discount_unit": self.discount_unit,
            "discount_reason": self.discount_reason,
            "service_fee_value": self.service_fee_value,
            "service_fee_unit": self.service_fee_unit,
            "service_fee_reason": self.service_fee_reason,
            "shipping_cents": self.shipping_cents,
            "restocking_fee_cents": self.restocking_fee_cents,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "service_fee_cents": self.service_fee_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "balance_cents": self.balance_cents,
            "payment_method": self.payment_method,
            "refund_method": self.refund_method,
            "sent_at": to_utc_z(self.sent_at),
            "received_at": to_utc_z(self.received_at),
            "approved_at": to_utc_z(self.approved_at),
            "completed_at": to_utc_z(self.completed_at),
            "returned_at": to_utc_z(self.returned_at),
            "paid_at": to_utc_z(self.paid_at),
            "refunded_at": to_utc_z(self.refunded_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "archived_at": to_utc_z(self.archived_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class DocumentLine(db.Model):
    """
    Line item on a document.

    STOCK FLAGS:
    - inventory_unit_id: unit the goods were drawn from (memo/repair) or go back to (return)
    - restock: the line should go back to inventory when the document releases it
    - restocked/restocked_at: set exactly once, when the quantity was added back
    - is_returned/returned_at: the line no longer counts toward totals (memo/repair)
    - is_sold/sold_at: the line was invoiced when payment was received
    """
    __tablename__ = "document_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_document_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    inventory_unit_id = db.Column(db.Integer, db.ForeignKey("inventory_units.id"), nullable=True, index=True)

    sku = db.Column(db.String(64), nullable=True)
    title = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)
    charge_taxes = db.Column(db.Boolean, nullable=False, default=True)

    reason = db.Column(db.String(255), nullable=True)
    condition = db.Column(db.String(64), nullable=True)

    restock = db.Column(db.Boolean, nullable=False, default=False)
    restocked = db.Column(db.Boolean, nullable=False, default=False)
    restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_returned = db.Column(db.Boolean, nullable=False, default=False)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_sold = db.Column(db.Boolean, nullable=False, default=False)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    inventory_unit = db.relationship("InventoryUnit")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<DocumentLine id={self.id} document_id={self.document_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "product_id": self.product_id,
            "inventory_unit_id": self.inventory_unit_id,
            "sku": self.sku,
            "title": self.title,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
            "charge_taxes": self.charge_taxes,
            "reason": self.reason,
            "condition": self.condition,
            "restock": self.restock,
            "restocked": self.restocked,
            "restocked_at": to_utc_z(self.restocked_at),
            "is_returned": self.is_returned,
            "returned_at": to_utc_z(self.returned_at),
            "is_sold": self.is_sold,
            "sold_at": to_utc_z(self.sold_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-store document sequences.

    WHY: Prevent race conditions when generating document numbers
    (memos, repairs, appraisals, returns, invoices).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("store_id", "document_type", name="uq_doc_sequences_store_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
