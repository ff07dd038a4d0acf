# Overview: Invoice factory; turns a paid memo or repair into an Invoice with its Payment.

from __future__ import annotations

from ..extensions import db
from ..models import Document, Invoice, InvoiceLine, Payment
from doctrail.time_utils import utcnow
from .document_errors import InvalidInput
from .document_service import next_document_number
from .document_states import DOCUMENT_PREFIXES, PAYMENT_METHODS


def create_from_document(doc: Document, payment_details: dict) -> Invoice:
    """
    Build an Invoice (plus one Payment) from the document's active lines.

    payment_details:
    - method (required, one of PAYMENT_METHODS)
    - amount_cents (defaults to the document balance)
    - reference, created_by_user_id (optional)

    Flushes but never commits: it runs inside the lifecycle transition that
    receives the payment.
    """
    method = (payment_details.get("method") or "").strip().lower()
    if method not in PAYMENT_METHODS:
        raise InvalidInput(
            f"Invalid payment method '{method}'. Must be one of: {', '.join(sorted(PAYMENT_METHODS))}"
        )

    amount = payment_details.get("amount_cents")
    if amount is None:
        amount = doc.balance_cents
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidInput("amount_cents must be a non-negative integer")

    now = utcnow()
    invoice = Invoice(
        store_id=doc.store_id,
        document_id=doc.id,
        invoice_number=next_document_number(
            store_id=doc.store_id,
            document_type="invoice",
            prefix=DOCUMENT_PREFIXES["invoice"],
        ),
        status="PAID",
        vendor_id=doc.vendor_id,
        customer_id=doc.customer_id,
        subtotal_cents=doc.subtotal_cents,
        discount_cents=doc.discount_cents,
        service_fee_cents=doc.service_fee_cents,
        tax_cents=doc.tax_cents,
        shipping_cents=doc.shipping_cents,
        total_cents=doc.total_cents,
        paid_cents=amount,
        paid_at=now,
    )
    db.session.add(invoice)
    db.session.flush()

    for line in doc.active_lines:
        db.session.add(InvoiceLine(
            invoice_id=invoice.id,
            document_line_id=line.id,
            sku=line.sku,
            title=line.title,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            unit_cost_cents=line.unit_cost_cents,
            line_total_cents=line.line_total_cents,
        ))

    db.session.add(Payment(
        store_id=doc.store_id,
        document_id=doc.id,
        invoice_id=invoice.id,
        method=method,
        amount_cents=amount,
        reference=payment_details.get("reference"),
        created_by_user_id=payment_details.get("created_by_user_id"),
    ))
    db.session.flush()
    return invoice


def refund_document_payments(doc: Document) -> int:
    """Mark the document's invoices and payments refunded. Returns refunded cents."""
    now = utcnow()
    refunded = 0
    for invoice in db.session.query(Invoice).filter_by(document_id=doc.id, status="PAID").all():
        invoice.status = "REFUNDED"
        invoice.refunded_at = now
    for payment in db.session.query(Payment).filter_by(document_id=doc.id, status="COMPLETED").all():
        payment.status = "REFUNDED"
        refunded += payment.amount_cents
    db.session.flush()
    return refunded


def list_invoices(store_id: int, *, document_id: int | None = None) -> list[Invoice]:
    query = db.session.query(Invoice).filter(Invoice.store_id == store_id)
    if document_id is not None:
        query = query.filter(Invoice.document_id == document_id)
    return query.order_by(Invoice.id.asc()).all()
