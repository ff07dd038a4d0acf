# Overview: Service-layer operations for documents; numbering, creation wizard, line items and queries.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import (
    Customer,
    Document,
    DocumentLine,
    DocumentSequence,
    Product,
    Store,
    Vendor,
)
from ..validation import (
    ADJUSTMENT_POLICY,
    DOCUMENT_HEADER_POLICY,
    LINE_POLICY,
    ValidationError,
    enforce_rules_adjustments,
    enforce_rules_line,
    validate_payload,
)
from doctrail.time_utils import utcnow
from . import activity_service, inventory_service
from .concurrency import lock_for_update, retry_settings, run_with_retry
from .document_errors import (
    AlreadyProcessed,
    DocumentNotFound,
    DocumentNotOwned,
    InvalidInput,
    InvalidTransition,
)
from .document_states import (
    DOCUMENT_PREFIXES,
    INITIAL_STATUS,
    MEMO_TENURES,
    DocumentKind,
    is_closed,
    sequence_type_for,
)
from .totals_service import apply_totals


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


# URL kind -> (document_type, is_appraisal)
DOCUMENT_KINDS = {
    "memos": (DocumentKind.MEMO.value, False),
    "repairs": (DocumentKind.REPAIR.value, False),
    "appraisals": (DocumentKind.REPAIR.value, True),
    "returns": (DocumentKind.RETURN.value, False),
}


def resolve_kind(kind: str) -> tuple[str, bool]:
    try:
        return DOCUMENT_KINDS[kind]
    except KeyError:
        raise DocumentNotFound(f"Unknown document kind '{kind}'")


def next_document_number(
    *,
    store_id: int,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for a store/sequence type.

    Runs inside the caller's transaction: the counter bump commits or rolls
    back with the document it numbers. Two writers creating the first row
    for a (store, type) pair collide on the unique constraint; that
    IntegrityError propagates so the caller's retry re-runs the whole unit.
    """
    if not store_id:
        raise DocumentSequenceError("store_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.store_id == store_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(store_id=store_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(store_id=store_id, document_type=document_type, next_number=2)
        db.session.add(seq)
        db.session.flush()
        next_num = 1

    return f"{prefix}-{store_id:03d}-{next_num:0{pad}d}"


# =============================================================================
# Loading
# =============================================================================

def load_document(
    store_id: int,
    document_id: int,
    *,
    document_type: str | None = None,
    for_update: bool = False,
) -> Document:
    """
    Load a document for a store.

    Raises DocumentNotFound if it does not exist (or is not of document_type)
    and DocumentNotOwned if it belongs to another store.
    """
    query = db.session.query(Document).filter(Document.id == document_id)
    if for_update:
        query = lock_for_update(query)
    doc = query.first()

    if doc is None or (document_type and doc.document_type != document_type):
        raise DocumentNotFound(f"Document {document_id} not found", document_id=document_id)
    if doc.store_id != store_id:
        raise DocumentNotOwned(
            f"Document {document_id} does not belong to store {store_id}",
            document_id=document_id,
        )
    return doc


def get_document(store_id: int, document_id: int, *, kind: str | None = None) -> Document:
    document_type = None
    if kind:
        document_type, is_appraisal = resolve_kind(kind)
    doc = load_document(store_id, document_id, document_type=document_type)
    if kind and doc.is_appraisal != is_appraisal:
        raise DocumentNotFound(f"Document {document_id} not found", document_id=document_id)
    return doc


def list_documents(
    store_id: int,
    *,
    document_type: str | None = None,
    is_appraisal: bool | None = None,
    status: str | None = None,
    limit: int = 200,
    offset: int = 0,
) -> list[Document]:
    query = db.session.query(Document).filter(Document.store_id == store_id)
    if document_type:
        query = query.filter(Document.document_type == document_type)
    if is_appraisal is not None:
        query = query.filter(Document.is_appraisal == is_appraisal)
    if status:
        query = query.filter(Document.status == status)
    return (
        query.order_by(Document.created_at.desc(), Document.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def list_overdue_memos(store_id: int, *, now=None) -> list[Document]:
    """Memos still with the vendor past created_at + tenure."""
    now = now or utcnow()
    candidates = (
        db.session.query(Document)
        .filter(
            Document.store_id == store_id,
            Document.document_type == DocumentKind.MEMO.value,
            Document.status == "vendor_received",
            Document.tenure_days.isnot(None),
        )
        .order_by(Document.created_at.asc())
        .all()
    )
    return [doc for doc in candidates if doc.due_date and doc.due_date < now]


# =============================================================================
# Creation wizard
# =============================================================================

def _require_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if not store:
        raise InvalidInput(f"Store {store_id} not found")
    return store


def _resolve_vendor(store_id: int, data: dict) -> int | None:
    if data.get("vendor_id") is not None:
        vendor = db.session.query(Vendor).filter_by(id=data["vendor_id"], store_id=store_id).first()
        if not vendor:
            raise InvalidInput(f"Vendor {data['vendor_id']} not found")
        return vendor.id

    inline = data.get("vendor")
    if not inline:
        return None
    if not isinstance(inline, dict) or not (inline.get("name") or "").strip():
        raise ValidationError("vendor.name is required for a new vendor")
    vendor = Vendor(
        store_id=store_id,
        name=inline["name"].strip(),
        company_name=inline.get("company_name"),
        email=inline.get("email"),
        phone=inline.get("phone"),
    )
    db.session.add(vendor)
    db.session.flush()
    return vendor.id


def _resolve_customer(store_id: int, data: dict) -> int | None:
    if data.get("customer_id") is not None:
        customer = db.session.query(Customer).filter_by(id=data["customer_id"], store_id=store_id).first()
        if not customer:
            raise InvalidInput(f"Customer {data['customer_id']} not found")
        return customer.id

    inline = data.get("customer")
    if not inline:
        return None
    if not isinstance(inline, dict) or not (inline.get("first_name") or "").strip():
        raise ValidationError("customer.first_name is required for a new customer")
    customer = Customer(
        store_id=store_id,
        first_name=inline["first_name"].strip(),
        last_name=inline.get("last_name"),
        email=inline.get("email"),
        phone=inline.get("phone"),
    )
    db.session.add(customer)
    db.session.flush()
    return customer.id


def _validate_tenure(tenure_days) -> int:
    if tenure_days not in MEMO_TENURES:
        raise ValidationError(
            f"tenure_days must be one of: {', '.join(str(t) for t in MEMO_TENURES)}"
        )
    return tenure_days


def _build_line(store_id: int, payload: dict, *, document_type: str) -> DocumentLine:
    """Validate a line payload and fill product defaults. Does not touch stock."""
    patch = validate_payload(model=DocumentLine, payload=payload, policy=LINE_POLICY, partial=False)
    enforce_rules_line(patch)

    unit = None
    if patch.get("inventory_unit_id") is not None:
        unit = inventory_service.get_unit(store_id, patch["inventory_unit_id"])
        if patch.get("product_id") is None:
            patch["product_id"] = unit.product_id
        elif patch["product_id"] != unit.product_id:
            raise ValidationError("inventory_unit_id does not hold product_id")

    product = None
    if patch.get("product_id") is not None:
        product = db.session.query(Product).filter_by(id=patch["product_id"], store_id=store_id).first()
        if not product:
            raise InvalidInput(f"Product {patch['product_id']} not found")

    if product:
        patch.setdefault("sku", product.sku)
        patch.setdefault("title", product.name)
        if patch.get("unit_price_cents") is None:
            patch["unit_price_cents"] = product.price_cents or 0
        if patch.get("unit_cost_cents") is None:
            patch["unit_cost_cents"] = product.cost_cents or 0

    if not patch.get("sku") and not patch.get("title"):
        raise ValidationError("A line needs a product, sku or title")

    # Return lines go back on the shelf unless told otherwise; memo/repair
    # lines get the flag when their stock is drawn.
    restock = patch.pop("restock", None)
    line = DocumentLine(**patch)
    if line.unit_price_cents is None:
        line.unit_price_cents = 0
    if line.unit_cost_cents is None:
        line.unit_cost_cents = 0
    if document_type == DocumentKind.RETURN.value:
        line.restock = True if restock is None else bool(restock)
    else:
        line.restock = False
    return line


def _attach_line(doc: Document, line: DocumentLine) -> None:
    doc.lines.append(line)
    if doc.document_type != DocumentKind.RETURN.value:
        inventory_service.draw_line(doc.store_id, line)


def create_document(
    store_id: int,
    document_type: str,
    data: dict,
    *,
    is_appraisal: bool = False,
    created_by_user_id: int | None = None,
) -> Document:
    """
    Create a document in its initial status.

    data accepts the header fields of DOCUMENT_HEADER_POLICY plus:
    - vendor / customer: inline new counterparty (instead of *_id)
    - items: list of line payloads (LINE_POLICY)

    Memo/repair items linked to an inventory unit are drawn from stock.
    Everything runs in one transaction: a bad item or insufficient stock
    leaves no document, no counterparty and no stock change behind.
    """
    if document_type not in {k.value for k in DocumentKind}:
        raise ValidationError(f"Unknown document_type '{document_type}'")
    if is_appraisal and document_type != DocumentKind.REPAIR.value:
        raise ValidationError("Only repairs can be appraisals")

    data = dict(data or {})
    items = data.pop("items", None) or []
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    def _op() -> Document:
        store = _require_store(store_id)

        header_payload = {k: v for k, v in data.items() if k not in ("vendor", "customer", "vendor_id", "customer_id")}
        header = validate_payload(
            model=Document,
            payload=header_payload,
            policy=DOCUMENT_HEADER_POLICY,
            partial=True,
        )
        enforce_rules_adjustments(header)

        vendor_id = _resolve_vendor(store_id, data) if document_type != DocumentKind.RETURN.value else None
        customer_id = _resolve_customer(store_id, data)

        if document_type == DocumentKind.MEMO.value:
            header["tenure_days"] = _validate_tenure(
                header.get("tenure_days") or current_app.config.get("DEFAULT_MEMO_TENURE_DAYS", 30)
            )
        else:
            header.pop("tenure_days", None)

        header.setdefault("tax_rate_bps", store.tax_rate_bps or 0)
        header.setdefault("charge_taxes", document_type != DocumentKind.RETURN.value)

        sequence_type = sequence_type_for(document_type, is_appraisal=is_appraisal)
        doc = Document(
            store_id=store_id,
            document_type=document_type,
            is_appraisal=is_appraisal,
            document_number=next_document_number(
                store_id=store_id,
                document_type=sequence_type,
                prefix=DOCUMENT_PREFIXES[sequence_type],
            ),
            status=INITIAL_STATUS,
            vendor_id=vendor_id,
            customer_id=customer_id,
            created_by_user_id=created_by_user_id,
            **header,
        )
        db.session.add(doc)

        for payload in items:
            _attach_line(doc, _build_line(store_id, payload, document_type=document_type))

        apply_totals(doc)
        db.session.commit()
        return doc

    doc = _run_unit(_op)
    activity_service.record(
        f"{document_type}s.created",
        doc,
        actor_user_id=created_by_user_id,
        payload={"document_number": doc.document_number, "lines": len(doc.lines)},
        message=f"Created {doc.document_number}",
    )
    return doc


# =============================================================================
# Editing (initial status only)
# =============================================================================

def _run_unit(func):
    """Run func with retry; on a domain or validation error roll back and re-raise."""
    attempts, backoff = retry_settings()

    def _guarded():
        try:
            return func()
        except ValueError:
            db.session.rollback()
            raise

    return run_with_retry(_guarded, attempts=attempts, backoff_base=backoff)


def _load_editable(store_id: int, document_id: int) -> Document:
    doc = load_document(store_id, document_id, for_update=True)
    if doc.status != INITIAL_STATUS:
        raise InvalidTransition(
            document_type=doc.document_type,
            current_status=doc.status,
            target=doc.status,
            action="edit",
        )
    return doc


def _find_line(doc: Document, line_id: int) -> DocumentLine:
    for line in doc.lines:
        if line.id == line_id:
            return line
    raise DocumentNotFound(f"Line {line_id} not found on document {doc.id}", line_id=line_id)


def add_line(store_id: int, document_id: int, payload: dict, *, actor_user_id: int | None = None) -> DocumentLine:
    def _op() -> DocumentLine:
        doc = _load_editable(store_id, document_id)
        line = _build_line(store_id, payload, document_type=doc.document_type)
        _attach_line(doc, line)
        apply_totals(doc)
        db.session.commit()
        return line

    line = _run_unit(_op)
    activity_service.record(
        "documents.line_added",
        line.document,
        actor_user_id=actor_user_id,
        payload={"line_id": line.id, "quantity": line.quantity},
    )
    return line


def update_line(
    store_id: int,
    document_id: int,
    line_id: int,
    payload: dict,
    *,
    actor_user_id: int | None = None,
) -> DocumentLine:
    """
    Patch a line. Price/description fields only; a different product or
    inventory unit means remove + add. Quantity changes on a drawn line move
    the difference in or out of stock. Returned or restocked lines are final.
    """
    def _op() -> DocumentLine:
        doc = _load_editable(store_id, document_id)
        line = _find_line(doc, line_id)
        if line.is_returned or line.restocked:
            raise AlreadyProcessed(f"Line {line.id} has already been returned or restocked", line_id=line.id)
        patch = validate_payload(model=DocumentLine, payload=payload, policy=LINE_POLICY, partial=True)
        enforce_rules_line(patch)

        for key in ("product_id", "inventory_unit_id"):
            if key in patch and patch[key] != getattr(line, key):
                raise ValidationError(f"{key} cannot be changed; remove the line and add a new one")
            patch.pop(key, None)

        if "restock" in patch and doc.document_type != DocumentKind.RETURN.value:
            raise ValidationError("restock can only be set on return lines")

        new_qty = patch.pop("quantity", line.quantity)
        drawn = doc.document_type != DocumentKind.RETURN.value and line.inventory_unit_id
        if drawn and new_qty != line.quantity:
            delta = new_qty - line.quantity
            if delta > 0:
                inventory_service.decrement(store_id, line.inventory_unit_id, delta)
            else:
                inventory_service.increment(store_id, line.inventory_unit_id, -delta)
        line.quantity = new_qty

        for key, value in patch.items():
            setattr(line, key, value)

        apply_totals(doc)
        db.session.commit()
        return line

    line = _run_unit(_op)
    activity_service.record(
        "documents.line_updated",
        line.document,
        actor_user_id=actor_user_id,
        payload={"line_id": line.id, "fields": sorted(payload.keys())},
    )
    return line


def remove_line(store_id: int, document_id: int, line_id: int, *, actor_user_id: int | None = None) -> Document:
    def _op() -> Document:
        doc = _load_editable(store_id, document_id)
        line = _find_line(doc, line_id)
        if doc.document_type != DocumentKind.RETURN.value:
            inventory_service.restock_lines(store_id, [line])
        doc.lines.remove(line)
        apply_totals(doc)
        db.session.commit()
        return doc

    doc = _run_unit(_op)
    activity_service.record(
        "documents.line_removed",
        doc,
        actor_user_id=actor_user_id,
        payload={"line_id": line_id},
    )
    return doc


def update_adjustments(
    store_id: int,
    document_id: int,
    payload: dict,
    *,
    actor_user_id: int | None = None,
) -> Document:
    """
    Update discount, service fee, tax, shipping and restocking fee.

    Allowed in any non-terminal status; totals are recomputed immediately.
    """
    def _op() -> Document:
        doc = load_document(store_id, document_id, for_update=True)
        if is_closed(doc.document_type, doc.status):
            raise InvalidTransition(
                document_type=doc.document_type,
                current_status=doc.status,
                target=doc.status,
                action="adjust",
            )
        patch = validate_payload(model=Document, payload=payload, policy=ADJUSTMENT_POLICY, partial=True)
        merged = {
            "discount_unit": doc.discount_unit,
            "discount_value": doc.discount_value,
            "service_fee_unit": doc.service_fee_unit,
            "service_fee_value": doc.service_fee_value,
        }
        merged.update(patch)
        enforce_rules_adjustments(merged)

        for key, value in patch.items():
            setattr(doc, key, value)
        apply_totals(doc)
        db.session.commit()
        return doc

    doc = _run_unit(_op)
    activity_service.record(
        "documents.adjusted",
        doc,
        actor_user_id=actor_user_id,
        payload={"fields": sorted(payload.keys()), "total_cents": doc.total_cents},
    )
    return doc


def delete_document(store_id: int, document_id: int, *, actor_user_id: int | None = None) -> dict:
    """
    Delete a document in its initial status.

    Unreturned drawn lines are restocked first, in the same transaction.
    Returns the deleted document's dict.
    """
    def _op() -> dict:
        doc = _load_editable(store_id, document_id)
        snapshot = doc.to_dict()
        if doc.document_type != DocumentKind.RETURN.value:
            inventory_service.restock_lines(store_id, doc.lines)
        db.session.flush()
        db.session.delete(doc)
        db.session.commit()
        return snapshot

    snapshot = _run_unit(_op)
    activity_service.record(
        f"{snapshot['document_type']}s.deleted",
        subject_type=snapshot["document_type"],
        subject_id=snapshot["id"],
        store_id=store_id,
        actor_user_id=actor_user_id,
        payload={"document_number": snapshot["document_number"]},
        message=f"Deleted {snapshot['document_number']}",
    )
    return snapshot
