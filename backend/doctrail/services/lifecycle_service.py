# Overview: Service-layer operations for document lifecycle; named transitions and their side effects.

"""
DocTrail Document Lifecycle Service

================================================================================
PURPOSE: Move memos, repairs/appraisals and returns through their statuses
================================================================================

WHY THIS EXISTS:
- One place decides whether a status change is legal (document_states.TRANSITIONS)
- Side effects (restock, invoice, payment, refund) happen in the same
  transaction as the status change, or not at all
- Every successful action leaves an activity entry

UNIT OF WORK (every named transition):
    1. load the document FOR UPDATE, scoped to store_id
    2. check the action's source states, then its prerequisites
    3. run side effects, stamp the milestone timestamp, set the new status
    4. recompute totals, commit
    5. record activity (separate commit, failures only logged)

Lock/version conflicts retry the whole unit (concurrency.run_with_retry).
Domain errors roll the unit back and come out as TransitionResult.error;
nothing half-done is ever visible. Infrastructure errors propagate.

RESTOCK POLICY:
- Bulk operations (return, cancel, process) skip lines already restocked
- An explicit per-line restock of an already-restocked line is AlreadyProcessed
- Explicit restock needs the goods still in play (approved/processing
  return, cancellable memo/repair); sold lines never go back on the shelf

ADMINISTRATIVE OVERRIDE:
change_status() sets any status of the document's type, adjusts milestone
timestamps (document_states.milestone_updates) and runs no side effects. It
is for correcting data, and it is always logged.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from flask import current_app

from ..extensions import db
from ..models import Document, Invoice, Payment
from ..validation import ValidationError
from doctrail.time_utils import utcnow, days_between
from . import activity_service, inventory_service, invoice_service
from .concurrency import retry_settings, run_with_retry
from .document_errors import (
    AlreadyProcessed,
    DocumentError,
    DocumentNotFound,
    DocumentNotOwned,
    InvalidInput,
    InvalidTransition,
    MissingPrerequisite,
)
from .document_service import _find_line, load_document
from .document_states import (
    REFUND_METHODS,
    STATUS_TIMESTAMPS,
    DocumentKind,
    ReturnStatus,
    Transition,
    available_actions as _actions_for,
    get_transition,
    is_closed,
    milestone_updates,
    statuses_for,
)
from .totals_service import apply_totals


@dataclass
class TransitionResult:
    """
    Outcome of a lifecycle operation.

    ok results carry the updated document (and the invoice for payments).
    Failed results carry the domain error and the document as it still is.
    """
    document: Document | None
    error: DocumentError | None = None
    invoice: Invoice | None = None
    action: str | None = None
    details: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        data = {
            "ok": self.ok,
            "action": self.action,
            "document": self.document.to_dict(include_lines=True) if self.document else None,
        }
        if self.invoice is not None:
            data["invoice"] = self.invoice.to_dict()
        if self.details:
            data["details"] = self.details
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


# =============================================================================
# Unit-of-work runner
# =============================================================================

def _reload(store_id: int, document_id: int) -> Document | None:
    doc = db.session.get(Document, document_id)
    if doc is None or doc.store_id != store_id:
        return None
    return doc


def _execute(
    store_id: int,
    document_id: int,
    action: str,
    work: Callable,
    *,
    actor_user_id: int | None = None,
) -> TransitionResult:
    """
    Run work(doc, now) -> dict inside one retried transaction.

    work returns activity details; it may put an Invoice under the
    "invoice" key, which is lifted onto the result.
    """
    attempts, backoff = retry_settings()

    def _op():
        try:
            doc = load_document(store_id, document_id, for_update=True)
            now = utcnow()
            details = work(doc, now) or {}
            apply_totals(doc)
            db.session.commit()
            return doc, details
        except (DocumentError, ValidationError):
            db.session.rollback()
            raise

    try:
        doc, details = run_with_retry(_op, attempts=attempts, backoff_base=backoff)
    except ValidationError as exc:
        error = InvalidInput(str(exc))
        return TransitionResult(document=_reload(store_id, document_id), error=error, action=action)
    except DocumentError as exc:
        doc = None
        if not isinstance(exc, (DocumentNotFound, DocumentNotOwned)):
            doc = _reload(store_id, document_id)
        return TransitionResult(document=doc, error=exc, action=action)

    invoice = details.pop("invoice", None)
    if details.get("noop"):
        return TransitionResult(document=doc, action=action, details=details)
    activity_service.record(
        f"{doc.document_type}s.{action}",
        doc,
        actor_user_id=actor_user_id,
        payload=details,
        message=f"{doc.document_number}: {action}",
    )
    return TransitionResult(document=doc, invoice=invoice, action=action, details=details)


def _transition(doc: Document, action: str) -> Transition:
    transition = get_transition(doc.document_type, action)
    if transition is None or not transition.allows(doc.status):
        raise InvalidTransition(
            document_type=doc.document_type,
            current_status=doc.status,
            target=transition.target if transition else action,
            action=action,
        )
    return transition


def _move(doc: Document, transition: Transition, now) -> dict:
    """Set the target status and stamp its milestone timestamp."""
    from_status = doc.status
    column = STATUS_TIMESTAMPS.get(doc.document_type, {}).get(transition.target)
    if column:
        setattr(doc, column, now)
    doc.status = transition.target
    return {"from": from_status, "to": transition.target}


def _release_lines(doc: Document, now) -> int:
    """Restock and mark returned every active line. Returns units put back."""
    moved = 0
    for line in doc.active_lines:
        if inventory_service.restock_line(doc.store_id, line, now=now):
            moved += line.quantity
        line.is_returned = True
        line.returned_at = now
    return moved


# =============================================================================
# Shared transitions
# =============================================================================

def send_to_counterparty(store_id: int, document_id: int, *, actor_user_id: int | None = None) -> TransitionResult:
    """pending -> sent_to_vendor. Needs a vendor and at least one active line."""
    def work(doc, now):
        transition = _transition(doc, "send")
        if not doc.vendor_id:
            raise MissingPrerequisite("A vendor must be assigned before sending", prerequisite="vendor")
        if not doc.active_lines:
            raise MissingPrerequisite("At least one item is required before sending", prerequisite="items")
        return _move(doc, transition, now)

    return _execute(store_id, document_id, "send", work, actor_user_id=actor_user_id)


def mark_received(store_id: int, document_id: int, *, actor_user_id: int | None = None) -> TransitionResult:
    """
    Counterparty has the goods.

    memo:   sent_to_vendor -> vendor_received
    repair: sent_to_vendor -> received_by_vendor
    return: approved -> processing (the customer's goods arrived)
    """
    def work(doc, now):
        return _move(doc, _transition(doc, "receive"), now)

    return _execute(store_id, document_id, "receive", work, actor_user_id=actor_user_id)


def cancel(store_id: int, document_id: int, *, actor_user_id: int | None = None, reason: str | None = None) -> TransitionResult:
    """
    Cancel a document that has not reached a terminal status.

    Memo/repair lines still out are restocked and marked returned.
    """
    def work(doc, now):
        transition = _transition(doc, "cancel")
        moved = 0
        if doc.document_type != DocumentKind.RETURN.value:
            moved = _release_lines(doc, now)
        if reason:
            doc.reason = reason
        details = _move(doc, transition, now)
        details["restocked_units"] = moved
        return details

    return _execute(store_id, document_id, "cancel", work, actor_user_id=actor_user_id)


def archive(store_id: int, document_id: int, *, actor_user_id: int | None = None) -> TransitionResult:
    def work(doc, now):
        return _move(doc, _transition(doc, "archive"), now)

    return _execute(store_id, document_id, "archive", work, actor_user_id=actor_user_id)


def receive_payment(
    store_id: int,
    document_id: int,
    *,
    method: str,
    amount_cents: int | None = None,
    reference: str | None = None,
    actor_user_id: int | None = None,
) -> TransitionResult:
    """
    Record payment and close the document as payment_received.

    memo:   vendor_received with at least one active line
    repair: completed with a customer to bill

    The invoice factory snapshots the active lines; those lines are marked
    sold. A failure anywhere (bad method, bad amount) leaves no invoice.
    """
    def work(doc, now):
        transition = _transition(doc, "payment")
        if doc.document_type == DocumentKind.MEMO.value and not doc.active_lines:
            raise MissingPrerequisite("Memo has no active items to invoice", prerequisite="items")
        if doc.document_type == DocumentKind.REPAIR.value and not doc.customer_id:
            raise MissingPrerequisite("A customer must be assigned before payment", prerequisite="customer")

        apply_totals(doc)
        invoice = invoice_service.create_from_document(doc, {
            "method": method,
            "amount_cents": amount_cents,
            "reference": reference,
            "created_by_user_id": actor_user_id,
        })

        for line in doc.active_lines:
            line.is_sold = True
            line.sold_at = now

        doc.paid_cents = (doc.paid_cents or 0) + invoice.paid_cents
        doc.payment_method = method.strip().lower()

        details = _move(doc, transition, now)
        if doc.document_type == DocumentKind.MEMO.value:
            doc.duration_days = days_between(doc.received_at or doc.sent_at, now)
        details.update({
            "invoice_number": invoice.invoice_number,
            "amount_cents": invoice.paid_cents,
            "invoice": invoice,
        })
        return details

    return _execute(store_id, document_id, "payment", work, actor_user_id=actor_user_id)


# =============================================================================
# Memo
# =============================================================================

def mark_returned(store_id: int, document_id: int, *, actor_user_id: int | None = None) -> TransitionResult:
    """
    vendor_received -> vendor_returned.

    Every active line goes back to stock (once) and is marked returned.
    """
    def work(doc, now):
        transition = _transition(doc, "return")
        moved = _release_lines(doc, now)
        details = _move(doc, transition, now)
        doc.duration_days = days_between(doc.received_at or doc.sent_at, now)
        details["restocked_units"] = moved
        return details

    return _execute(store_id, document_id, "return", work, actor_user_id=actor_user_id)


def return_item(store_id: int, document_id: int, line_id: int, *, actor_user_id: int | None = None) -> TransitionResult:
    """Bring one memo line back: restock it and drop it from the totals."""
    def work(doc, now):
        if doc.document_type != DocumentKind.MEMO.value:
            raise InvalidTransition(
                document_type=doc.document_type,
                current_status=doc.status,
                target=doc.status,
                action="return-item",
            )
        cancel_transition = get_transition(doc.document_type, "cancel")
        if not cancel_transition.allows(doc.status):
            raise InvalidTransition(
                document_type=doc.document_type,
                current_status=doc.status,
                target=doc.status,
                action="return-item",
            )
        line = _find_line(doc, line_id)
        if line.is_returned:
            raise AlreadyProcessed(f"Line {line.id} has already been returned", line_id=line.id)
        restocked = inventory_service.restock_line(doc.store_id, line, now=now)
        line.is_returned = True
        line.returned_at = now
        return {"line_id": line.id, "restocked": restocked}

    return _execute(store_id, document_id, "return-item", work, actor_user_id=actor_user_id)


# =============================================================================
# Repair / Appraisal
# =============================================================================

def mark_completed(store_id: int, document_id: int, *, actor_user_id: int | None = None) -> TransitionResult:
    """received_by_vendor -> completed; duration = days the vendor had it."""
    def work(doc, now):
        details = _move(doc, _transition(doc, "complete"), now)
        doc.duration_days = days_between(doc.received_at, doc.completed_at)
        details["duration_days"] = doc.duration_days
        return details

    return _execute(store_id, document_id, "complete", work, actor_user_id=actor_user_id)


def refund_payment(store_id: int, document_id: int, *, actor_user_id: int | None = None) -> TransitionResult:
    """payment_received -> refunded. Invoices and payments are flagged refunded."""
    def work(doc, now):
        transition = _transition(doc, "refund")
        refunded = invoice_service.refund_document_payments(doc)
        details = _move(doc, transition, now)
        details["refunded_cents"] = refunded
        return details

    return _execute(store_id, document_id, "refund", work, actor_user_id=actor_user_id)


# =============================================================================
# Return
# =============================================================================

def approve(store_id: int, document_id: int, *, actor_user_id: int | None = None) -> TransitionResult:
    def work(doc, now):
        transition = _transition(doc, "approve")
        if not doc.lines:
            raise MissingPrerequisite("A return needs at least one item to approve", prerequisite="items")
        return _move(doc, transition, now)

    return _execute(store_id, document_id, "approve", work, actor_user_id=actor_user_id)


def reject(store_id: int, document_id: int, *, reason: str | None, actor_user_id: int | None = None) -> TransitionResult:
    def work(doc, now):
        transition = _transition(doc, "reject")
        if not reason or not reason.strip():
            raise MissingPrerequisite("A rejection reason is required", prerequisite="reason")
        doc.rejection_reason = reason.strip()
        return _move(doc, transition, now)

    return _execute(store_id, document_id, "reject", work, actor_user_id=actor_user_id)


def process(store_id: int, document_id: int, *, refund_method: str | None, actor_user_id: int | None = None) -> TransitionResult:
    """
    Complete a return: restock flagged lines and issue the refund.

    refund = subtotal - restocking fee (never below zero), recorded as a
    negative Payment in the chosen refund method.
    """
    def work(doc, now):
        transition = _transition(doc, "process")
        method = (refund_method or "").strip().lower()
        if method not in REFUND_METHODS:
            raise InvalidInput(
                f"Invalid refund method '{method}'. Must be one of: {', '.join(sorted(REFUND_METHODS))}"
            )

        moved = inventory_service.restock_lines(doc.store_id, doc.lines, now=now)
        apply_totals(doc)
        refund = max(0, doc.subtotal_cents - (doc.restocking_fee_cents or 0))

        doc.refund_method = method
        if refund:
            db.session.add(Payment(
                store_id=doc.store_id,
                document_id=doc.id,
                method=method,
                amount_cents=-refund,
                status="REFUNDED",
                created_by_user_id=actor_user_id,
            ))

        details = _move(doc, transition, now)
        details.update({"restocked_units": moved, "refund_cents": refund, "refund_method": method})
        return details

    return _execute(store_id, document_id, "process", work, actor_user_id=actor_user_id)


# =============================================================================
# Any type
# =============================================================================

RETURN_RESTOCK_STATUSES = frozenset({ReturnStatus.APPROVED.value, ReturnStatus.PROCESSING.value})


def _restock_allowed(doc: Document) -> bool:
    """Return lines restock once approved; memo/repair lines only while cancellable."""
    if doc.document_type == DocumentKind.RETURN.value:
        return doc.status in RETURN_RESTOCK_STATUSES
    return get_transition(doc.document_type, "cancel").allows(doc.status)


def restock_item(store_id: int, document_id: int, line_id: int, *, actor_user_id: int | None = None) -> TransitionResult:
    """
    Explicitly restock one line.

    Only allowed while the goods are still in play: an approved or
    processing return, or a memo/repair that can still be cancelled.
    AlreadyProcessed if the line was sold or restocked before. A memo/repair line
    put back on the shelf is no longer with the vendor, so it is also marked
    returned.
    """
    def work(doc, now):
        line = _find_line(doc, line_id)
        if is_closed(doc.document_type, doc.status) or not _restock_allowed(doc):
            raise InvalidTransition(
                document_type=doc.document_type,
                current_status=doc.status,
                target=doc.status,
                action="restock-item",
            )
        if line.is_sold:
            raise AlreadyProcessed(f"Line {line.id} has been sold", line_id=line.id)
        inventory_service.restock_line(doc.store_id, line, strict=True, now=now)
        if doc.document_type != DocumentKind.RETURN.value and not line.is_returned:
            line.is_returned = True
            line.returned_at = now
        return {"line_id": line.id, "quantity": line.quantity}

    return _execute(store_id, document_id, "restock-item", work, actor_user_id=actor_user_id)


def change_status(
    store_id: int,
    document_id: int,
    new_status: str,
    *,
    actor_user_id: int | None = None,
    reason: str | None = None,
) -> TransitionResult:
    """
    Administrative status override. No side effects; milestone timestamps
    follow document_states.milestone_updates. Same status is a no-op.
    """
    def work(doc, now):
        if new_status not in statuses_for(doc.document_type):
            raise InvalidTransition(
                document_type=doc.document_type,
                current_status=doc.status,
                target=new_status,
                action="status_override",
            )
        old_status = doc.status
        if old_status == new_status:
            return {"noop": True}

        columns = set(STATUS_TIMESTAMPS.get(doc.document_type, {}).values())
        current = {col: getattr(doc, col) for col in columns}
        for col, value in milestone_updates(doc.document_type, new_status, current).items():
            setattr(doc, col, now if value == "now" else None)

        doc.status = new_status
        current_app.logger.info(
            "Status override on %s %s: %s -> %s by user %s (%s)",
            doc.document_type, doc.document_number, old_status, new_status,
            actor_user_id, reason or "no reason given",
        )
        return {"from": old_status, "to": new_status, "reason": reason}

    return _execute(store_id, document_id, "status_override", work, actor_user_id=actor_user_id)


def available_actions(store_id: int, document_id: int) -> list[str]:
    doc = load_document(store_id, document_id)
    return _actions_for(doc.document_type, doc.status)


# Route action name -> callable(store_id, document_id, **payload)
ACTIONS = {
    "send": send_to_counterparty,
    "receive": mark_received,
    "return": mark_returned,
    "complete": mark_completed,
    "payment": receive_payment,
    "refund": refund_payment,
    "approve": approve,
    "reject": reject,
    "process": process,
    "cancel": cancel,
    "archive": archive,
}
