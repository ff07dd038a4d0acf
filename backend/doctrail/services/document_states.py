# Overview: Status enums and the transition table for memo, repair and return documents.

"""
Document state definitions.

================================================================================
ONE ENUM PER DOCUMENT KIND, ONE TRANSITION TABLE
================================================================================

Every document starts in "pending" and only moves along the edges listed in
TRANSITIONS. lifecycle_service executes the edges; available_actions() answers
"what can this document do next" from the same table, so the UI and the
engine can never disagree.

MILESTONE POLICY (administrative status overrides):
Each status that marks a milestone owns one timestamp column. Leveled
statuses form the forward path of the document. Moving to a leveled status
keeps lower-level milestones, stamps its own column if unset and clears every
other milestone column. Unleveled statuses (cancelled, archived, rejected)
only stamp their own column.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DocumentKind(str, Enum):
    MEMO = "memo"
    REPAIR = "repair"
    RETURN = "return"


class MemoStatus(str, Enum):
    PENDING = "pending"
    SENT_TO_VENDOR = "sent_to_vendor"
    VENDOR_RECEIVED = "vendor_received"
    VENDOR_RETURNED = "vendor_returned"
    PAYMENT_RECEIVED = "payment_received"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"


class RepairStatus(str, Enum):
    PENDING = "pending"
    SENT_TO_VENDOR = "sent_to_vendor"
    RECEIVED_BY_VENDOR = "received_by_vendor"
    COMPLETED = "completed"
    PAYMENT_RECEIVED = "payment_received"
    REFUNDED = "refunded"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"


class ReturnStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


STATUS_ENUMS = {
    DocumentKind.MEMO.value: MemoStatus,
    DocumentKind.REPAIR.value: RepairStatus,
    DocumentKind.RETURN.value: ReturnStatus,
}

INITIAL_STATUS = "pending"


@dataclass(frozen=True)
class Transition:
    action: str
    sources: frozenset
    target: str

    def allows(self, status: str) -> bool:
        return status in self.sources


def _t(action: str, sources, target) -> tuple[str, Transition]:
    return action, Transition(
        action=action,
        sources=frozenset(s.value for s in sources),
        target=target.value,
    )


TRANSITIONS: dict[str, dict[str, Transition]] = {
    DocumentKind.MEMO.value: dict([
        _t("send", [MemoStatus.PENDING], MemoStatus.SENT_TO_VENDOR),
        _t("receive", [MemoStatus.SENT_TO_VENDOR], MemoStatus.VENDOR_RECEIVED),
        _t("return", [MemoStatus.VENDOR_RECEIVED], MemoStatus.VENDOR_RETURNED),
        _t("payment", [MemoStatus.VENDOR_RECEIVED], MemoStatus.PAYMENT_RECEIVED),
        _t(
            "cancel",
            [MemoStatus.PENDING, MemoStatus.SENT_TO_VENDOR, MemoStatus.VENDOR_RECEIVED],
            MemoStatus.CANCELLED,
        ),
        _t(
            "archive",
            [MemoStatus.VENDOR_RETURNED, MemoStatus.PAYMENT_RECEIVED, MemoStatus.CANCELLED],
            MemoStatus.ARCHIVED,
        ),
    ]),
    DocumentKind.REPAIR.value: dict([
        _t("send", [RepairStatus.PENDING], RepairStatus.SENT_TO_VENDOR),
        _t("receive", [RepairStatus.SENT_TO_VENDOR], RepairStatus.RECEIVED_BY_VENDOR),
        _t("complete", [RepairStatus.RECEIVED_BY_VENDOR], RepairStatus.COMPLETED),
        _t("payment", [RepairStatus.COMPLETED], RepairStatus.PAYMENT_RECEIVED),
        _t("refund", [RepairStatus.PAYMENT_RECEIVED], RepairStatus.REFUNDED),
        _t(
            "cancel",
            [RepairStatus.PENDING, RepairStatus.SENT_TO_VENDOR, RepairStatus.RECEIVED_BY_VENDOR],
            RepairStatus.CANCELLED,
        ),
        _t(
            "archive",
            [RepairStatus.PAYMENT_RECEIVED, RepairStatus.REFUNDED, RepairStatus.CANCELLED],
            RepairStatus.ARCHIVED,
        ),
    ]),
    DocumentKind.RETURN.value: dict([
        _t("approve", [ReturnStatus.PENDING], ReturnStatus.APPROVED),
        _t("reject", [ReturnStatus.PENDING, ReturnStatus.APPROVED], ReturnStatus.REJECTED),
        _t("receive", [ReturnStatus.APPROVED], ReturnStatus.PROCESSING),
        _t("process", [ReturnStatus.APPROVED, ReturnStatus.PROCESSING], ReturnStatus.COMPLETED),
        _t("cancel", [ReturnStatus.PENDING, ReturnStatus.APPROVED], ReturnStatus.CANCELLED),
    ]),
}


# Timestamp column owned by each milestone status
STATUS_TIMESTAMPS: dict[str, dict[str, str]] = {
    DocumentKind.MEMO.value: {
        "sent_to_vendor": "sent_at",
        "vendor_received": "received_at",
        "vendor_returned": "returned_at",
        "payment_received": "paid_at",
        "cancelled": "cancelled_at",
        "archived": "archived_at",
    },
    DocumentKind.REPAIR.value: {
        "sent_to_vendor": "sent_at",
        "received_by_vendor": "received_at",
        "completed": "completed_at",
        "payment_received": "paid_at",
        "refunded": "refunded_at",
        "cancelled": "cancelled_at",
        "archived": "archived_at",
    },
    DocumentKind.RETURN.value: {
        "approved": "approved_at",
        "processing": "received_at",
        "completed": "completed_at",
        "rejected": "rejected_at",
        "cancelled": "cancelled_at",
    },
}

# Position of each status on the forward path (absent = off-path status)
STATUS_LEVELS: dict[str, dict[str, int]] = {
    DocumentKind.MEMO.value: {
        "pending": 0,
        "sent_to_vendor": 1,
        "vendor_received": 2,
        "vendor_returned": 3,
        "payment_received": 3,
    },
    DocumentKind.REPAIR.value: {
        "pending": 0,
        "sent_to_vendor": 1,
        "received_by_vendor": 2,
        "completed": 3,
        "payment_received": 4,
        "refunded": 5,
    },
    DocumentKind.RETURN.value: {
        "pending": 0,
        "approved": 1,
        "processing": 2,
        "completed": 3,
    },
}


# Sequence type -> document number prefix
DOCUMENT_PREFIXES = {
    "memo": "MEM",
    "repair": "REP",
    "appraisal": "APR",
    "return": "RET",
    "invoice": "INV",
}

MEMO_TENURES = (7, 14, 30, 60)

PAYMENT_METHODS = {"cash", "card", "check", "wire", "store_credit"}
REFUND_METHODS = {"store_credit", "original_payment", "cash", "card"}

CLOSED_STATUSES = {"payment_received", "refunded", "archived", "cancelled", "rejected"}


def statuses_for(document_type: str) -> set[str]:
    enum_cls = STATUS_ENUMS.get(document_type)
    if enum_cls is None:
        return set()
    return {s.value for s in enum_cls}


def transitions_for(document_type: str) -> dict[str, Transition]:
    return TRANSITIONS.get(document_type, {})


def get_transition(document_type: str, action: str) -> Transition | None:
    return transitions_for(document_type).get(action)


def can_transition(document_type: str, from_status: str, to_status: str) -> bool:
    """True if some named action moves a document of this type from -> to."""
    return any(
        t.allows(from_status) and t.target == to_status
        for t in transitions_for(document_type).values()
    )


def available_actions(document_type: str, status: str) -> list[str]:
    """Actions whose source states include the given status (table order)."""
    return [
        action
        for action, t in transitions_for(document_type).items()
        if t.allows(status)
    ]


def is_closed(document_type: str, status: str) -> bool:
    """Money fields are frozen once a document is settled or abandoned."""
    if status in CLOSED_STATUSES:
        return True
    return document_type == DocumentKind.RETURN.value and status == ReturnStatus.COMPLETED.value


def sequence_type_for(document_type: str, *, is_appraisal: bool = False) -> str:
    if document_type == DocumentKind.REPAIR.value and is_appraisal:
        return "appraisal"
    return document_type


def milestone_updates(document_type: str, new_status: str, current: dict) -> dict:
    """
    Column updates for an administrative move to new_status.

    current maps timestamp column -> present value. Returns column -> value
    where value is the sentinel "now" (stamp if unset) or None (clear).
    """
    stamps = STATUS_TIMESTAMPS.get(document_type, {})
    levels = STATUS_LEVELS.get(document_type, {})
    own_col = stamps.get(new_status)

    updates: dict[str, object] = {}
    if own_col and current.get(own_col) is None:
        updates[own_col] = "now"

    if new_status not in levels:
        return updates

    new_level = levels[new_status]
    for status, col in stamps.items():
        if col == own_col:
            continue
        level = levels.get(status)
        if level is not None and level < new_level:
            continue
        if current.get(col) is not None:
            updates[col] = None
    return updates
