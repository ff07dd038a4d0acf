# Overview: Service-layer operations for inventory units; atomic quantity changes and line restocks.

"""
Inventory invariants:

- InventoryUnit.quantity is a shared counter. It only changes through one
  UPDATE ... SET quantity = quantity +/- n statement, never read-modify-write.
- A decrement is guarded by quantity >= n in the same statement; if no row
  matches, nothing changed and InsufficientStock is raised.
- Nothing here commits. Callers run these inside their own unit of work so a
  later failure rolls the stock change back with everything else.
- A line is restocked at most once (DocumentLine.restocked).
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import InventoryUnit, DocumentLine
from doctrail.time_utils import utcnow
from .document_errors import InsufficientStock, InvalidInput, AlreadyProcessed


def _require_positive(quantity: int) -> int:
    try:
        qty = int(quantity)
    except (TypeError, ValueError):
        raise InvalidInput("quantity must be an integer")
    if qty <= 0:
        raise InvalidInput("quantity must be positive")
    return qty


def get_unit(store_id: int, unit_id: int) -> InventoryUnit:
    unit = db.session.query(InventoryUnit).filter_by(id=unit_id, store_id=store_id).first()
    if not unit:
        raise InvalidInput(f"Inventory unit {unit_id} not found")
    return unit


def get_quantity(store_id: int, unit_id: int) -> int:
    """Current on-hand quantity, read straight from the row."""
    qty = (
        db.session.query(InventoryUnit.quantity)
        .filter_by(id=unit_id, store_id=store_id)
        .scalar()
    )
    if qty is None:
        raise InvalidInput(f"Inventory unit {unit_id} not found")
    return int(qty)


def increment(store_id: int, unit_id: int, quantity: int) -> None:
    qty = _require_positive(quantity)
    stmt = (
        update(InventoryUnit)
        .where(InventoryUnit.id == unit_id, InventoryUnit.store_id == store_id)
        .values(quantity=InventoryUnit.quantity + qty, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise InvalidInput(f"Inventory unit {unit_id} not found")


def decrement(store_id: int, unit_id: int, quantity: int) -> None:
    qty = _require_positive(quantity)
    stmt = (
        update(InventoryUnit)
        .where(
            InventoryUnit.id == unit_id,
            InventoryUnit.store_id == store_id,
            InventoryUnit.quantity >= qty,
        )
        .values(quantity=InventoryUnit.quantity - qty, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        return

    # Nothing matched: either the unit is missing or there is not enough stock
    available = get_quantity(store_id, unit_id)
    raise InsufficientStock(
        f"Insufficient stock on unit {unit_id}: requested {qty}, available {available}",
        inventory_unit_id=unit_id,
        requested=qty,
        available=available,
    )


def is_restock_eligible(line: DocumentLine) -> bool:
    return bool(line.inventory_unit_id and line.restock and not line.restocked)


def restock_line(store_id: int, line: DocumentLine, *, strict: bool = False, now=None) -> bool:
    """
    Put a line's quantity back on its inventory unit.

    Returns True if stock moved. Ineligible lines are skipped (False), unless
    strict=True, in which case an already-restocked line raises
    AlreadyProcessed and a line with no unit raises InvalidInput.
    """
    if line.restocked:
        if strict:
            raise AlreadyProcessed(
                f"Line {line.id} has already been restocked",
                line_id=line.id,
            )
        return False
    if not line.inventory_unit_id:
        if strict:
            raise InvalidInput(f"Line {line.id} is not linked to an inventory unit", line_id=line.id)
        return False
    if not line.restock and not strict:
        return False

    increment(store_id, line.inventory_unit_id, line.quantity)
    line.restocked = True
    line.restocked_at = now or utcnow()
    return True


def restock_lines(store_id: int, lines, *, now=None) -> int:
    """Bulk restock; already-restocked or ineligible lines are skipped. Returns units moved."""
    moved = 0
    for line in lines:
        if restock_line(store_id, line, now=now):
            moved += line.quantity
    return moved


def draw_line(store_id: int, line: DocumentLine) -> None:
    """Take a line's quantity out of stock and flag it to come back on release."""
    if not line.inventory_unit_id:
        return
    decrement(store_id, line.inventory_unit_id, line.quantity)
    line.restock = True
    line.restocked = False
    line.restocked_at = None
