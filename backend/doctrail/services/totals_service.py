# Overview: Money math for documents; pure calculation plus a helper that stores results.

"""
Document totals.

    subtotal     = sum(quantity * unit_price) over active lines
    discount     = fixed cents, or percent (bps) of subtotal; never above subtotal
    service_fee  = fixed cents, or percent (bps) of subtotal
    tax          = (taxable active lines - discount) * tax_rate, if charge_taxes
    total        = subtotal - discount + tax + service_fee + shipping - restocking_fee
    balance      = total - paid

total and balance are clamped at zero. All rounding is half-up to the cent.
Nothing here touches the session: apply_totals() only assigns attributes.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Iterable


BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class DocumentTotals:
    subtotal_cents: int
    discount_cents: int
    service_fee_cents: int
    tax_cents: int
    shipping_cents: int
    restocking_fee_cents: int
    total_cents: int
    paid_cents: int
    balance_cents: int

    def to_dict(self) -> dict:
        return asdict(self)


def apply_bps(amount_cents: int, bps: int) -> int:
    """amount * bps / 10000, rounded half-up (half away from zero)."""
    product = amount_cents * bps
    if product >= 0:
        return (product + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR
    return -((-product + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR)


def line_total(quantity: int, unit_price_cents: int) -> int:
    return int(quantity or 0) * int(unit_price_cents or 0)


def _adjustment(value: int, unit: str, base_cents: int) -> int:
    value = int(value or 0)
    if unit == "percent":
        return apply_bps(base_cents, value)
    return value


def calculate_totals(
    lines: Iterable,
    *,
    tax_rate_bps: int = 0,
    charge_taxes: bool = False,
    discount_value: int = 0,
    discount_unit: str = "fixed",
    service_fee_value: int = 0,
    service_fee_unit: str = "fixed",
    shipping_cents: int = 0,
    restocking_fee_cents: int = 0,
    paid_cents: int = 0,
) -> DocumentTotals:
    """
    Compute document totals from line items and adjustments.

    lines: objects with quantity, unit_price_cents, charge_taxes and
    is_returned attributes (DocumentLine rows, or anything shaped like one).
    Returned lines do not count.
    """
    subtotal = 0
    taxable = 0
    for line in lines:
        if getattr(line, "is_returned", False):
            continue
        amount = line_total(line.quantity, line.unit_price_cents)
        subtotal += amount
        if getattr(line, "charge_taxes", True):
            taxable += amount

    discount = max(0, min(_adjustment(discount_value, discount_unit, subtotal), subtotal))
    service_fee = max(0, _adjustment(service_fee_value, service_fee_unit, subtotal))

    tax = 0
    if charge_taxes and tax_rate_bps:
        tax = apply_bps(max(0, taxable - discount), int(tax_rate_bps))

    shipping = max(0, int(shipping_cents or 0))
    restocking_fee = max(0, int(restocking_fee_cents or 0))
    paid = max(0, int(paid_cents or 0))

    total = max(0, subtotal - discount + tax + service_fee + shipping - restocking_fee)

    return DocumentTotals(
        subtotal_cents=subtotal,
        discount_cents=discount,
        service_fee_cents=service_fee,
        tax_cents=tax,
        shipping_cents=shipping,
        restocking_fee_cents=restocking_fee,
        total_cents=total,
        paid_cents=paid,
        balance_cents=max(0, total - paid),
    )


def totals_for(doc) -> DocumentTotals:
    return calculate_totals(
        doc.lines,
        tax_rate_bps=doc.tax_rate_bps,
        charge_taxes=doc.charge_taxes,
        discount_value=doc.discount_value,
        discount_unit=doc.discount_unit,
        service_fee_value=doc.service_fee_value,
        service_fee_unit=doc.service_fee_unit,
        shipping_cents=doc.shipping_cents,
        restocking_fee_cents=doc.restocking_fee_cents,
        paid_cents=doc.paid_cents,
    )


def apply_totals(doc) -> DocumentTotals:
    """Recompute line totals and document totals in place."""
    for line in doc.lines:
        expected = line_total(line.quantity, line.unit_price_cents)
        if line.line_total_cents != expected:
            line.line_total_cents = expected

    totals = totals_for(doc)
    doc.subtotal_cents = totals.subtotal_cents
    doc.discount_cents = totals.discount_cents
    doc.service_fee_cents = totals.service_fee_cents
    doc.tax_cents = totals.tax_cents
    doc.total_cents = totals.total_cents
    doc.balance_cents = totals.balance_cents
    return totals
