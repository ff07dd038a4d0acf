"""
Tests for atomic inventory counters and line restocks.
"""

import pytest

from doctrail.extensions import db
from doctrail.models import DocumentLine
from doctrail.services import inventory_service
from doctrail.services.document_errors import AlreadyProcessed, InsufficientStock, InvalidInput


class TestCounters:
    def test_increment_and_decrement(self, db_session, store_a, unit_a):
        inventory_service.increment(store_a.id, unit_a.id, 3)
        inventory_service.decrement(store_a.id, unit_a.id, 5)
        db_session.commit()

        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 8

    def test_decrement_below_zero_is_refused(self, db_session, store_a, unit_a):
        with pytest.raises(InsufficientStock) as exc_info:
            inventory_service.decrement(store_a.id, unit_a.id, 11)

        assert exc_info.value.details["available"] == 10
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 10

    def test_units_are_store_scoped(self, db_session, store_a, store_b, unit_b):
        with pytest.raises(InvalidInput):
            inventory_service.increment(store_a.id, unit_b.id, 1)
        with pytest.raises(InvalidInput):
            inventory_service.decrement(store_a.id, unit_b.id, 1)

        assert inventory_service.get_quantity(store_b.id, unit_b.id) == 5

    @pytest.mark.parametrize("qty", [0, -1, "x"])
    def test_quantity_must_be_positive(self, db_session, store_a, unit_a, qty):
        with pytest.raises(InvalidInput):
            inventory_service.increment(store_a.id, unit_a.id, qty)


class TestRestockLine:
    def _line(self, unit, **kwargs):
        defaults = dict(
            quantity=2,
            unit_price_cents=100,
            inventory_unit_id=unit.id,
            restock=True,
        )
        defaults.update(kwargs)
        return DocumentLine(**defaults)

    def test_restock_once(self, db_session, store_a, unit_a):
        line = self._line(unit_a)

        assert inventory_service.restock_line(store_a.id, line) is True
        assert line.restocked is True
        assert line.restocked_at is not None

        # Bulk semantics: second attempt is a no-op
        assert inventory_service.restock_line(store_a.id, line) is False
        db.session.commit()
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 12

    def test_strict_restock_of_restocked_line(self, db_session, store_a, unit_a):
        line = self._line(unit_a, restocked=True)

        with pytest.raises(AlreadyProcessed):
            inventory_service.restock_line(store_a.id, line, strict=True)
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 10

    def test_lines_without_flag_or_unit_are_skipped(self, db_session, store_a, unit_a):
        lines = [
            self._line(unit_a, restock=False),
            self._line(unit_a, inventory_unit_id=None),
            self._line(unit_a, quantity=3),
        ]
        moved = inventory_service.restock_lines(store_a.id, lines)

        assert moved == 3
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 13
