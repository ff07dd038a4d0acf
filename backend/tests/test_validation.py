"""
Tests for payload validation against DocumentLine/Document columns.
"""

import pytest

from doctrail.models import Document, DocumentLine
from doctrail.validation import (
    ADJUSTMENT_POLICY,
    LINE_POLICY,
    ValidationError,
    enforce_rules_adjustments,
    validate_payload,
)


def _line(payload, partial=False):
    return validate_payload(model=DocumentLine, payload=payload, policy=LINE_POLICY, partial=partial)


class TestValidatePayload:
    def test_coerces_by_column_type(self):
        patch = _line({"quantity": "3", "unit_price_cents": 1500, "charge_taxes": "no", "sku": "  R-1 "})
        assert patch == {"quantity": 3, "unit_price_cents": 1500, "charge_taxes": False, "sku": "R-1"}

    @pytest.mark.parametrize("value", [12.5, "1e3", "12.00", True, ""])
    def test_rejects_non_whole_numbers(self, value):
        with pytest.raises(ValidationError):
            _line({"quantity": value})

    def test_rejects_fields_outside_policy(self):
        with pytest.raises(ValidationError, match="sold"):
            _line({"quantity": 1, "is_sold": True})

    def test_required_only_on_create(self):
        with pytest.raises(ValidationError, match="quantity"):
            _line({"title": "Ring"})
        assert _line({"title": "Ring"}, partial=True) == {"title": "Ring"}

    def test_null_and_length(self):
        with pytest.raises(ValidationError):
            _line({"quantity": None})
        with pytest.raises(ValidationError):
            _line({"quantity": 1, "sku": "x" * 65})
        assert _line({"quantity": 1, "title": None})["title"] is None

    def test_body_must_be_object(self):
        with pytest.raises(ValidationError):
            _line(["quantity", 1])


class TestAdjustmentRules:
    def test_percent_discount_capped(self):
        patch = validate_payload(
            model=Document,
            payload={"discount_unit": "percent", "discount_value": 12000},
            policy=ADJUSTMENT_POLICY,
            partial=True,
        )
        with pytest.raises(ValidationError):
            enforce_rules_adjustments(patch)

    def test_unknown_unit(self):
        with pytest.raises(ValidationError):
            enforce_rules_adjustments({"service_fee_unit": "bogus"})
