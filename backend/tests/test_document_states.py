"""
Tests for the transition table and milestone policy.
"""

from datetime import datetime

import pytest

from doctrail.services.document_states import (
    STATUS_TIMESTAMPS,
    TRANSITIONS,
    available_actions,
    can_transition,
    milestone_updates,
    statuses_for,
)


class TestTransitionTable:
    @pytest.mark.parametrize("document_type", ["memo", "repair", "return"])
    def test_edges_stay_inside_status_set(self, document_type):
        statuses = statuses_for(document_type)
        for transition in TRANSITIONS[document_type].values():
            assert transition.target in statuses
            assert transition.sources <= statuses

    @pytest.mark.parametrize("document_type", ["memo", "repair", "return"])
    def test_every_milestone_column_belongs_to_a_status(self, document_type):
        assert set(STATUS_TIMESTAMPS[document_type]) <= statuses_for(document_type)

    def test_memo_actions_by_status(self):
        assert available_actions("memo", "pending") == ["send", "cancel"]
        assert available_actions("memo", "vendor_received") == ["return", "payment", "cancel"]
        assert available_actions("memo", "archived") == []

    def test_return_actions_by_status(self):
        assert available_actions("return", "approved") == ["reject", "receive", "process", "cancel"]
        assert available_actions("return", "completed") == []

    def test_can_transition(self):
        assert can_transition("repair", "completed", "payment_received")
        assert not can_transition("repair", "pending", "completed")
        assert not can_transition("memo", "payment_received", "pending")

    def test_unknown_type_has_no_actions(self):
        assert available_actions("invoice", "pending") == []
        assert statuses_for("invoice") == set()


class TestMilestoneUpdates:
    def test_backward_move_clears_later_milestones(self):
        now = datetime(2026, 1, 1)
        current = {"sent_at": now, "received_at": now, "returned_at": None, "paid_at": None}
        updates = milestone_updates("memo", "pending", current)
        assert updates == {"sent_at": None, "received_at": None}

    def test_forward_move_keeps_earlier_milestones(self):
        now = datetime(2026, 1, 1)
        updates = milestone_updates("memo", "vendor_received", {"sent_at": now, "received_at": None})
        assert updates == {"received_at": "now"}

    def test_sibling_milestone_is_cleared(self):
        now = datetime(2026, 1, 1)
        current = {"sent_at": now, "received_at": now, "paid_at": now, "returned_at": None}
        updates = milestone_updates("memo", "vendor_returned", current)
        assert updates == {"returned_at": "now", "paid_at": None}

    def test_off_path_status_only_stamps_itself(self):
        now = datetime(2026, 1, 1)
        current = {"sent_at": now, "received_at": now, "cancelled_at": None}
        assert milestone_updates("memo", "cancelled", current) == {"cancelled_at": "now"}

    def test_existing_stamp_is_kept(self):
        then = datetime(2025, 6, 1)
        updates = milestone_updates("repair", "completed", {"received_at": then, "completed_at": then})
        assert "completed_at" not in updates
