"""Tests for payroll run and resignation state machines."""

import pytest

from mypayroll.errors import InvalidTransitionError
from mypayroll.services.state_machine import (
    PayrollRunStateMachine,
    PayrollRunStatus,
    ResignationStateMachine,
    ResignationStatus,
)


class TestPayrollRunStateMachine:
    """Test payroll run transitions."""

    def test_draft_to_finalized(self):
        """Finalizing a draft is the only transition."""
        assert PayrollRunStateMachine.can_transition("draft", "finalized") is True

    def test_finalized_is_terminal(self):
        """Finalized runs never go back to draft."""
        assert PayrollRunStateMachine.can_transition("finalized", "draft") is False
        assert PayrollRunStateMachine.get_next_statuses("finalized") == []

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollRunStateMachine.validate_transition("finalized", "draft")

        assert exc_info.value.from_status == "finalized"
        assert exc_info.value.to_status == "draft"

    def test_items_mutable_only_in_draft(self):
        assert PayrollRunStateMachine.can_modify_items(PayrollRunStatus.DRAFT) is True
        assert PayrollRunStateMachine.can_modify_items("finalized") is False

    def test_unknown_status(self):
        assert PayrollRunStateMachine.can_transition("approved", "finalized") is False


class TestResignationStateMachine:
    """Test resignation transitions."""

    def test_pending_transitions(self):
        for target in ("clearing", "completed", "rejected", "withdrawn", "cancelled"):
            assert ResignationStateMachine.can_transition("pending", target) is True

    def test_clearing_transitions(self):
        assert ResignationStateMachine.can_transition("clearing", "completed") is True
        assert ResignationStateMachine.can_transition("clearing", "cancelled") is True
        # Only pending resignations can be withdrawn or rejected
        assert ResignationStateMachine.can_transition("clearing", "withdrawn") is False
        assert ResignationStateMachine.can_transition("clearing", "rejected") is False

    @pytest.mark.parametrize("status", ["completed", "cancelled", "withdrawn", "rejected"])
    def test_closed_states_are_terminal(self, status):
        assert ResignationStateMachine.VALID_TRANSITIONS[status] == []
        with pytest.raises(InvalidTransitionError):
            ResignationStateMachine.validate_transition(status, "pending")

    def test_active_statuses(self):
        assert ResignationStateMachine.is_active(ResignationStatus.PENDING)
        assert ResignationStateMachine.is_active("clearing")
        assert not ResignationStateMachine.is_active("completed")
        assert not ResignationStateMachine.is_active("cancelled")
