"""Payroll run and resignation state machines with transition validation."""

from __future__ import annotations

from enum import Enum

from mypayroll.errors import InvalidTransitionError


class PayrollRunStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "draft"
    FINALIZED = "finalized"


class PayrollRunStateMachine:
    """State machine for payroll run status transitions.

    Allowed transitions:
    - draft → finalized

    Deletion is permitted from either state and is not a transition.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollRunStatus.DRAFT: [PayrollRunStatus.FINALIZED],
        PayrollRunStatus.FINALIZED: [],  # Terminal state
    }

    # Statuses where items may be edited, recalculated or removed
    ITEMS_MUTABLE = {PayrollRunStatus.DRAFT}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_modify_items(cls, status: str) -> bool:
        """Check if items can be edited in this status."""
        return status in cls.ITEMS_MUTABLE

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])


class ResignationStatus(str, Enum):
    """Resignation status values."""

    PENDING = "pending"
    CLEARING = "clearing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    WITHDRAWN = "withdrawn"
    REJECTED = "rejected"


class ResignationStateMachine:
    """State machine for resignations.

    Allowed transitions:
    - pending → clearing (approve)
    - pending → rejected | withdrawn
    - pending, clearing → completed (process)
    - pending, clearing → cancelled
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        ResignationStatus.PENDING: [
            ResignationStatus.CLEARING,
            ResignationStatus.COMPLETED,
            ResignationStatus.REJECTED,
            ResignationStatus.WITHDRAWN,
            ResignationStatus.CANCELLED,
        ],
        ResignationStatus.CLEARING: [
            ResignationStatus.COMPLETED,
            ResignationStatus.CANCELLED,
        ],
        ResignationStatus.COMPLETED: [],
        ResignationStatus.CANCELLED: [],
        ResignationStatus.WITHDRAWN: [],
        ResignationStatus.REJECTED: [],
    }

    ACTIVE = {ResignationStatus.PENDING, ResignationStatus.CLEARING}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_active(cls, status: str) -> bool:
        """Pending and clearing resignations block a second resignation."""
        return status in cls.ACTIVE
