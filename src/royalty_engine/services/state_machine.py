"""Payout workflow state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from royalty_engine.exceptions import InvalidTransitionError

if TYPE_CHECKING:
    from royalty_engine.domain import Payout


class PayoutStage(str, Enum):
    """Payout workflow stages."""

    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    PROCESSING = "processing"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PayoutStatus(str, Enum):
    """Payment status, derived from the stage."""

    PENDING = "pending"
    PAID = "paid"


class PayoutStateMachine:
    """State machine for payout workflow stages.

    Allowed transitions:
    - draft → pending_review, cancelled, expired
    - pending_review → approved, draft (send back), cancelled, expired
    - approved → processing, paid, payment_failed, pending_review (reopen), cancelled
    - processing → paid, payment_failed
    - payment_failed → approved (retry), cancelled
    - paid, cancelled, expired are terminal
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayoutStage.DRAFT: [
            PayoutStage.PENDING_REVIEW,
            PayoutStage.CANCELLED,
            PayoutStage.EXPIRED,
        ],
        PayoutStage.PENDING_REVIEW: [
            PayoutStage.APPROVED,
            PayoutStage.DRAFT,
            PayoutStage.CANCELLED,
            PayoutStage.EXPIRED,
        ],
        PayoutStage.APPROVED: [
            PayoutStage.PROCESSING,
            PayoutStage.PAID,
            PayoutStage.PAYMENT_FAILED,
            PayoutStage.PENDING_REVIEW,
            PayoutStage.CANCELLED,
        ],
        PayoutStage.PROCESSING: [PayoutStage.PAID, PayoutStage.PAYMENT_FAILED],
        PayoutStage.PAYMENT_FAILED: [PayoutStage.APPROVED, PayoutStage.CANCELLED],
        PayoutStage.PAID: [],  # Terminal
        PayoutStage.CANCELLED: [],  # Terminal
        PayoutStage.EXPIRED: [],  # Terminal
    }

    TERMINAL = {PayoutStage.PAID, PayoutStage.CANCELLED, PayoutStage.EXPIRED}

    # Stages where money fields may still be recalculated
    CALCULATION_ALLOWED = {
        PayoutStage.DRAFT,
        PayoutStage.PENDING_REVIEW,
        PayoutStage.APPROVED,
        PayoutStage.PAYMENT_FAILED,
    }

    @classmethod
    def can_transition(cls, from_stage: str, to_stage: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_stage, [])
        return to_stage in allowed

    @classmethod
    def validate_transition(cls, from_stage: str, to_stage: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if to_stage not in cls.VALID_TRANSITIONS:
            raise InvalidTransitionError(from_stage, to_stage, "unknown stage")
        if cls.is_terminal(from_stage):
            raise InvalidTransitionError(from_stage, to_stage, f"'{from_stage}' is terminal")
        if not cls.can_transition(from_stage, to_stage):
            raise InvalidTransitionError(from_stage, to_stage)

    @classmethod
    def is_terminal(cls, stage: str) -> bool:
        return stage in cls.TERMINAL

    @classmethod
    def can_calculate(cls, stage: str) -> bool:
        """Check if money fields may be recalculated in this stage."""
        return stage in cls.CALCULATION_ALLOWED

    @classmethod
    def get_next_stages(cls, current_stage: str) -> list[str]:
        """Get list of valid next stages from current stage."""
        return [PayoutStage(s).value for s in cls.VALID_TRANSITIONS.get(current_stage, [])]

    @classmethod
    def status_for(cls, stage: str) -> str:
        """Payment status implied by a stage."""
        if stage == PayoutStage.PAID:
            return PayoutStatus.PAID.value
        return PayoutStatus.PENDING.value

    @classmethod
    def validate_payout_for_transition(
        cls,
        payout: Payout,
        to_stage: str,
        reason: str | None = None,
        require_failure_reason: bool = True,
    ) -> list[str]:
        """Validate a payout for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        from_stage = payout.workflow_stage

        if not cls.can_transition(from_stage, to_stage):
            errors.append(f"Cannot transition from '{from_stage}' to '{to_stage}'")
            return errors

        if to_stage == PayoutStage.PAYMENT_FAILED:
            if require_failure_reason and not (reason and reason.strip()):
                errors.append("A failure reason is required")

        elif to_stage in (PayoutStage.PROCESSING, PayoutStage.PAID):
            if payout.amount_due < 0:
                errors.append("Payout has a negative amount due")

        return errors
