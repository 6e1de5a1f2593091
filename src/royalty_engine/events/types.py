"""Domain event types for payout operations.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata
- Serializable for the audit log and for re-emission
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from royalty_engine.domain import Payout, QuarterlyBalanceReport, utcnow


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    PAYOUT = "payout"
    WORKFLOW = "workflow"
    REPORTING = "reporting"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    user_id: UUID
    correlation_id: UUID  # Links events produced by one operation
    actor_id: UUID | None
    source_service: str = "royalty_engine"
    version: int = 1

    @classmethod
    def create(
        cls,
        user_id: UUID,
        correlation_id: UUID | None = None,
        actor_id: UUID | None = None,
        source_service: str = "royalty_engine",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=utcnow(),
            user_id=user_id,
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        data = _serialize(asdict(self))
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


def _serialize(obj: Any) -> Any:
    """Recursively convert values to JSON-compatible types."""
    if isinstance(obj, dict):
        return {str(k): _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(v) for v in obj]
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Payout events
# =============================================================================


@dataclass(frozen=True)
class PayoutUpdated(DomainEvent):
    """A payout record changed (stage, status or money fields)."""

    payout_id: UUID
    payee_id: UUID
    workflow_stage: str
    status: str
    amount_due: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYOUT

    @classmethod
    def from_payout(cls, metadata: EventMetadata, payout: Payout) -> PayoutUpdated:
        return cls(
            metadata=metadata,
            payout_id=payout.payout_id,
            payee_id=payout.payee_id,
            workflow_stage=payout.workflow_stage,
            status=payout.status,
            amount_due=payout.amount_due,
        )


@dataclass(frozen=True)
class PayoutStatusChanged(DomainEvent):
    """A payout moved between workflow stages."""

    payout_id: UUID
    from_stage: str
    to_stage: str
    reason: str | None = None
    audit_entry_id: UUID | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.WORKFLOW


# =============================================================================
# Reporting events
# =============================================================================


@dataclass(frozen=True)
class QuarterlyReportCreated(DomainEvent):
    """A quarterly balance report was inserted for a payee."""

    report_id: UUID
    payee_id: UUID
    year: int
    quarter: int
    closing_balance: Decimal
    payout_id: UUID | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.REPORTING

    @classmethod
    def from_report(
        cls,
        metadata: EventMetadata,
        report: QuarterlyBalanceReport,
        payout_id: UUID | None = None,
    ) -> QuarterlyReportCreated:
        return cls(
            metadata=metadata,
            report_id=report.report_id,
            payee_id=report.payee_id,
            year=report.year,
            quarter=report.quarter,
            closing_balance=report.closing_balance,
            payout_id=payout_id,
        )
