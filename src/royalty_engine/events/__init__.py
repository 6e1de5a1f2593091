"""Domain events for payout and report changes."""

from royalty_engine.events.types import (
    DomainEvent,
    EventCategory,
    EventMetadata,
    PayoutStatusChanged,
    PayoutUpdated,
    QuarterlyReportCreated,
)
from royalty_engine.events.emitter import AsyncEventEmitter

__all__ = [
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "PayoutStatusChanged",
    "PayoutUpdated",
    "QuarterlyReportCreated",
    "AsyncEventEmitter",
]
