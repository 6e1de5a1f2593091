"""Concurrency helpers: retry, per-resource serialization, optimistic updates."""

from royalty_engine.coordination.optimistic import OptimisticCollection, PendingUpdate, UpdateKind
from royalty_engine.coordination.retry import (
    Liveness,
    RetryPolicy,
    default_should_retry,
    execute_with_retry,
    payout_fetch_should_retry,
)
from royalty_engine.coordination.serializer import ResourceSerializer

__all__ = [
    "OptimisticCollection",
    "PendingUpdate",
    "UpdateKind",
    "Liveness",
    "RetryPolicy",
    "default_should_retry",
    "execute_with_retry",
    "payout_fetch_should_retry",
    "ResourceSerializer",
]
