"""Optimistic local updates with exact revert.

A caller applies a mutation locally before the server confirms it, then
either confirms (drops the bookkeeping) or reverts (undoes exactly that
mutation). Pending entries live in an arena keyed by a monotonic int id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Hashable, Iterable, TypeVar

from royalty_engine.exceptions import ConflictingOperationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UpdateKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class PendingUpdate(Generic[T]):
    """One applied, unconfirmed mutation."""

    update_id: int
    kind: UpdateKind
    key: Hashable
    item: T
    original: T | None = None
    position: int | None = None  # Index a deleted item occupied


def _default_key(item: object) -> Hashable:
    return getattr(item, "id")


class OptimisticCollection(Generic[T]):
    """Ordered collection with revertible optimistic mutations."""

    def __init__(
        self,
        items: Iterable[T] = (),
        key: Callable[[T], Hashable] = _default_key,
    ):
        self._key = key
        self.items: list[T] = list(items)
        self._pending: dict[int, PendingUpdate[T]] = {}
        self._next_id = 0

    @property
    def pending(self) -> list[PendingUpdate[T]]:
        return list(self._pending.values())

    def apply(self, kind: UpdateKind | str, item: T, original: T | None = None) -> int:
        """Apply a mutation locally and return its update id.

        Raises:
            ValueError: an update without ``original``, or an update/delete
                for an item that is not in the collection.
            ConflictingOperationError: the item already has a pending update,
                or a create names a key already in the collection.
        """
        kind = UpdateKind(kind)
        key = self._key(item)
        if any(p.key == key for p in self._pending.values()):
            raise ConflictingOperationError(str(key), kind.value)

        position: int | None = None
        if kind == UpdateKind.CREATE:
            if any(self._key(existing) == key for existing in self.items):
                raise ConflictingOperationError(str(key), kind.value)
            self.items.append(item)
        elif kind == UpdateKind.UPDATE:
            if original is None:
                raise ValueError("update requires the original item")
            self.items[self._index(key)] = item
        else:
            position = self._index(key)
            original = self.items.pop(position)

        self._next_id += 1
        self._pending[self._next_id] = PendingUpdate(
            update_id=self._next_id,
            kind=kind,
            key=key,
            item=item,
            original=original,
            position=position,
        )
        return self._next_id

    def confirm(self, update_id: int) -> None:
        """Drop the bookkeeping for a confirmed mutation."""
        del self._pending[update_id]

    def revert(self, update_id: int) -> None:
        """Undo exactly the mutation recorded under ``update_id``."""
        entry = self._pending.pop(update_id)
        if entry.kind == UpdateKind.CREATE:
            self.items.pop(self._index(entry.key))
        elif entry.kind == UpdateKind.UPDATE:
            self.items[self._index(entry.key)] = entry.original  # type: ignore[assignment]
        else:
            position = min(entry.position or 0, len(self.items))
            self.items.insert(position, entry.original)  # type: ignore[arg-type]
        logger.debug("Reverted optimistic %s of %s", entry.kind.value, entry.key)

    def replace_all(self, items: Iterable[T]) -> None:
        """Resync from the server; pending entries no longer apply."""
        self.items = list(items)
        self._pending.clear()

    def _index(self, key: Hashable) -> int:
        for index, existing in enumerate(self.items):
            if self._key(existing) == key:
                return index
        raise ValueError(f"item {key} is not in the collection")
