"""Tests for per-resource serialization and optimistic updates."""

import asyncio
from dataclasses import dataclass

import pytest

from royalty_engine.coordination.optimistic import OptimisticCollection, UpdateKind
from royalty_engine.coordination.serializer import ResourceSerializer
from royalty_engine.exceptions import ConflictingOperationError


@dataclass(frozen=True)
class Item:
    id: str
    value: int = 0


class TestResourceSerializer:
    async def test_reject_policy(self):
        serializer = ResourceSerializer("reject")
        entered = asyncio.Event()
        release = asyncio.Event()

        async def hold():
            async with serializer.guard("p1", "first"):
                entered.set()
                await release.wait()

        holder = asyncio.create_task(hold())
        await entered.wait()

        with pytest.raises(ConflictingOperationError) as exc_info:
            async with serializer.guard("p1", "second"):
                pass
        assert exc_info.value.resource_id == "p1"

        # Other resources are unaffected
        async with serializer.guard("p2"):
            pass

        release.set()
        await holder
        assert not serializer.in_flight("p1")

    async def test_queue_policy_runs_in_order(self):
        serializer = ResourceSerializer("queue")
        order: list[str] = []

        async def work(name: str):
            async with serializer.guard("p1"):
                order.append(f"{name} start")
                await asyncio.sleep(0)
                order.append(f"{name} end")

        await asyncio.gather(work("a"), work("b"))

        assert order == ["a start", "a end", "b start", "b end"]

    async def test_lock_released_on_error(self):
        serializer = ResourceSerializer()

        with pytest.raises(RuntimeError):
            async with serializer.guard("p1"):
                raise RuntimeError("boom")

        assert not serializer.in_flight("p1")
        async with serializer.guard("p1"):
            pass

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            ResourceSerializer("drop")


class TestOptimisticCollection:
    def test_revert_create(self):
        items = OptimisticCollection([Item("a")])
        update_id = items.apply("create", Item("b"))

        items.revert(update_id)

        assert items.items == [Item("a")]
        assert items.pending == []

    def test_revert_update_restores_original(self):
        original = Item("a", 1)
        items = OptimisticCollection([original, Item("b")])
        update_id = items.apply(UpdateKind.UPDATE, Item("a", 2), original=original)
        assert items.items[0].value == 2

        items.revert(update_id)

        assert items.items == [original, Item("b")]

    def test_revert_delete_restores_position(self):
        items = OptimisticCollection([Item("a"), Item("b"), Item("c")])
        update_id = items.apply("delete", Item("b"))
        assert [i.id for i in items.items] == ["a", "c"]

        items.revert(update_id)

        assert [i.id for i in items.items] == ["a", "b", "c"]

    def test_revert_only_touches_its_own_update(self):
        items = OptimisticCollection([Item("a", 1), Item("b", 1)])
        first = items.apply("update", Item("a", 2), original=Item("a", 1))
        second = items.apply("update", Item("b", 2), original=Item("b", 1))

        items.revert(first)

        assert items.items == [Item("a", 1), Item("b", 2)]
        assert [p.update_id for p in items.pending] == [second]

    def test_confirm_keeps_change(self):
        items = OptimisticCollection([Item("a")])
        update_id = items.apply("create", Item("b"))

        items.confirm(update_id)

        assert [i.id for i in items.items] == ["a", "b"]
        assert items.pending == []

    def test_update_ids_are_monotonic(self):
        items = OptimisticCollection([Item("a"), Item("b")])
        first = items.apply("delete", Item("a"))
        items.confirm(first)
        second = items.apply("delete", Item("b"))
        assert second > first

    def test_second_pending_update_for_same_item_conflicts(self):
        items = OptimisticCollection([Item("a")])
        items.apply("update", Item("a", 1), original=Item("a"))

        with pytest.raises(ConflictingOperationError):
            items.apply("delete", Item("a"))

    def test_create_over_existing_item_conflicts(self):
        server = Item("a", 1)
        items = OptimisticCollection([server])

        with pytest.raises(ConflictingOperationError):
            items.apply("create", Item("a", 2))

        assert items.items == [server]
        assert items.pending == []

    def test_update_requires_original(self):
        items = OptimisticCollection([Item("a")])
        with pytest.raises(ValueError):
            items.apply("update", Item("a", 1))

    def test_replace_all_drops_pending(self):
        items = OptimisticCollection([Item("a")])
        items.apply("create", Item("b"))

        items.replace_all([Item("z")])

        assert items.items == [Item("z")]
        assert items.pending == []

    def test_revert_twice_raises(self):
        items = OptimisticCollection([Item("a")])
        update_id = items.apply("create", Item("b"))
        items.revert(update_id)

        with pytest.raises(KeyError):
            items.revert(update_id)
