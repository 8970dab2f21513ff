import asyncio

import pytest

from studio_tracker.errors import AllocationConflict
from studio_tracker.ids import COUNTER_ID, IdAllocator
from studio_tracker.store import COUNTERS, MemoryDocumentStore


def test_first_allocation_starts_from_missing_counter(store):
    allocator = IdAllocator(store)
    assert asyncio.run(allocator.allocate()) == "SC-0001"
    assert asyncio.run(store.get(COUNTERS, COUNTER_ID)) == {"current": 1}


def test_allocation_continues_from_existing_counter(store):
    asyncio.run(store.put(COUNTERS, COUNTER_ID, {"current": 41}))
    assert asyncio.run(IdAllocator(store).allocate()) == "SC-0042"


def test_concurrent_allocations_are_unique_and_dense(store):
    allocator = IdAllocator(store)

    async def burst():
        return await asyncio.gather(*(allocator.allocate() for _ in range(20)))

    ids = asyncio.run(burst())
    assert len(set(ids)) == 20
    assert sorted(ids) == [f"SC-{n:04d}" for n in range(1, 21)]
    assert asyncio.run(store.get(COUNTERS, COUNTER_ID)) == {"current": 20}


def test_conflicts_past_the_retry_budget_raise():
    store = MemoryDocumentStore(max_attempts=1)
    allocator = IdAllocator(store)

    async def pair():
        return await asyncio.gather(allocator.allocate(), allocator.allocate(), return_exceptions=True)

    results = asyncio.run(pair())
    assert "SC-0001" in results
    assert any(isinstance(r, AllocationConflict) for r in results)
    assert asyncio.run(store.get(COUNTERS, COUNTER_ID)) == {"current": 1}


def test_custom_prefix_and_width(store):
    allocator = IdAllocator(store, prefix="JOB", width=6)
    assert asyncio.run(allocator.allocate()) == "JOB-000001"


def test_numbers_are_not_reused_after_delete(ledger, admin):
    first = asyncio.run(ledger.create({"customerName": "Nimal"}, admin, notify=False)).job
    asyncio.run(ledger.delete(first.id, admin))
    second = asyncio.run(ledger.create({"customerName": "Kamala"}, admin, notify=False)).job
    assert first.id == "SC-0001"
    assert second.id == "SC-0002"


def test_garbage_counter_is_not_silently_reset(store):
    asyncio.run(store.put(COUNTERS, COUNTER_ID, {"current": "lots"}))
    with pytest.raises(ValueError):
        asyncio.run(IdAllocator(store).allocate())
