"""Unit tests for the query cache"""

import asyncio
import pytest
from budget_engine.engine.cache import QueryStatus
from budget_engine.engine.keys import ANY, list_key, matches, scope_pattern


async def test_concurrent_fetches_share_one_call(cache):
    """Test two readers of one key trigger a single fetch"""
    calls = 0
    release = asyncio.Event()

    async def fetch():
        nonlocal calls
        calls += 1
        await release.wait()
        return ["a"]

    key = list_key("incomes", "u1", "s1")
    first = asyncio.ensure_future(cache.fetch(key, fetch))
    second = asyncio.ensure_future(cache.fetch(key, fetch))
    await asyncio.sleep(0)
    assert cache.peek(key).status is QueryStatus.PENDING
    release.set()
    entries = await asyncio.gather(first, second)

    assert calls == 1
    assert entries[0] is entries[1]
    assert entries[0].data == ["a"]
    assert entries[0].status is QueryStatus.RESOLVED


async def test_fresh_entry_is_reused_until_stale(cache, clock):
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        return calls

    key = list_key("incomes", "u1", "s1")
    await cache.fetch(key, fetch)
    await cache.fetch(key, fetch)
    assert calls == 1

    clock.advance(121)
    entry = await cache.fetch(key, fetch)
    assert calls == 2
    assert entry.data == 2


async def test_invalidate_forces_refetch(cache):
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        return calls

    key = list_key("incomes", "u1", "s1")
    await cache.fetch(key, fetch)
    assert cache.invalidate(("incomes", ANY, "u1", "s1")) == 1
    entry = await cache.fetch(key, fetch)
    assert entry.data == 2


async def test_result_landing_after_invalidation_is_discarded(cache):
    """Test a late response cannot overwrite data written after it started"""
    release = asyncio.Event()

    async def slow_fetch():
        await release.wait()
        return ["stale"]

    key = list_key("incomes", "u1", "s1")
    pending = asyncio.ensure_future(cache.fetch(key, slow_fetch))
    await asyncio.sleep(0)

    cache.set_data(key, ["fresh"])
    release.set()
    await pending

    assert cache.get_data(key) == ["fresh"]


async def test_cancel_drops_in_flight_fetch(cache):
    release = asyncio.Event()

    async def slow_fetch():
        await release.wait()
        return ["late"]

    key = list_key("incomes", "u1", "s1")
    pending = asyncio.ensure_future(cache.fetch(key, slow_fetch))
    await asyncio.sleep(0)

    await cache.cancel(key)
    entry = await pending

    assert entry.data is None
    assert entry.status is QueryStatus.IDLE


async def test_fetch_error_marks_entry_unavailable(cache):
    """Test a failed read keeps the error on the entry instead of raising"""

    async def broken():
        raise RuntimeError("store down")

    key = list_key("incomes", "u1", "s1")
    entry = await cache.fetch(key, broken)

    assert entry.status is QueryStatus.UNAVAILABLE
    assert isinstance(entry.error, RuntimeError)
    assert entry.data is None


async def test_fetch_error_keeps_previous_data(cache, clock):
    async def ok():
        return ["kept"]

    async def broken():
        raise RuntimeError("store down")

    key = list_key("incomes", "u1", "s1")
    await cache.fetch(key, ok)
    clock.advance(500)
    entry = await cache.fetch(key, broken)

    assert entry.status is QueryStatus.RESOLVED
    assert entry.data == ["kept"]
    assert entry.error is not None


async def test_fetch_error_does_not_touch_other_entries(cache):
    async def ok():
        return [1]

    async def broken():
        raise RuntimeError("boom")

    healthy = await cache.fetch(list_key("expenses", "u1", "s1"), ok)
    await cache.fetch(list_key("incomes", "u1", "s1"), broken)

    assert healthy.status is QueryStatus.RESOLVED
    assert healthy.error is None


def test_remove_forgets_scope(cache):
    cache.set_data(list_key("incomes", "u1", "s1"), [1])
    cache.set_data(list_key("goals", "u1", "s1"), [2])
    cache.set_data(list_key("goals", "u1", "s2"), [3])

    assert cache.remove(scope_pattern("u1", "s1")) == 2
    assert cache.get_data(list_key("goals", "u1", "s2")) == [3]
    assert len(cache) == 1


def test_collect_garbage_evicts_unread_entries(cache, clock):
    cache.set_data(list_key("incomes", "u1", "s1"), [1])
    clock.advance(300)
    cache.set_data(list_key("goals", "u1", "s1"), [2])
    clock.advance(301)

    assert cache.collect_garbage() == 1
    assert cache.peek(list_key("incomes", "u1", "s1")) is None
    assert cache.peek(list_key("goals", "u1", "s1")) is not None


def test_subscribe_notifies_matching_writes_only(cache):
    seen = []
    unsubscribe = cache.subscribe(scope_pattern("u1", "s1"), lambda key, entry: seen.append(key))

    cache.set_data(list_key("incomes", "u1", "s1"), [1])
    cache.set_data(list_key("incomes", "u1", "other"), [1])
    unsubscribe()
    cache.set_data(list_key("goals", "u1", "s1"), [1])

    assert seen == [list_key("incomes", "u1", "s1")]


@pytest.mark.parametrize(
    "key,pattern,expected",
    [
        (("incomes", "list", "u1", "s1"), ("incomes", ANY, "u1", "s1"), True),
        (("incomes", "converted", "u1", "s1", "USD", 2, 1), (ANY, ANY, "u1", "s1"), True),
        (("incomes", "list", "u1", "s1"), ("expenses", ANY, "u1", "s1"), False),
        (("incomes", "list"), ("incomes", ANY, "u1"), False),
    ],
)
def test_matches(key, pattern, expected):
    assert matches(key, pattern) is expected
