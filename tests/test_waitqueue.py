"""Tests for WaitQueue ordering and lazy removal."""

from __future__ import annotations

import asyncio

import pytest

from flowgate.runtime.concurrency import WaitEntry, WaitQueue


def make_entries(queue: WaitQueue[int], *priorities: int) -> list[WaitEntry[int]]:
    loop = asyncio.get_running_loop()
    return [WaitEntry(loop.create_future(), 0.0, queue.next_seq(), p) for p in priorities]


class TestFifo:
    """Default queue grants in push order."""

    @pytest.mark.asyncio
    async def test_pop_in_push_order(self) -> None:
        queue: WaitQueue[int] = WaitQueue()
        a, b, c = make_entries(queue, 0, 0, 0)
        for e in (a, b, c):
            queue.push(e)
        assert len(queue) == 3
        assert [queue.pop(), queue.pop(), queue.pop()] == [a, b, c]
        assert queue.pop() is None
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_remove_is_skipped_by_pop(self) -> None:
        queue: WaitQueue[int] = WaitQueue()
        a, b = make_entries(queue, 0, 0)
        queue.push(a)
        queue.push(b)
        assert queue.remove(a) is True
        assert queue.remove(a) is False
        assert len(queue) == 1
        assert queue.peek() is b
        assert queue.pop() is b

    @pytest.mark.asyncio
    async def test_resolved_entries_are_skipped(self) -> None:
        queue: WaitQueue[int] = WaitQueue()
        a, b = make_entries(queue, 0, 0)
        queue.push(a)
        queue.push(b)
        a.future.cancel()
        assert queue.pop() is b
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_double_push_rejected(self) -> None:
        queue: WaitQueue[int] = WaitQueue()
        (a,) = make_entries(queue, 0)
        queue.push(a)
        with pytest.raises(ValueError):
            queue.push(a)

    @pytest.mark.asyncio
    async def test_iter_lists_live_entries(self) -> None:
        queue: WaitQueue[int] = WaitQueue()
        a, b, c = make_entries(queue, 0, 0, 0)
        for e in (a, b, c):
            queue.push(e)
        queue.remove(b)
        assert list(queue) == [a, c]
        assert bool(queue)


class TestPrioritized:
    """Prioritized queue: lower priority first, ties in request order."""

    @pytest.mark.asyncio
    async def test_priority_then_sequence(self) -> None:
        queue: WaitQueue[int] = WaitQueue(prioritized=True)
        p2, p1a, p1b, p0 = make_entries(queue, 2, 1, 1, 0)
        for e in (p2, p1a, p1b, p0):
            queue.push(e)
        assert list(queue) == [p0, p1a, p1b, p2]
        assert [queue.pop() for _ in range(4)] == [p0, p1a, p1b, p2]

    @pytest.mark.asyncio
    async def test_removed_head_is_discarded(self) -> None:
        queue: WaitQueue[int] = WaitQueue(prioritized=True)
        low, high = make_entries(queue, 0, 5)
        queue.push(high)
        queue.push(low)
        queue.remove(low)
        assert queue.peek() is high
        assert len(queue) == 1


class TestWaitEntry:
    @pytest.mark.asyncio
    async def test_resume_only_once(self) -> None:
        queue: WaitQueue[int] = WaitQueue()
        (entry,) = make_entries(queue, 0)
        assert entry.resume(7) is True
        assert entry.resume(8) is False
        assert entry.reject(RuntimeError()) is False
        assert entry.granted
        assert await entry == 7

    @pytest.mark.asyncio
    async def test_armed_timer_fires(self) -> None:
        queue: WaitQueue[int] = WaitQueue()
        (entry,) = make_entries(queue, 0)
        fired: list[WaitEntry[int]] = []
        entry.arm(0.01, fired.append)
        await asyncio.sleep(0.03)
        assert fired == [entry]

    @pytest.mark.asyncio
    async def test_resume_disarms_timer(self) -> None:
        queue: WaitQueue[int] = WaitQueue()
        (entry,) = make_entries(queue, 0)
        fired: list[WaitEntry[int]] = []
        entry.arm(0.01, fired.append)
        entry.resume(1)
        await asyncio.sleep(0.03)
        assert fired == []
