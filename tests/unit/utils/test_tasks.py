"""Tests for fan-out/fan-in task helpers."""

from __future__ import annotations

import asyncio

import pytest

from btclient.utils.tasks import BackgroundTaskGroup, ParallelTasks

pytestmark = [pytest.mark.unit, pytest.mark.utils]


@pytest.mark.asyncio
async def test_all_tasks_run_even_when_one_fails():
    group = ParallelTasks()
    finished = []

    async def slow_ok():
        await asyncio.sleep(0.01)
        finished.append("slow")
        return "slow"

    async def fails():
        raise ValueError("bad")

    async def fast_ok():
        finished.append("fast")
        return "fast"

    group.add("slow", slow_ok)
    group.add("fails", fails)
    group.add("fast", fast_ok)

    results = await group.run()

    assert results == {"slow": "slow", "fast": "fast"}
    assert sorted(finished) == ["fast", "slow"]
    name, error = group.first_error
    assert name == "fails"
    assert isinstance(error, ValueError)


@pytest.mark.asyncio
async def test_first_error_is_in_completion_order():
    group = ParallelTasks()

    async def late():
        await asyncio.sleep(0.02)
        raise RuntimeError("late")

    async def early():
        raise RuntimeError("early")

    group.add("late", late)
    group.add("early", early)
    await group.run()
    assert [name for name, _ in group.errors] == ["early", "late"]


@pytest.mark.asyncio
async def test_empty_group():
    group = ParallelTasks()
    assert await group.run() == {}
    assert group.first_error is None


def test_duplicate_names_rejected():
    group = ParallelTasks()
    group.add("dht", lambda: asyncio.sleep(0))
    with pytest.raises(ValueError):
        group.add("dht", lambda: asyncio.sleep(0))
    assert group.names == ["dht"]


@pytest.mark.asyncio
async def test_background_group_cancel_and_wait():
    group = BackgroundTaskGroup()
    task = group.create(asyncio.sleep(10), name="sleeper")
    assert len(group) == 1
    await group.cancel_and_wait(timeout=1)
    assert task.cancelled()
    assert len(group) == 0


@pytest.mark.asyncio
async def test_background_group_forgets_finished_tasks():
    group = BackgroundTaskGroup()
    group.create(asyncio.sleep(0))
    await group.wait()
    await asyncio.sleep(0)
    assert len(group) == 0
