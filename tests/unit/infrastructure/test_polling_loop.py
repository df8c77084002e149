"""Unit tests for PollingLoop and SchedulerRegistry."""

import asyncio

import pytest

from app.infrastructure.scheduling.polling_loop import PollingLoop, SchedulerRegistry


@pytest.mark.asyncio
async def test_run_once_counts_runs():
    calls = []

    async def job():
        calls.append(1)
        return "done"

    loop = PollingLoop("job", 60.0, job)

    assert await loop.run_once() == "done"
    assert loop.runs == 1
    assert loop.last_run_at is not None
    assert loop.running is False


@pytest.mark.asyncio
async def test_start_and_stop():
    ran = asyncio.Event()

    async def job():
        ran.set()

    loop = PollingLoop("job", 60.0, job)

    assert loop.start() is True
    assert loop.start() is False
    await asyncio.wait_for(ran.wait(), timeout=1)
    await loop.stop()

    assert loop.running is False
    assert loop.runs == 1


@pytest.mark.asyncio
async def test_failing_cycle_keeps_loop_alive():
    attempts = []

    async def job():
        attempts.append(1)
        if len(attempts) < 3:
            raise RuntimeError("database unavailable")

    loop = PollingLoop("flaky", 0.01, job)
    loop.start()
    for _ in range(200):
        if loop.runs >= 1:
            break
        await asyncio.sleep(0.01)
    await loop.stop()

    assert len(attempts) >= 3
    assert loop.runs >= 1
    assert loop.consecutive_errors == 0
    assert loop.last_error is None


@pytest.mark.asyncio
async def test_error_status_is_reported():
    async def job():
        raise RuntimeError("boom")

    loop = PollingLoop("broken", 60.0, job)
    loop.start()
    for _ in range(100):
        if loop.consecutive_errors:
            break
        await asyncio.sleep(0.01)
    await loop.stop()

    status = loop.status()
    assert status["consecutive_errors"] == 1
    assert status["last_error"] == "boom"
    assert status["runs"] == 0


@pytest.mark.asyncio
async def test_registry_keeps_first_loop_per_name():
    async def job():
        return None

    registry = SchedulerRegistry()
    first = registry.register(PollingLoop("tasks", 1.0, job))
    second = registry.register(PollingLoop("tasks", 5.0, job))

    assert second is first
    assert registry.get("tasks") is first
    assert registry.start_all() == ["tasks"]
    assert registry.start_all() == []
    await registry.stop_all()
    assert [status["name"] for status in registry.status()] == ["tasks"]
    assert registry.status()[0]["running"] is False
