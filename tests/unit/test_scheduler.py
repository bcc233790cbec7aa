"""Tests for background relay scheduling."""

from __future__ import annotations

import asyncio
import logging

import pytest

from vfbridge.scheduler import RelayScheduler


@pytest.mark.asyncio
async def test_submit_runs_task_and_drain_waits() -> None:
    scheduler = RelayScheduler()
    done: list[str] = []

    async def work() -> None:
        await asyncio.sleep(0)
        done.append("ok")

    scheduler.submit(work(), name="relay-1")
    assert scheduler.pending == 1

    await scheduler.drain(timeout=1)

    assert done == ["ok"]
    assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_crashed_task_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    scheduler = RelayScheduler()

    async def explode() -> None:
        raise RuntimeError("kaboom")

    with caplog.at_level(logging.ERROR, logger="vfbridge.scheduler"):
        scheduler.submit(explode(), name="relay-bad")
        await scheduler.drain(timeout=1)
        await asyncio.sleep(0)

    assert "relay-bad crashed" in caplog.text
    assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_drain_with_nothing_pending_returns() -> None:
    await RelayScheduler().drain(timeout=0.1)


@pytest.mark.asyncio
async def test_drain_timeout_leaves_slow_task(caplog: pytest.LogCaptureFixture) -> None:
    scheduler = RelayScheduler()
    task = scheduler.submit(asyncio.sleep(10), name="relay-slow")

    with caplog.at_level(logging.WARNING, logger="vfbridge.scheduler"):
        await scheduler.drain(timeout=0.01)

    assert "still running" in caplog.text
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
