"""Tests for scheduled sweeps."""

import pytest

from ncc_monitor.config import Settings
from ncc_monitor.worker.scheduler import run_automatic_sweep, setup_scheduler

from tests.conftest import hit


def test_setup_scheduler_adds_sweep_job(monitor):
    scheduler = setup_scheduler(
        monitor, Settings(auto_scan_enabled=True, auto_scan_interval_minutes=15)
    )
    job = scheduler.get_job("auto_scan")
    assert job is not None
    assert job.trigger.interval.total_seconds() == 15 * 60


def test_setup_scheduler_disabled(monitor):
    scheduler = setup_scheduler(monitor, Settings(auto_scan_enabled=False))
    assert scheduler.get_jobs() == []


@pytest.mark.asyncio
async def test_run_automatic_sweep(monitor, storage, search_client):
    search_client.general = [hit("https://blog.example.com/a")]
    serial = await monitor.create_serial(1, "Router", "SER1")

    await run_automatic_sweep(monitor, "all")

    logs = await storage.recent_scan_logs(serial.id)
    assert logs[0].scan_type == "automatic"


@pytest.mark.asyncio
async def test_run_automatic_sweep_survives_errors(monitor):
    # Unknown search types are rejected inside the job, not raised to the scheduler
    await run_automatic_sweep(monitor, "bogus")
