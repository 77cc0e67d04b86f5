"""
Unit tests for the backup scheduler.
"""

import asyncio
import os
import signal

import pytest

from snapship.apps.backup.scheduler import JOB_ID, BackupScheduler
from snapship.utils.config import Settings


class StubOrchestrator:
    def __init__(self, result=True):
        self.result = result
        self.calls = 0

    def run(self):
        self.calls += 1
        return self.result


@pytest.fixture
def settings():
    return Settings(FTP_HOST="127.0.0.1")


class TestRunOnce:
    """Tests for immediate single execution."""

    @pytest.mark.parametrize("result", [True, False])
    def test_returns_orchestrator_result(self, settings, result):
        orchestrator = StubOrchestrator(result)
        scheduler = BackupScheduler(settings, run_once=True, orchestrator=orchestrator)

        assert asyncio.run(scheduler.start()) is result
        assert orchestrator.calls == 1
        assert scheduler.shutdown_event.is_set()

    def test_orchestrator_exception_still_signals_shutdown(self, settings):
        class Exploding:
            def run(self):
                raise RuntimeError("boom")

        scheduler = BackupScheduler(settings, run_once=True, orchestrator=Exploding())

        with pytest.raises(RuntimeError):
            asyncio.run(scheduler.start())
        assert scheduler.shutdown_event.is_set()


class TestScheduledMode:
    """Tests for cron scheduling."""

    def test_job_registered_with_single_instance(self, settings):
        orchestrator = StubOrchestrator()
        scheduler = BackupScheduler(settings, orchestrator=orchestrator)
        seen = {}

        async def scenario():
            task = asyncio.create_task(scheduler.start())
            await asyncio.sleep(0.05)

            job = scheduler.scheduler.get_job(JOB_ID)
            seen["max_instances"] = job.max_instances
            seen["coalesce"] = job.coalesce
            seen["next_run"] = job.next_run_time

            scheduler.shutdown_event.set()
            return await task

        assert asyncio.run(scenario()) is True
        assert seen["max_instances"] == 1
        assert seen["coalesce"] is True
        assert seen["next_run"] is not None
        assert orchestrator.calls == 0

    def test_failed_last_run_reported(self, settings):
        scheduler = BackupScheduler(settings, orchestrator=StubOrchestrator(False))

        async def scenario():
            task = asyncio.create_task(scheduler.start())
            await asyncio.sleep(0.05)
            await scheduler.execute_backup()
            scheduler.shutdown_event.set()
            return await task

        assert asyncio.run(scenario()) is False

    def test_invalid_cron_expression(self):
        settings = Settings(FTP_HOST="h", BACKUP_SCHEDULE_CRON="not a cron")
        scheduler = BackupScheduler(settings, orchestrator=StubOrchestrator())

        with pytest.raises(ValueError):
            asyncio.run(scheduler.start())


class TestSignals:
    """Tests for graceful shutdown on SIGINT/SIGTERM."""

    @pytest.mark.parametrize("signum", [signal.SIGTERM, signal.SIGINT])
    def test_signal_stops_waiting_scheduler(self, settings, signum):
        orchestrator = StubOrchestrator()
        scheduler = BackupScheduler(settings, orchestrator=orchestrator)

        async def scenario():
            task = asyncio.create_task(scheduler.start())
            await asyncio.sleep(0.05)
            os.kill(os.getpid(), signum)
            return await asyncio.wait_for(task, timeout=5)

        assert asyncio.run(scenario()) is True
        assert scheduler.shutdown_event.is_set()
        assert orchestrator.calls == 0

    def test_default_handlers_restored(self, settings):
        before = signal.getsignal(signal.SIGTERM)
        scheduler = BackupScheduler(settings, run_once=True, orchestrator=StubOrchestrator())

        asyncio.run(scheduler.start())

        assert signal.getsignal(signal.SIGTERM) == before
