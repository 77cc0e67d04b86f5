"""
Backup Scheduler - Cron and On-Demand Execution

Manages scheduled and manual backup job execution using APScheduler.

Features:
- Cron-based scheduling (configurable via BACKUP_SCHEDULE_CRON)
- RUN_ONCE mode for immediate execution
- At most one backup in flight (max_instances=1, coalesced misfires)
- Graceful shutdown handling

Usage:
    # Scheduled mode (default)
    snapship schedule

    # Run once and exit
    RUN_ONCE=true snapship schedule
"""

import asyncio
import signal
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from snapship.apps.backup.orchestrator import BackupOrchestrator
from snapship.utils.config import Settings
from snapship.utils.logging import get_logger

logger = get_logger(__name__)

JOB_ID = "backup_job"
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class BackupScheduler:
    """
    Scheduler for periodic or on-demand backup jobs.

    Handles:
    - APScheduler setup and management
    - Cron-based scheduling
    - RUN_ONCE immediate execution
    - Signal handling for graceful shutdown
    """

    def __init__(
        self,
        settings: Settings,
        run_once: bool = False,
        orchestrator: Optional[BackupOrchestrator] = None,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            settings: Validated application settings
            run_once: If True, run the backup once and exit
            orchestrator: Backup orchestrator to run (built from settings if None)
        """
        self.settings = settings
        self.run_once = run_once
        self.orchestrator = orchestrator or BackupOrchestrator(settings)
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()
        self.last_result: Optional[bool] = None

        logger.info(
            "BackupScheduler initialized",
            extra={
                "run_once": run_once,
                "cron_schedule": settings.BACKUP_SCHEDULE_CRON,
            },
        )

    async def execute_backup(self) -> bool:
        """
        Execute one backup cycle off the event loop.

        Returns:
            Result of the orchestrator run
        """
        logger.info("Starting backup execution")

        try:
            loop = asyncio.get_running_loop()
            self.last_result = await loop.run_in_executor(None, self.orchestrator.run)

            if self.last_result:
                logger.info("Backup execution completed successfully")
            else:
                logger.error("Backup execution failed, see previous errors")

            return self.last_result

        finally:
            # Signal shutdown if run_once mode
            if self.run_once:
                logger.info("RUN_ONCE mode: signaling shutdown")
                self.shutdown_event.set()

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM.

        Handlers are registered on the running event loop so a pending wait
        on shutdown_event wakes up immediately.
        """
        loop = asyncio.get_running_loop()
        for signum in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(signum, self._handle_signal, signum)

    def remove_signal_handlers(self) -> None:
        """Restore default SIGINT/SIGTERM handling."""
        loop = asyncio.get_running_loop()
        for signum in SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(signum)

    def _handle_signal(self, signum: int) -> None:
        logger.info("Received signal %d, initiating graceful shutdown", signum)
        self.shutdown_event.set()

    async def start(self) -> bool:
        """
        Start scheduler or execute once.

        In scheduled mode, runs continuously until shutdown signal.
        In RUN_ONCE mode, executes immediately and exits.

        Returns:
            False if the most recent backup failed, True otherwise
        """
        self.setup_signal_handlers()
        try:
            return await self._serve()
        finally:
            self.remove_signal_handlers()

    async def _serve(self) -> bool:
        if self.run_once:
            logger.info("Running in RUN_ONCE mode")
            return await self.execute_backup()

        logger.info("Running in scheduled mode")

        self.scheduler = AsyncIOScheduler()

        trigger = CronTrigger.from_crontab(self.settings.BACKUP_SCHEDULE_CRON)
        self.scheduler.add_job(
            self.execute_backup,
            trigger=trigger,
            id=JOB_ID,
            name="Periodic SQLite Backup",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        # Start scheduler first to get next_run_time
        self.scheduler.start()
        logger.info("Scheduler started")

        job = self.scheduler.get_job(JOB_ID)
        next_run = getattr(job, "next_run_time", None)
        next_run_str = str(next_run) if next_run is not None else None

        logger.info(
            "Scheduled backup job",
            extra={
                "schedule": self.settings.BACKUP_SCHEDULE_CRON,
                "next_run": next_run_str,
            },
        )
        logger.info("Waiting for jobs...")

        await self.shutdown_event.wait()

        logger.info("Shutting down scheduler")
        if self.scheduler:
            self.scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown complete")

        return self.last_result is not False
