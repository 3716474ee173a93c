"""
Scheduled extractions.
Polls on a fixed interval and triggers the daily digest ingestion plus fetches for due sources.
"""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..core.exceptions import AlreadyInProgressError, ExtractionError
from ..models.extraction_job import JobKind
from ..repositories.extraction_job_repository import ExtractionJobRepository
from ..repositories.external_source_repository import ExternalSourceRepository
from ..utils.date_utils import local_now, next_daily_run, parse_clock, to_utc_naive
from .extraction_log import ExtractionLogService
from .job_orchestrator import JobOrchestrator

logger = structlog.get_logger(__name__)

MODULE = "scheduler"
SCHEDULER_ACTOR = "scheduler"


def next_digest_run(settings: Settings, now: Optional[datetime] = None) -> Optional[datetime]:
    if not settings.scheduler_enabled:
        return None
    now = now or local_now(settings.timezone)
    return next_daily_run(now, parse_clock(settings.extraction_time))


class ExtractionScheduler:
    def __init__(
        self,
        orchestrator: JobOrchestrator,
        session_factory: Callable[[], Session],
        extraction_log: ExtractionLogService,
        settings: Optional[Settings] = None,
    ):
        self.orchestrator = orchestrator
        self.session_factory = session_factory
        self.extraction_log = extraction_log
        self.settings = settings or get_settings()
        self._stopping: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Run one scheduling pass; `now` is timezone-aware local time. Returns the kinds triggered."""
        now = now or local_now(self.settings.timezone)
        triggered = []

        run_at = parse_clock(self.settings.extraction_time)
        scheduled = now.replace(hour=run_at.hour, minute=run_at.minute, second=0, microsecond=0)
        if now >= scheduled:
            day_start = to_utc_naive(now.replace(hour=0, minute=0, second=0, microsecond=0))
            with self.session_factory() as session:
                already_ran = ExtractionJobRepository(session).started_since(JobKind.PDF_INGESTION.value, day_start)
            if not already_ran and self._trigger(JobKind.PDF_INGESTION):
                triggered.append(JobKind.PDF_INGESTION.value)

        with self.session_factory() as session:
            due = ExternalSourceRepository(session).list_due(to_utc_naive(now))
        if due and self._trigger(JobKind.EXTERNAL_FETCH, due_only=True):
            triggered.append(JobKind.EXTERNAL_FETCH.value)

        return triggered

    def _trigger(self, kind: JobKind, due_only: bool = False) -> bool:
        try:
            job = self.orchestrator.trigger(kind, requested_by=SCHEDULER_ACTOR, due_only=due_only)
        except AlreadyInProgressError as e:
            logger.debug("scheduled_run_skipped", kind=kind.value, running_job_id=e.job.id if e.job else None)
            return False
        except ExtractionError as e:
            self.extraction_log.error(MODULE, f"Scheduled {kind.value} could not start: {e.message}", code=e.error_code)
            return False

        self.extraction_log.info(MODULE, f"Scheduled {kind.value} started", job.id)
        return True

    async def run(self) -> None:
        logger.info(
            "scheduler_started",
            extraction_time=self.settings.extraction_time,
            poll_seconds=self.settings.scheduler_poll_seconds,
        )
        while not self._stopping.is_set():
            try:
                await asyncio.to_thread(self.tick)
            except Exception as e:
                logger.error("scheduler_tick_failed", error=str(e), exc_info=True)

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.settings.scheduler_poll_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("scheduler_stopped")

    def start(self) -> asyncio.Task:
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
