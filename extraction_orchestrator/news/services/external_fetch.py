"""
External fetch pipeline
Fans out over the source registry with a bounded worker pool. Each source succeeds or
fails on its own; the run only fails when every source did.
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from typing import Callable, List, Optional

import httpx
import structlog
from sqlalchemy.orm import Session

from ...config import Settings, get_settings
from ...core.exceptions import SourceFetchFailedError
from ...models.article import Article
from ...repositories.content_repository import ContentRepository
from ...repositories.external_source_repository import ExternalSourceRepository
from ...services.extraction_log import ExtractionLogService
from ...services.pipeline_result import PipelineResult, SourceOutcome
from ...utils.date_utils import local_today, utcnow
from ...utils.dedupe_utils import external_article_key
from .sources.base import NewsSourceAdapter, SourceTarget
from .sources.rss_adapter import RssSourceAdapter

logger = structlog.get_logger(__name__)

MODULE = "external-fetch"
EXTERNAL_SECTION = "ultimas-noticias"


class ExternalFetchPipeline:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        extraction_log: ExtractionLogService,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
        adapter_factory: Optional[Callable[[SourceTarget], NewsSourceAdapter]] = None,
    ):
        self.session_factory = session_factory
        self.extraction_log = extraction_log
        self.settings = settings or get_settings()
        self.transport = transport
        self.adapter_factory = adapter_factory or self._rss_adapter

    def _rss_adapter(self, target: SourceTarget) -> NewsSourceAdapter:
        return RssSourceAdapter(
            target,
            timeout=self.settings.feed_timeout_seconds,
            user_agent=self.settings.user_agent,
            transport=self.transport,
        )

    def fetch_all(self, due_only: bool = False, job_id: Optional[str] = None) -> PipelineResult:
        with self.session_factory() as session:
            repo = ExternalSourceRepository(session)
            sources = repo.list_due(utcnow()) if due_only else repo.list_active()
            targets = [SourceTarget.from_model(source) for source in sources]

        if not targets:
            self.extraction_log.info(MODULE, "No active external sources to fetch", job_id, due_only=due_only)
            return PipelineResult(target_date=local_today(self.settings.timezone))

        self.extraction_log.info(
            MODULE,
            f"Fetching {len(targets)} external sources",
            job_id,
            due_only=due_only,
            source_ids=[target.id for target in targets],
        )
        result = self._run(targets, job_id)

        if len(result.failures) == len(targets):
            raise SourceFetchFailedError(
                f"All {len(targets)} external sources failed",
                reason="AllSourcesFailed",
                result=result,
            )
        return result

    def fetch_one(self, source_id: int, job_id: Optional[str] = None) -> PipelineResult:
        with self.session_factory() as session:
            target = SourceTarget.from_model(ExternalSourceRepository(session).require(source_id))

        self.extraction_log.info(MODULE, f"Fetching external source {target.name}", job_id, source_id=source_id)
        result = self._run([target], job_id)

        if result.failures:
            failure = result.failures[0]
            raise SourceFetchFailedError(
                f"{target.name}: {failure.error}",
                reason=failure.reason,
                result=result,
                source_id=source_id,
            )
        return result

    def _run(self, targets: List[SourceTarget], job_id: Optional[str]) -> PipelineResult:
        start_time = time.time()
        ingestion_date = local_today(self.settings.timezone)
        result = PipelineResult(target_date=ingestion_date)
        outcomes = []

        workers = max(1, min(self.settings.fetch_max_workers, len(targets)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="external-fetch") as executor:
            futures = [
                executor.submit(self._fetch_source, target, ingestion_date, job_id)
                for target in targets
            ]
            for future in as_completed(futures):
                outcomes.append(future.result())

        for outcome in sorted(outcomes, key=lambda o: o.source_id):
            result.add_source(outcome)

        self.extraction_log.info(
            MODULE,
            f"External fetch finished: {len(targets) - len(result.failures)}/{len(targets)} sources succeeded, "
            f"{result.articles_created} articles created, "
            f"{result.articles_skipped_duplicate} duplicates skipped",
            job_id,
            processing_time=round(time.time() - start_time, 2),
        )
        return result

    def _fetch_source(self, target: SourceTarget, ingestion_date: date, job_id: Optional[str]) -> SourceOutcome:
        try:
            items = self.adapter_factory(target).fetch_news(limit=self.settings.max_feed_entries)
            return self._store(target, items, ingestion_date, job_id)
        except SourceFetchFailedError as e:
            return self._failed(target, e.reason, e.message, job_id)
        except Exception as e:
            # One broken source never takes the others down with it.
            logger.error("external_source_unexpected_error", source_id=target.id, error=str(e), exc_info=True)
            return self._failed(target, "UnexpectedError", str(e) or e.__class__.__name__, job_id)

    def _store(self, target: SourceTarget, items, ingestion_date: date, job_id: Optional[str]) -> SourceOutcome:
        outcome = SourceOutcome(source_id=target.id, name=target.name)

        with self.session_factory() as session:
            content = ContentRepository(session)
            for item in items:
                article = Article(
                    dedupe_key=external_article_key(target.id, item.url),
                    title=item.title,
                    summary=item.summary,
                    content=item.content,
                    section=EXTERNAL_SECTION,
                    source_label=target.name,
                    source_url=item.url,
                    image_url=item.image_url,
                    external_source_id=target.id,
                    origin="external",
                    publication_date=item.published_at.date(),
                    ingestion_date=ingestion_date,
                )
                if content.add_article(article):
                    outcome.articles_created += 1
                else:
                    outcome.articles_skipped_duplicate += 1

            # Stamped on every successful read, even when nothing new arrived.
            ExternalSourceRepository(session).touch_last_fetch(target.id, utcnow())

        self.extraction_log.info(
            MODULE,
            f"{target.name}: {outcome.articles_created} new articles, "
            f"{outcome.articles_skipped_duplicate} duplicates",
            job_id,
            source_id=target.id,
        )
        return outcome

    def _failed(self, target: SourceTarget, reason: str, message: str, job_id: Optional[str]) -> SourceOutcome:
        self.extraction_log.error(
            MODULE,
            f"SourceFetchFailed({reason}): {target.name}: {message}",
            job_id,
            source_id=target.id,
            reason=reason,
        )
        return SourceOutcome(
            source_id=target.id,
            name=target.name,
            status="failed",
            reason=reason,
            error=message,
        )
