"""
ExtractionLog writer.
Every entry goes to structlog and to the persisted, append-only extraction_logs table.
"""

from datetime import timedelta
from typing import Any, Callable, Dict, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.extraction_log import ExtractionLogEntry
from ..repositories.extraction_log_repository import ExtractionLogRepository
from ..utils.date_utils import parse_iso_date, utcnow

logger = structlog.get_logger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
STATS_WINDOW_DAYS = 30

_STRUCTLOG_METHODS = {
    "DEBUG": "debug",
    "INFO": "info",
    "WARN": "warning",
    "ERROR": "error",
}

_COUNT_KEYS = {
    "ERROR": "errorCount",
    "WARN": "warnCount",
    "INFO": "infoCount",
    "DEBUG": "debugCount",
}


class ExtractionLogService:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def debug(self, module: str, message: str, job_id: Optional[str] = None, **details) -> None:
        self.log("DEBUG", module, message, job_id, **details)

    def info(self, module: str, message: str, job_id: Optional[str] = None, **details) -> None:
        self.log("INFO", module, message, job_id, **details)

    def warning(self, module: str, message: str, job_id: Optional[str] = None, **details) -> None:
        self.log("WARN", module, message, job_id, **details)

    def error(self, module: str, message: str, job_id: Optional[str] = None, **details) -> None:
        self.log("ERROR", module, message, job_id, **details)

    def log(self, level: str, module: str, message: str, job_id: Optional[str] = None, **details) -> None:
        level = level.upper()
        getattr(logger, _STRUCTLOG_METHODS.get(level, "info"))(
            "extraction_log", module=module, log_message=message, job_id=job_id, **details
        )

        entry = ExtractionLogEntry(
            created_at=utcnow(),
            level=level,
            module=module,
            message=message,
            job_id=job_id,
            details=details or None,
        )
        with self.session_factory() as session:
            try:
                ExtractionLogRepository(session).append(entry)
            except SQLAlchemyError as e:
                session.rollback()
                logger.error("extraction_log_write_failed", module=module, error=str(e))

    def query(
        self,
        level: Optional[str] = None,
        module: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        search: Optional[str] = None,
        job_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        page = max(1, page)
        limit = max(1, min(limit, 200))
        with self.session_factory() as session:
            repo = ExtractionLogRepository(session)
            entries, total = repo.search(
                level=level,
                module=module,
                start_date=parse_iso_date(start_date) if start_date else None,
                end_date=parse_iso_date(end_date) if end_date else None,
                search=search,
                job_id=job_id,
                limit=limit,
                offset=(page - 1) * limit,
            )
            return {
                "logs": [entry.to_dict() for entry in entries],
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": (total + limit - 1) // limit,
                "modules": repo.list_modules(),
            }

    def stats(self, days: int = STATS_WINDOW_DAYS) -> Dict[str, Any]:
        """Level totals overall, plus per-day counts and the most frequent errors over the last `days`."""
        since = utcnow() - timedelta(days=days)
        with self.session_factory() as session:
            repo = ExtractionLogRepository(session)
            by_level = repo.count_by_level()
            daily_rows = repo.daily_counts(since)
            top_errors = repo.top_errors(since)

        daily: Dict[str, Dict[str, Any]] = {}
        for day, level, count in daily_rows:
            bucket = daily.setdefault(day, {"date": day, **_level_counts({})})
            if level in _COUNT_KEYS:
                bucket[_COUNT_KEYS[level]] = count

        return {
            "total": sum(by_level.values()),
            **_level_counts(by_level),
            "dailyStats": list(daily.values()),
            "topErrors": [{"message": message, "count": count} for message, count in top_errors],
        }


def _level_counts(by_level: Dict[str, int]) -> Dict[str, int]:
    return {key: by_level.get(level, 0) for level, key in _COUNT_KEYS.items()}
