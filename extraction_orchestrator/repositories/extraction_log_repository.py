from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from ..models.extraction_log import ExtractionLogEntry


class ExtractionLogRepository:
    def __init__(self, session: Session):
        self.session = session

    def append(self, entry: ExtractionLogEntry) -> ExtractionLogEntry:
        self.session.add(entry)
        self.session.commit()
        return entry

    def search(
        self,
        level: Optional[str] = None,
        module: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        search: Optional[str] = None,
        job_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[ExtractionLogEntry], int]:
        query = self.session.query(ExtractionLogEntry)

        if level and level.lower() != "all":
            query = query.filter(ExtractionLogEntry.level == level.upper())
        if module and module.lower() != "all":
            query = query.filter(ExtractionLogEntry.module == module)
        if start_date:
            query = query.filter(ExtractionLogEntry.created_at >= datetime.combine(start_date, time.min))
        if end_date:
            # end date is inclusive of the whole day
            query = query.filter(
                ExtractionLogEntry.created_at < datetime.combine(end_date + timedelta(days=1), time.min)
            )
        if search:
            query = query.filter(ExtractionLogEntry.message.ilike(f"%{search}%"))
        if job_id:
            query = query.filter(ExtractionLogEntry.job_id == job_id)

        total = query.count()
        entries = (
            query.order_by(desc(ExtractionLogEntry.created_at), desc(ExtractionLogEntry.id))
            .offset(offset)
            .limit(limit)
            .all()
        )
        return entries, total

    def list_modules(self) -> List[str]:
        rows = self.session.query(ExtractionLogEntry.module).distinct().order_by(ExtractionLogEntry.module)
        return [row[0] for row in rows if row[0]]

    def count_by_level(self, since: Optional[datetime] = None) -> Dict[str, int]:
        query = self.session.query(ExtractionLogEntry.level, func.count(ExtractionLogEntry.id))
        if since:
            query = query.filter(ExtractionLogEntry.created_at >= since)
        return {level: count for level, count in query.group_by(ExtractionLogEntry.level)}

    def daily_counts(self, since: datetime) -> List[Tuple[str, str, int]]:
        """(day, level, count) rows from `since` onwards, oldest day first."""
        day = func.date(ExtractionLogEntry.created_at)
        rows = (
            self.session.query(day, ExtractionLogEntry.level, func.count(ExtractionLogEntry.id))
            .filter(ExtractionLogEntry.created_at >= since)
            .group_by(day, ExtractionLogEntry.level)
            .order_by(day)
        )
        return [(str(row_day), level, count) for row_day, level, count in rows]

    def top_errors(self, since: datetime, limit: int = 10) -> List[Tuple[str, int]]:
        occurrences = func.count(ExtractionLogEntry.id)
        rows = (
            self.session.query(ExtractionLogEntry.message, occurrences)
            .filter(ExtractionLogEntry.level == "ERROR", ExtractionLogEntry.created_at >= since)
            .group_by(ExtractionLogEntry.message)
            .order_by(desc(occurrences), ExtractionLogEntry.message)
            .limit(limit)
        )
        return [(message, count) for message, count in rows]
