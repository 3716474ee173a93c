from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional


@dataclass
class SourceOutcome:
    source_id: int
    name: str
    status: str = "completed"
    articles_created: int = 0
    articles_skipped_duplicate: int = 0
    reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "sourceId": self.source_id,
            "name": self.name,
            "status": self.status,
            "articlesCreated": self.articles_created,
            "articlesSkippedDuplicate": self.articles_skipped_duplicate,
        }
        if self.failed:
            data["reason"] = self.reason
            data["error"] = self.error
        return data


@dataclass
class PipelineResult:
    articles_created: int = 0
    images_created: int = 0
    articles_skipped_duplicate: int = 0
    images_skipped_duplicate: int = 0
    target_date: Optional[date] = None
    sources: List[SourceOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[SourceOutcome]:
        return [outcome for outcome in self.sources if outcome.failed]

    def count_article(self, created: bool) -> None:
        if created:
            self.articles_created += 1
        else:
            self.articles_skipped_duplicate += 1

    def count_image(self, created: bool) -> None:
        if created:
            self.images_created += 1
        else:
            self.images_skipped_duplicate += 1

    def add_source(self, outcome: SourceOutcome) -> None:
        self.sources.append(outcome)
        self.articles_created += outcome.articles_created
        self.articles_skipped_duplicate += outcome.articles_skipped_duplicate

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "articlesCreated": self.articles_created,
            "imagesCreated": self.images_created,
            "articlesSkippedDuplicate": self.articles_skipped_duplicate,
            "imagesSkippedDuplicate": self.images_skipped_duplicate,
            "targetDate": self.target_date.isoformat() if self.target_date else None,
        }
        if self.sources:
            data["sources"] = [outcome.to_dict() for outcome in self.sources]
            data["failures"] = [outcome.to_dict() for outcome in self.failures]
        return data
