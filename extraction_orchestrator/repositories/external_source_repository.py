from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import SourceNotFoundError
from ..models.external_source import ExternalSource


class ExternalSourceRepository:
    """SourceRegistry. The fetch pipeline only reads sources and stamps last_fetch."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, source_id: int) -> Optional[ExternalSource]:
        return self.session.query(ExternalSource).filter(ExternalSource.id == source_id).first()

    def require(self, source_id: int) -> ExternalSource:
        source = self.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source

    def list_all(self) -> List[ExternalSource]:
        return self.session.query(ExternalSource).order_by(ExternalSource.name).all()

    def list_active(self) -> List[ExternalSource]:
        return (
            self.session.query(ExternalSource)
            .filter(ExternalSource.is_active.is_(True))
            .order_by(ExternalSource.id)
            .all()
        )

    def list_due(self, now: datetime) -> List[ExternalSource]:
        return [source for source in self.list_active() if source.is_due(now)]

    def create(self, **fields) -> ExternalSource:
        source = ExternalSource(**fields)
        self.session.add(source)
        self.session.commit()
        self.session.refresh(source)
        return source

    def update(self, source_id: int, **fields) -> ExternalSource:
        source = self.require(source_id)
        for key, value in fields.items():
            setattr(source, key, value)
        self.session.commit()
        self.session.refresh(source)
        return source

    def delete(self, source_id: int) -> None:
        source = self.require(source_id)
        self.session.delete(source)
        self.session.commit()

    def toggle(self, source_id: int) -> ExternalSource:
        source = self.require(source_id)
        source.is_active = not source.is_active
        self.session.commit()
        self.session.refresh(source)
        return source

    def touch_last_fetch(self, source_id: int, when: datetime) -> None:
        source = self.require(source_id)
        source.last_fetch = when
        self.session.commit()
