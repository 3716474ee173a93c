import os
from datetime import date
from pathlib import Path
from typing import List

import structlog

from ..core.exceptions import PdfNotFoundError

logger = structlog.get_logger(__name__)


class PdfArchive:
    """Archived digests on disk, one file per calendar date: <dir>/YYYY-MM-DD.pdf."""

    def __init__(self, storage_dir: str):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, digest_date: date) -> Path:
        return self.storage_dir / f"{digest_date.isoformat()}.pdf"

    def exists(self, digest_date: date) -> bool:
        return self.path_for(digest_date).is_file()

    def require(self, digest_date: date) -> Path:
        path = self.path_for(digest_date)
        if not path.is_file():
            raise PdfNotFoundError(digest_date.isoformat())
        return path

    def save(self, digest_date: date, content: bytes) -> Path:
        path = self.path_for(digest_date)
        tmp_path = path.with_suffix(".pdf.part")
        with open(tmp_path, "wb") as f:
            f.write(content)
        os.replace(tmp_path, path)
        logger.info("pdf_archived", date=digest_date.isoformat(), size=len(content), path=str(path))
        return path

    def list_dates(self) -> List[str]:
        dates = []
        for path in self.storage_dir.glob("*.pdf"):
            try:
                dates.append(date.fromisoformat(path.stem).isoformat())
            except ValueError:
                continue
        return sorted(dates, reverse=True)
