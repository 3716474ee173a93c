import time
from datetime import date
from typing import Callable, Optional

import httpx
import structlog
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..core.exceptions import DownloadFailedError, ExtractionTimeoutError
from ..models.article import Article
from ..models.image import Image
from ..parsers.base_parser import BaseDigestParser, ParsedDigest
from ..repositories.content_repository import ContentRepository
from ..utils.date_utils import local_today
from ..utils.dedupe_utils import pdf_article_key, pdf_image_key
from ..utils.http_utils import read_with_deadline
from .extraction_log import ExtractionLogService
from .file_storage import BlobStorageService
from .pdf_archive import PdfArchive
from .pipeline_result import PipelineResult

logger = structlog.get_logger(__name__)

MODULE = "pdf-ingestion"
PDF_MAGIC = b"%PDF"


class PdfIngestionPipeline:
    """
    Digest -> Article/Image records.

    Without a target date the current digest is downloaded and archived under today's
    date; with one, the archived copy is re-parsed and nothing is downloaded. Every
    record is written on its own, so a failure part-way leaves earlier writes in place.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        archive: PdfArchive,
        blob_storage: BlobStorageService,
        parser: BaseDigestParser,
        extraction_log: ExtractionLogService,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.archive = archive
        self.blob_storage = blob_storage
        self.parser = parser
        self.extraction_log = extraction_log
        self.settings = settings or get_settings()
        self.transport = transport

    def ingest(self, target_date: Optional[date] = None, job_id: Optional[str] = None) -> PipelineResult:
        start_time = time.time()

        if target_date is None:
            digest_date = local_today(self.settings.timezone)
            content = self.download(job_id)
            path = self.archive.save(digest_date, content)
            self.extraction_log.info(MODULE, f"Digest for {digest_date.isoformat()} archived", job_id, size=len(content))
        else:
            digest_date = target_date
            path = self.archive.require(target_date)
            self.extraction_log.info(MODULE, f"Re-extracting archived digest for {digest_date.isoformat()}", job_id)

        digest = self.parser.parse(str(path))
        self.extraction_log.info(
            MODULE,
            f"Parsed digest: {len(digest.blocks)} articles, {len(digest.images)} images",
            job_id,
            sections=digest.sections,
            pages=digest.page_count,
        )

        result = self.store(digest, digest_date)

        self.extraction_log.info(
            MODULE,
            f"Ingestion finished for {digest_date.isoformat()}: "
            f"{result.articles_created} articles created, "
            f"{result.articles_skipped_duplicate} duplicates skipped, "
            f"{result.images_created} images created",
            job_id,
            processing_time=round(time.time() - start_time, 2),
        )
        return result

    def download(self, job_id: Optional[str] = None) -> bytes:
        url = self.settings.digest_pdf_url
        max_bytes = self.settings.max_pdf_size_mb * 1024 * 1024
        self.extraction_log.info(MODULE, f"Downloading digest from {url}", job_id)

        deadline = time.monotonic() + self.settings.download_timeout_seconds
        try:
            with httpx.Client(
                timeout=self.settings.download_timeout_seconds,
                follow_redirects=True,
                headers={"User-Agent": self.settings.user_agent},
                transport=self.transport,
            ) as client:
                with client.stream("GET", url) as response:
                    response.raise_for_status()
                    content = read_with_deadline(response, deadline, max_bytes=max_bytes)
        except httpx.TimeoutException as e:
            raise ExtractionTimeoutError(f"Digest download timed out: {e}", url=url)
        except httpx.HTTPStatusError as e:
            raise DownloadFailedError(
                f"Digest download returned HTTP {e.response.status_code}",
                url=url,
                status_code=e.response.status_code,
            )
        except httpx.HTTPError as e:
            raise DownloadFailedError(f"Digest download failed: {e}", url=url)

        if len(content) > max_bytes:
            raise DownloadFailedError(
                f"Digest is {len(content)} bytes, above the {self.settings.max_pdf_size_mb}MB limit", url=url
            )
        if not content.startswith(PDF_MAGIC):
            raise DownloadFailedError("Downloaded file is not a PDF", url=url, size=len(content))

        logger.info("pdf_downloaded", url=url, size=len(content))
        return content

    def store(self, digest: ParsedDigest, digest_date: date) -> PipelineResult:
        result = PipelineResult(target_date=digest_date)
        folder = digest_date.isoformat()

        with self.session_factory() as session:
            repo = ContentRepository(session)

            for block in digest.blocks:
                article = Article(
                    dedupe_key=pdf_article_key(digest_date, block.section, block.title),
                    title=block.title,
                    summary=block.summary,
                    content=block.content,
                    section=block.section,
                    source_label=block.source_label or self.settings.digest_source_label,
                    origin="pdf",
                    publication_date=digest_date,
                    ingestion_date=digest_date,
                )
                result.count_article(repo.add_article(article))

            for digest_image in digest.images:
                dedupe_key = pdf_image_key(digest_date, digest_image.section, digest_image.title)
                blob_ref = self.blob_storage.put(folder, digest_image.data, digest_image.extension)
                image = Image(
                    dedupe_key=dedupe_key,
                    title=digest_image.title,
                    section=digest_image.section,
                    blob_ref=blob_ref,
                    content_type=digest_image.content_type,
                    width=digest_image.width,
                    height=digest_image.height,
                    publication_date=digest_date,
                    ingestion_date=digest_date,
                )
                result.count_image(repo.add_image(image))

        logger.info(
            "digest_stored",
            date=folder,
            articles_created=result.articles_created,
            articles_skipped=result.articles_skipped_duplicate,
            images_created=result.images_created,
            images_skipped=result.images_skipped_duplicate,
        )
        return result
