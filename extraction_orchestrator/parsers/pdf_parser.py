import os
import re
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import fitz  # PyMuPDF
import structlog

from .base_parser import BaseDigestParser, DigestBlock, DigestImage, ParsedDigest
from ..core.exceptions import ParseFailedError
from ..utils.string_utils import clean_text, strip_accents, truncate_text


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SectionMarker:
    id: str
    heading: str
    image_only: bool = False


# Headings of the daily judicial digest, in the order they usually appear.
DIGEST_SECTIONS: Tuple[SectionMarker, ...] = (
    SectionMarker("ocho-columnas", "OCHO COLUMNAS"),
    SectionMarker("primeras-planas", "PRIMERAS PLANAS", image_only=True),
    SectionMarker("columnas-politicas", "COLUMNAS POLÍTICAS"),
    SectionMarker("informacion-general", "INFORMACIÓN GENERAL"),
    SectionMarker("cartones", "CARTONES", image_only=True),
    SectionMarker("suprema-corte", "SUPREMA CORTE DE JUSTICIA DE LA NACIÓN"),
    SectionMarker("tribunal-electoral", "TRIBUNAL ELECTORAL DEL PODER JUDICIAL DE LA FEDERACIÓN"),
    SectionMarker("dof", "DOF"),
    SectionMarker("consejo-judicatura", "CONSEJO DE LA JUDICATURA FEDERAL"),
)

DEFAULT_IMAGE_SECTION = "general"

SOURCE_LINE = re.compile(r"^(?:fuente|source)\s*:\s*(?P<label>.+)$", re.IGNORECASE)
PAGE_NUMBER = re.compile(r"^(?:p[aá]gina\s*)?\d+(?:\s*(?:de|/)\s*\d+)?$", re.IGNORECASE)


def _heading_key(text: str) -> str:
    return clean_text(strip_accents(text)).upper()


class DigestPdfParser(BaseDigestParser):
    """
    Splits a digest into section-delimited text blocks and embedded images.

    A block whose first line is a known section heading opens that section; every
    following text block up to the next heading belongs to it. Blocks before the first
    heading (cover, index) are ignored, and image-only sections yield no articles.
    """

    def __init__(
        self,
        sections: Iterable[SectionMarker] = DIGEST_SECTIONS,
        min_block_chars: int = 40,
        min_image_px: int = 100,
        max_file_size_mb: int = 50,
    ):
        self.sections = tuple(sections)
        self.min_block_chars = min_block_chars
        self.min_image_px = min_image_px
        self.max_file_size_mb = max_file_size_mb
        self._markers: Dict[str, SectionMarker] = {_heading_key(m.heading): m for m in self.sections}

    def parse(self, source: str) -> ParsedDigest:
        start_time = time.time()
        file_name = os.path.basename(source)
        self._validate_file(source)

        logger.info("digest_parse_started", file_name=file_name)
        try:
            with fitz.open(source) as doc:
                digest = self._parse_document(doc)
        except ParseFailedError:
            raise
        except Exception as e:
            logger.error("digest_parse_failed", file_name=file_name, error=str(e))
            raise ParseFailedError(f"Failed to read PDF {file_name}: {e}", file_name=file_name)

        if not digest.blocks and not digest.images:
            raise ParseFailedError(
                f"No articles or images found in {file_name}",
                file_name=file_name,
                sections=digest.sections,
            )

        logger.info(
            "digest_parse_completed",
            file_name=file_name,
            pages=digest.page_count,
            sections=len(digest.sections),
            blocks=len(digest.blocks),
            images=len(digest.images),
            processing_time=round(time.time() - start_time, 2),
        )
        return digest

    def _validate_file(self, file_path: str) -> None:
        if not os.path.exists(file_path):
            raise ParseFailedError(f"File not found: {file_path}")
        size = os.path.getsize(file_path)
        if size == 0:
            raise ParseFailedError(f"Empty digest file: {file_path}")
        if size > self.max_file_size_mb * 1024 * 1024:
            raise ParseFailedError(f"Digest too large: {size} bytes (max: {self.max_file_size_mb}MB)")

    def _parse_document(self, doc) -> ParsedDigest:
        digest = ParsedDigest(page_count=doc.page_count)
        current: Optional[SectionMarker] = None
        seen_xrefs = set()
        image_counters: Dict[str, int] = {}
        any_text = False

        for page_index in range(doc.page_count):
            page = doc[page_index]
            page_no = page_index + 1

            for text in self._page_text_blocks(page):
                any_text = True
                marker, remainder = self._split_heading(text)
                if marker is not None:
                    current = marker
                    if marker.id not in digest.sections:
                        digest.sections.append(marker.id)
                    if not remainder:
                        continue
                    text = remainder

                if current is None or current.image_only:
                    continue
                block = self._build_block(current.id, text, page_no)
                if block is not None:
                    digest.blocks.append(block)

            section_id = current.id if current else DEFAULT_IMAGE_SECTION
            for image in self._page_images(doc, page, seen_xrefs):
                image_counters[section_id] = image_counters.get(section_id, 0) + 1
                width, height, data, extension = image
                digest.images.append(DigestImage(
                    section=section_id,
                    title=f"{section_id} page {page_no} image {image_counters[section_id]}",
                    data=data,
                    extension=extension,
                    width=width,
                    height=height,
                    page=page_no,
                ))

        if not any_text and not digest.images:
            raise ParseFailedError("Digest contains no extractable text")
        return digest

    def _page_text_blocks(self, page) -> List[str]:
        # get_text("blocks") -> (x0, y0, x1, y1, text, block_no, block_type); type 0 is text
        blocks = []
        for block in page.get_text("blocks"):
            if len(block) >= 7 and block[6] != 0:
                continue
            text = (block[4] or "").strip()
            if text:
                blocks.append(text)
        return blocks

    def _split_heading(self, text: str) -> Tuple[Optional[SectionMarker], str]:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if not lines:
            return None, ""
        marker = self._markers.get(_heading_key(lines[0]))
        if marker is None:
            return None, text
        return marker, "\n".join(lines[1:])

    def _build_block(self, section_id: str, text: str, page_no: int) -> Optional[DigestBlock]:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        lines = [line for line in lines if not PAGE_NUMBER.match(line)]
        if not lines or len(clean_text(" ".join(lines))) < self.min_block_chars:
            return None

        source_label = None
        match = SOURCE_LINE.match(lines[-1])
        if match and len(lines) > 1:
            source_label = clean_text(match.group("label"))
            lines = lines[:-1]

        title = truncate_text(clean_text(lines[0]), 200)
        body = "\n".join(lines[1:]) or lines[0]
        return DigestBlock(
            section=section_id,
            title=title,
            summary=truncate_text(clean_text(body), 500),
            content=body,
            source_label=source_label,
            page=page_no,
        )

    def _page_images(self, doc, page, seen_xrefs: set) -> List[Tuple[int, int, bytes, str]]:
        images = []
        for info in page.get_images(full=True):
            xref = info[0]
            if xref in seen_xrefs:
                continue
            seen_xrefs.add(xref)
            extracted = doc.extract_image(xref)
            if not extracted or not extracted.get("image"):
                continue
            width = extracted.get("width", 0)
            height = extracted.get("height", 0)
            if width < self.min_image_px or height < self.min_image_px:
                continue
            images.append((width, height, extracted["image"], extracted.get("ext", "png")))
        return images
