from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class DigestBlock:
    section: str
    title: str
    summary: str
    content: str
    source_label: Optional[str] = None
    page: Optional[int] = None


@dataclass
class DigestImage:
    section: str
    title: str
    data: bytes
    extension: str
    width: int
    height: int
    page: Optional[int] = None

    @property
    def content_type(self) -> str:
        ext = self.extension.lower()
        return "image/jpeg" if ext in ("jpg", "jpeg") else f"image/{ext}"


@dataclass
class ParsedDigest:
    blocks: List[DigestBlock] = field(default_factory=list)
    images: List[DigestImage] = field(default_factory=list)
    sections: List[str] = field(default_factory=list)
    page_count: int = 0

    def __repr__(self):
        return (
            f"ParsedDigest(pages={self.page_count}, sections={len(self.sections)}, "
            f"blocks={len(self.blocks)}, images={len(self.images)})"
        )


class BaseDigestParser(ABC):

    @abstractmethod
    def parse(self, source: str) -> ParsedDigest:
        pass

    def supports_source(self, source: str) -> bool:
        return source.lower().endswith(".pdf")
