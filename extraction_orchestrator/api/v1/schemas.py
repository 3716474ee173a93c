import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ...config import get_settings
from ...utils.url_utils import supports_web_url

MIN_FETCH_FREQUENCY_MINUTES = get_settings().min_fetch_frequency_minutes


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExtractionRunRequest(BaseModel):
    date: Optional[datetime.date] = Field(
        None, description="Re-extract the archived digest for this date; omit to download today's digest"
    )


class ExtractionRunResponse(CamelModel):
    success: bool
    message: str
    job_id: Optional[str] = None
    status: Optional[str] = None


class LastExtraction(CamelModel):
    job_id: str
    kind: str
    status: str
    timestamp: Optional[str] = None
    user: str
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


class ExtractionStatusResponse(CamelModel):
    last_extraction: Optional[LastExtraction] = None
    next_extraction: Optional[str] = None


class DateInfoResponse(CamelModel):
    date: str
    pdf_exists: bool
    article_count: int
    image_count: int
    exists: bool


class DeleteContentResponse(CamelModel):
    articles_deleted: int
    images_deleted: int


class JobListResponse(BaseModel):
    jobs: List[Dict[str, Any]]
    total: int
    limit: int
    offset: int


class ExternalSourceCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    base_url: str = Field(..., max_length=1000)
    rss_url: Optional[str] = Field(None, max_length=1000)
    logo_url: Optional[str] = Field(None, max_length=1000)
    fetch_frequency_minutes: int = Field(60, ge=MIN_FETCH_FREQUENCY_MINUTES)
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        if not supports_web_url(value):
            raise ValueError("must be an http(s) URL")
        return value

    @field_validator("rss_url", "logo_url")
    @classmethod
    def validate_optional_url(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if not supports_web_url(value):
            raise ValueError("must be an http(s) URL")
        return value


class ExternalSourceUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    base_url: Optional[str] = Field(None, max_length=1000)
    rss_url: Optional[str] = Field(None, max_length=1000)
    logo_url: Optional[str] = Field(None, max_length=1000)
    fetch_frequency_minutes: Optional[int] = Field(None, ge=MIN_FETCH_FREQUENCY_MINUTES)
    is_active: Optional[bool] = None

    @field_validator("base_url", "rss_url", "logo_url")
    @classmethod
    def validate_url(cls, value: Optional[str]) -> Optional[str]:
        if value and not supports_web_url(value):
            raise ValueError("must be an http(s) URL")
        return value
