"""Pydantic models for the ingestion pipeline."""
import re
from datetime import date, datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

OTHER_BRAND = "Other"


class SourceType(str, Enum):
    """How topically pure a feed is."""
    DIRECT = "direct"
    AGGREGATOR = "aggregator"


class NewsType(str, Enum):
    """Closed news-type vocabulary used by the dashboard."""
    LAUNCH = "New Car Launch"
    POLICY = "Policy & Regulation"
    SALES = "Market Sales"
    PERSONNEL = "Personnel Changes"
    COMPETITOR = "Competitor Dynamics"
    OTHER = "Other"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class _Record(BaseModel):
    """Base for stored records; JSON keys are camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FeedSource(BaseModel):
    """Configured RSS/Atom endpoint."""
    id: str = ""
    name: str
    url: str
    type: SourceType = SourceType.DIRECT

    @model_validator(mode="after")
    def _default_id(self) -> "FeedSource":
        if not self.id:
            self.id = re.sub(r"[^a-z0-9]+", "-", self.name.lower()).strip("-")
        return self


class CandidateItem(_Record):
    """Feed-derived item awaiting review."""
    kind: Literal["candidate"] = "candidate"
    id: str
    title: str
    link: str
    pub_date: datetime
    source_name: str
    snippet: str = ""
    image_url: Optional[str] = None
    status: Literal["pending"] = "pending"

    @property
    def recency(self) -> datetime:
        return self.pub_date


class ScrapedDocument(_Record):
    """Article text scraped from a manually supplied URL."""
    kind: Literal["scraped"] = "scraped"
    id: str
    url: str
    title: str
    summary: str
    text: str
    scraped_at: datetime
    source: str

    @property
    def recency(self) -> datetime:
        return self.scraped_at


PendingEntry = Annotated[Union[CandidateItem, ScrapedDocument], Field(discriminator="kind")]


def _split_words(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in re.split(r"[,;，、]", value) if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(part).strip() for part in value if part is not None and str(part).strip()]
    return [str(value).strip()]


class ExtractedNewsData(BaseModel):
    """Validated structured record returned by the extraction model."""
    title: str
    summary: str = ""
    brand: str = OTHER_BRAND
    type: NewsType = NewsType.OTHER
    date: str = Field(default_factory=lambda: date.today().isoformat())
    url: str = ""
    image_keywords: str = ""
    sentiment: Sentiment = Sentiment.NEUTRAL
    tags: List[str] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _require_title(cls, value):
        if not isinstance(value, str) or not value.strip():
            raise ValueError("title must be a non-empty string")
        return value.strip()

    @field_validator("summary", "url", mode="before")
    @classmethod
    def _plain_string(cls, value):
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("brand", mode="before")
    @classmethod
    def _brand(cls, value):
        if value is None or not str(value).strip():
            return OTHER_BRAND
        return str(value).strip()

    @field_validator("type", mode="before")
    @classmethod
    def _news_type(cls, value):
        if isinstance(value, NewsType):
            return value
        text = str(value or "").strip().lower()
        for member in NewsType:
            if text in (member.value.lower(), member.name.lower()):
                return member
        return NewsType.OTHER

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, value):
        text = str(value or "").strip().lower()
        for member in Sentiment:
            if text == member.value:
                return member
        return Sentiment.NEUTRAL

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, value):
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        text = str(value or "").strip()
        match = re.match(r"^(\d{4})-(\d{1,2})-(\d{1,2})", text)
        if match:
            try:
                return date(*(int(part) for part in match.groups())).isoformat()
            except ValueError:
                pass
        return date.today().isoformat()

    @field_validator("image_keywords", mode="before")
    @classmethod
    def _image_keywords(cls, value):
        if isinstance(value, (list, tuple)):
            return ", ".join(_split_words(value))
        return "" if value is None else str(value).strip()

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value):
        return _split_words(value)
