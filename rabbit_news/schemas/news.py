"""
Article data models.

These models represent the raw material of the pipeline: articles as
fetched from a source, and the same articles after cleaning.

Hierarchy: Holding (caller input) ; RawArticle → CleanedArticle → (event detection)
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from .base import SourceCategory


class Holding(BaseModel):
    """A position supplied by the caller. Never mutated by the pipeline."""
    symbol: str
    name: str = ""
    allocation_pct: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    note: Optional[str] = None

    @field_validator('symbol', mode='before')
    @classmethod
    def normalize_symbol(cls, v):
        return str(v).strip().upper() if v is not None else ""

    class Config:
        frozen = True


class RawArticle(BaseModel):
    """
    One ingested item, exactly as the source delivered it.

    Created by the Fetcher. `published_at_raw` is kept in source format;
    the Cleaner owns timestamp normalization.
    """
    id: UUID = Field(default_factory=uuid4)

    source_name: str
    source_layer: int = Field(ge=1, le=3)       # 1 = wire, 2 = aggregator, 3 = supplemental

    title: str
    description: Optional[str] = None           # may contain HTML
    body_html: Optional[str] = None
    published_at_raw: str = ""
    url: str

    raw_tickers: List[str] = Field(default_factory=list)
    is_holdings_news: bool = False
    source_tag: Optional[str] = None            # "HoldingsSearch" for per-ticker lookups

    def normalized_url(self) -> str:
        """Key for cross-source dedup (case-insensitive, trimmed)."""
        return self.url.strip().lower()

    class Config:
        frozen = True


class CleanedArticle(BaseModel):
    """
    Normalized form of a RawArticle (1:1).

    Created by the Cleaner. `is_low_information` is a signal for later
    stages, never a drop decision here.
    """
    raw_article_id: UUID
    url: str
    source_name: str
    source_layer: int = 3

    clean_title: str
    clean_description: str = ""
    clean_body: str = ""
    published_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    tickers: List[str] = Field(default_factory=list)   # first-mention order
    source_quality: float = Field(default=0.5, ge=0.0, le=1.0)
    is_low_information: bool = False
    source_category: SourceCategory = SourceCategory.OTHER
    is_holdings_news: bool = False

    author: Optional[str] = None
    language: str = "en"

    @property
    def text(self) -> str:
        """Title + description, the text most heuristics look at."""
        return f"{self.clean_title} {self.clean_description}".strip()

    class Config:
        frozen = True
