"""
Event, cluster and scoring models.

Flow: CleanedArticle → DetectedEvent → EventCluster → UserEventScore
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from .base import EventType, ImpactLabel
from .news import CleanedArticle


class DetectedEvent(BaseModel):
    """Classification of one cleaned article."""
    article: CleanedArticle
    event_type: EventType = EventType.OTHER
    impact_labels: List[ImpactLabel] = Field(default_factory=list)
    base_score: float = Field(default=0.1, ge=0.0, le=1.0)
    dominant_ticker: Optional[str] = None       # None for market-wide (macro) events
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    classified_by: str = "rules"                # "rules" | "llm"

    @property
    def is_macro(self) -> bool:
        return self.dominant_ticker is None

    class Config:
        frozen = True


class EventCluster(BaseModel):
    """
    Set of detected events judged to describe the same real-world event.

    `canonical` is the member with the highest source quality and is what
    the feed displays. `similarity_scores` holds (i, j, score) triples over
    member indices, the links that justified grouping.
    """
    id: UUID = Field(default_factory=uuid4)
    events: List[DetectedEvent] = Field(min_length=1)
    canonical: CleanedArticle
    dominant_ticker: Optional[str] = None
    event_type: EventType = EventType.OTHER
    similarity_scores: List[Tuple[int, int, float]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def size(self) -> int:
        return len(self.events)

    @property
    def impact_labels(self) -> List[ImpactLabel]:
        """Union of member labels, first-seen order."""
        seen: List[ImpactLabel] = []
        for event in self.events:
            for label in event.impact_labels:
                if label not in seen:
                    seen.append(label)
        return seen

    @property
    def is_holdings_news(self) -> bool:
        return any(e.article.is_holdings_news for e in self.events)

    @property
    def is_low_information(self) -> bool:
        return all(e.article.is_low_information for e in self.events)

    @property
    def latest_published_at(self) -> datetime:
        return max(e.article.published_at for e in self.events)

    class Config:
        frozen = True


class ScoreBreakdown(BaseModel):
    """Weighted feature breakdown behind a cluster's total score."""
    holdings_relevance: float = 0.0     # weight 0.55
    impact_score: float = 0.0           # weight 0.20
    event_type_weight: float = 0.0      # weight 0.15
    recency: float = 0.0                # weight 0.10
    total: float = 0.0

    # Diagnostics only: not part of the total
    recency_bucket: float = 0.0
    source_quality: float = 0.0
    impact_magnitude: float = 0.0
    user_interest_match: float = 0.0


class UserEventScore(BaseModel):
    """Per-cluster, per-user score. Recomputed fresh each run."""
    cluster_id: UUID
    breakdown: ScoreBreakdown

    @property
    def total(self) -> float:
        return self.breakdown.total
