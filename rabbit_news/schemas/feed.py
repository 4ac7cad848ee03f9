"""
Feed output models.

FeedTheme is the pipeline's final output unit. ThemeGroupingLLM is the
strict contract for the language model's theme-grouping response: any
payload that does not validate is rejected whole.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, TypeAdapter

from .base import EventImpact, EventMagnitude, EventType
from .events import EventCluster


class FeedTheme(BaseModel):
    """Narrative grouping of one or more clusters with a unified explanation."""
    id: UUID = Field(default_factory=uuid4)
    theme_name: str
    clusters: List[EventCluster] = Field(min_length=1)
    hook: str
    context_explanation: str
    why_it_matters: str
    generated_by: str = "llm"           # "llm" | "fallback"

    @property
    def cluster_ids(self) -> List[UUID]:
        return [c.id for c in self.clusters]

    class Config:
        frozen = True


class ThemeGroupingLLM(BaseModel):
    """One element of the JSON array the model must return."""
    theme_name: str = Field(alias="themeName", min_length=1)
    event_indices: List[int] = Field(alias="eventIndices", min_length=1)
    hook: str = Field(min_length=1)
    context_explanation: str = Field(alias="contextExplanation", min_length=1)
    why_it_matters: str = Field(alias="whyItMatters", min_length=1)

    class Config:
        extra = "forbid"
        strict = True


THEME_RESPONSE_ADAPTER = TypeAdapter(List[ThemeGroupingLLM])


class FeedEvent(BaseModel):
    """Display model handed to the presentation layer (one per theme)."""
    id: UUID = Field(default_factory=uuid4)
    theme_id: UUID
    ticker: Optional[str] = None
    title: str
    summary: str
    event_type: EventType
    impact: EventImpact = EventImpact.MIXED
    magnitude: EventMagnitude = EventMagnitude.LOW
    source_count: int = 1
    sources_summary: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
