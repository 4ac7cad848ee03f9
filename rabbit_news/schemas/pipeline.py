"""Pipeline run result and diagnostic snapshots."""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .events import ScoreBreakdown
from .feed import FeedEvent, FeedTheme


class FilteredItem(BaseModel):
    """An item dropped at some stage, with the reason."""
    stage: str                  # fetch | detection | clustering | scoring | selection
    item_type: str              # article | event | cluster
    title: str
    ticker: Optional[str] = None
    reason: str


class AcceptedItem(BaseModel):
    """An item that survived a stage, with the signal that kept it."""
    stage: str
    item_type: str
    title: str
    ticker: Optional[str] = None
    reason: str


class ClusterScoreDebug(BaseModel):
    cluster_id: str
    title: str
    ticker: Optional[str] = None
    event_type: str
    size: int
    breakdown: ScoreBreakdown


class PipelineDebugData(BaseModel):
    """Read-only snapshot of intermediate state, for diagnostic display."""
    raw_count: int = 0
    cleaned_count: int = 0
    event_count: int = 0
    cluster_count: int = 0
    scored_count: int = 0
    selected_count: int = 0
    theme_count: int = 0
    stage_seconds: Dict[str, float] = Field(default_factory=dict)
    filtered_items: List[FilteredItem] = Field(default_factory=list)
    accepted_items: List[AcceptedItem] = Field(default_factory=list)
    cluster_scores: List[ClusterScoreDebug] = Field(default_factory=list)

    def reject(self, stage: str, item_type: str, title: str, reason: str, ticker: Optional[str] = None):
        self.filtered_items.append(FilteredItem(
            stage=stage, item_type=item_type, title=title[:200], ticker=ticker, reason=reason,
        ))

    def accept(self, stage: str, item_type: str, title: str, reason: str, ticker: Optional[str] = None):
        self.accepted_items.append(AcceptedItem(
            stage=stage, item_type=item_type, title=title[:200], ticker=ticker, reason=reason,
        ))


class PipelineResult(BaseModel):
    """Outcome of one run_pipeline call."""
    run_id: str
    user_id: Optional[str] = None
    mode: str
    status: str = "success"     # success | cancelled
    themes: List[FeedTheme] = Field(default_factory=list)
    events: List[FeedEvent] = Field(default_factory=list)
    debug: PipelineDebugData = Field(default_factory=PipelineDebugData)
    errors: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_time_seconds: float = 0.0
