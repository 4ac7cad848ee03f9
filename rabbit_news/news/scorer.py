"""
Per-user cluster scoring.

    total = 0.55·holdings + 0.20·impact + 0.15·event_type + 0.10·recency

Holdings relevance (highest applicable):
    1.0   dominant ticker is held
    0.6   a held ticker appears among other member tickers
    0.3   cluster text / dominant ticker matches the sector of a held symbol
    0.15  ticker-less (macro) cluster
    0.0   ticker the user does not own

Recency decays exponentially with a configurable half-life and is clipped
to 0 past the horizon. Scoring is deterministic for a fixed clock.
"""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Sequence, Set

from ..config import Settings, get_settings
from ..schemas import EventCluster, Holding, ScoreBreakdown, UserEventScore
from ..shared.helpers import contains_any, keyword_in
from .event_detector import EVENT_BASE_SCORES
from .impact_labels import ImpactLabeler
from .tickers import SECTOR_KEYWORDS, TickerExtractor, get_ticker_extractor

logger = logging.getLogger(__name__)

WEIGHT_HOLDINGS = 0.55
WEIGHT_IMPACT = 0.20
WEIGHT_EVENT_TYPE = 0.15
WEIGHT_RECENCY = 0.10

RELEVANCE_HELD = 1.0
RELEVANCE_MEMBER_HELD = 0.6
RELEVANCE_SECTOR = 0.3
RELEVANCE_MACRO = 0.15

# Diagnostics: coarse recency buckets (hours, score)
RECENCY_BUCKETS = [(1, 1.0), (6, 0.8), (24, 0.6), (72, 0.4)]
RECENCY_BUCKET_FLOOR = 0.2

HIGH_IMPACT_KEYWORDS = [
    "billion", "record", "surge", "plunge", "crash", "soar", "bankruptcy",
    "layoffs", "acquisition", "merger", "recall", "investigation",
]
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def recency_score(age_hours: float, half_life_hours: float, horizon_hours: float) -> float:
    """exp(-ln2 · age / half_life), 0 past the horizon, 1 for future timestamps."""
    if age_hours <= 0:
        return 1.0
    if age_hours > horizon_hours:
        return 0.0
    return math.exp(-math.log(2) * age_hours / half_life_hours)


def recency_bucket(age_hours: float) -> float:
    for limit, score in RECENCY_BUCKETS:
        if age_hours < limit:
            return score
    return RECENCY_BUCKET_FLOOR


def impact_magnitude(text: str, body: str = "") -> float:
    """0.5 base + high-impact keywords + numbers + long body, capped at 1."""
    score = 0.5
    score += 0.1 * sum(1 for kw in HIGH_IMPACT_KEYWORDS if keyword_in(text, kw))
    score += min(0.2, 0.05 * len(_NUMBER_RE.findall(text)))
    if len(body) > 500:
        score += 0.1
    return min(1.0, score)


class Scorer:
    """EventCluster → UserEventScore for one user's holdings and interests."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        ticker_extractor: Optional[TickerExtractor] = None,
        labeler: Optional[ImpactLabeler] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.settings = settings or get_settings()
        self.extractor = ticker_extractor or get_ticker_extractor()
        self.labeler = labeler or ImpactLabeler()
        self.clock = clock

    def score(
        self,
        cluster: EventCluster,
        holdings: Sequence[Holding],
        interests: Iterable[str] = (),
        now: Optional[datetime] = None,
    ) -> UserEventScore:
        now = now or self.clock()
        held = {h.symbol for h in holdings}
        canonical = cluster.canonical
        text = canonical.text

        holdings_relevance = self.holdings_relevance(cluster, held)
        impact = self.labeler.impact_score(self.labeler.label_counts(text))
        event_weight = EVENT_BASE_SCORES[cluster.event_type]
        age_hours = (now - cluster.latest_published_at).total_seconds() / 3600
        recency = recency_score(
            age_hours, self.settings.recency_half_life_hours, self.settings.recency_horizon_hours
        )

        total = (
            WEIGHT_HOLDINGS * holdings_relevance
            + WEIGHT_IMPACT * impact
            + WEIGHT_EVENT_TYPE * event_weight
            + WEIGHT_RECENCY * recency
        )

        interests = [i for i in interests if i]
        interest_hits = sum(1 for i in interests if keyword_in(text, i))

        breakdown = ScoreBreakdown(
            holdings_relevance=holdings_relevance,
            impact_score=round(impact, 4),
            event_type_weight=event_weight,
            recency=round(recency, 4),
            total=round(total, 4),
            recency_bucket=recency_bucket(age_hours),
            source_quality=canonical.source_quality,
            impact_magnitude=impact_magnitude(text, canonical.clean_body),
            user_interest_match=interest_hits / len(interests) if interests else 0.0,
        )
        return UserEventScore(cluster_id=cluster.id, breakdown=breakdown)

    def score_all(
        self,
        clusters: List[EventCluster],
        holdings: Sequence[Holding],
        interests: Iterable[str] = (),
    ) -> List[UserEventScore]:
        now = self.clock()
        interests = list(interests)
        scores = [self.score(c, holdings, interests, now=now) for c in clusters]
        held = sum(1 for s in scores if s.breakdown.holdings_relevance >= RELEVANCE_MEMBER_HELD)
        logger.info(f"Scoring: {len(scores)} clusters ({held} tied to holdings)")
        return scores

    def holdings_relevance(self, cluster: EventCluster, held: Set[str]) -> float:
        ticker = cluster.dominant_ticker
        if ticker and ticker in held:
            return RELEVANCE_HELD

        member_tickers = {t for e in cluster.events for t in e.article.tickers}
        member_tickers.update(e.dominant_ticker for e in cluster.events if e.dominant_ticker)
        if member_tickers & held:
            return RELEVANCE_MEMBER_HELD

        if self._sector_match(cluster, ticker, held):
            return RELEVANCE_SECTOR

        if ticker is None:
            return RELEVANCE_MACRO
        return 0.0

    def _sector_match(self, cluster: EventCluster, ticker: Optional[str], held: Set[str]) -> bool:
        held_sectors = {self.extractor.sector_of(s) for s in held} - {None}
        if not held_sectors:
            return False
        if ticker and self.extractor.sector_of(ticker) in held_sectors:
            return True
        text = cluster.canonical.text
        return any(contains_any(text, SECTOR_KEYWORDS.get(sector, [])) for sector in held_sectors)

    @staticmethod
    def rank(scores: List[UserEventScore]) -> List[UserEventScore]:
        """Total desc; ties by holdings relevance, then impact."""
        return sorted(
            scores,
            key=lambda s: (-s.breakdown.total, -s.breakdown.holdings_relevance, -s.breakdown.impact_score),
        )
