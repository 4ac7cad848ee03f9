"""
Feed assembly: strict selection, then narrative theme grouping.

STAGE 1 (selection):
  Rank scored clusters (total, then holdings relevance, then impact) and
  keep the first MODE_LIMITS[mode]. Hard cap, never padded.

STAGE 2 (theming):
  The language model groups the selected clusters into at most
  clamp(count // 2, 3, 4) themes. Its reply must be a bare JSON array
  matching ThemeGroupingLLM exactly; anything else is rejected whole.
  Each cluster belongs to at most one theme (first claim wins).

FALLBACK:
  Any model failure (error, timeout, invalid payload, no usable theme)
  yields one deterministic theme per selected cluster. build_feed never
  raises.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from ..config import MODE_LIMITS, Settings, get_settings
from ..errors import ThemeGroupingError
from ..schemas import (
    THEME_RESPONSE_ADAPTER,
    EventCluster,
    FeedTheme,
    Holding,
    PipelineDebugData,
    RabbitMode,
    ThemeGroupingLLM,
    UserEventScore,
)
from ..shared.helpers import truncate_text
from ..tools.llm_service import TextCompleter
from .scorer import Scorer

logger = logging.getLogger(__name__)

FALLBACK_THEME_NAME = "Market Update"
FALLBACK_WHY = "This event may be relevant to your portfolio."

THEME_SYSTEM_PROMPT = """You are Rabbit, a financial news editor writing for retail investors.
You receive a short list of market events and the reader's holdings. Group related
events into a few narrative themes and explain each one plainly, without jargon.

Respond with a JSON array only. No markdown, no code fences, no commentary.
Each element must have exactly these keys:
  "themeName":          short title (max 6 words)
  "eventIndices":       list of event numbers from the input that belong to the theme
  "hook":               one punchy sentence
  "contextExplanation": two or three sentences of background
  "whyItMatters":       one sentence tying the theme to the reader's holdings
Every event may appear in at most one theme."""


def max_themes_for(count: int) -> int:
    """Theme budget: half the selected clusters, clamped to [3, 4]."""
    return max(3, min(4, count // 2))


class FeedBuilder:
    """Selected clusters → ordered FeedTheme list."""

    def __init__(self, completer: TextCompleter, settings: Optional[Settings] = None):
        self.completer = completer
        self.settings = settings or get_settings()

    async def build_feed(
        self,
        clusters: List[EventCluster],
        scores: List[UserEventScore],
        holdings: Sequence[Holding],
        mode: RabbitMode,
        debug: Optional[PipelineDebugData] = None,
    ) -> List[FeedTheme]:
        selected = self.select(clusters, scores, mode, debug)
        if not selected:
            logger.info("Feed: nothing selected, no themes")
            return []

        try:
            themes = await self.group_with_llm(selected, holdings, debug)
        except Exception as e:
            # Any grouping failure, provider errors included, degrades to one theme per cluster
            logger.warning(f"Theme grouping failed ({type(e).__name__}: {str(e)[:120]}), using fallback")
            themes = self.fallback_themes(selected, holdings)

        logger.info(f"Feed: {len(selected)} clusters -> {len(themes)} themes ({themes[0].generated_by})")
        return themes

    # ── Stage 1 ───────────────────────────────────────────────────────

    def select(
        self,
        clusters: List[EventCluster],
        scores: List[UserEventScore],
        mode: RabbitMode,
        debug: Optional[PipelineDebugData] = None,
    ) -> List[EventCluster]:
        """Top MODE_LIMITS[mode] clusters by rank. Unscored clusters are not eligible."""
        limit = MODE_LIMITS[RabbitMode(mode).value]
        by_id: Dict[UUID, EventCluster] = {c.id: c for c in clusters}
        ranked = [s for s in Scorer.rank(scores) if s.cluster_id in by_id]

        selected = [by_id[s.cluster_id] for s in ranked[:limit]]
        for s in ranked[limit:]:
            if debug is not None:
                cluster = by_id[s.cluster_id]
                debug.reject(
                    "selection", "cluster", cluster.canonical.clean_title,
                    f"below mode cutoff ({limit}), score {s.total:.3f}", cluster.dominant_ticker,
                )
        logger.info(f"Selection: {len(selected)} of {len(ranked)} clusters ({RabbitMode(mode).value}, limit {limit})")
        return selected

    # ── Stage 2 ───────────────────────────────────────────────────────

    def build_prompt(self, selected: List[EventCluster], holdings: Sequence[Holding]) -> str:
        max_themes = max_themes_for(len(selected))
        holdings_line = ", ".join(
            f"{h.symbol} ({h.name})" if h.name else h.symbol for h in holdings
        ) or "none"

        lines = [f"Reader holdings: {holdings_line}", "", "Events:"]
        for i, cluster in enumerate(selected):
            article = cluster.canonical
            ticker = cluster.dominant_ticker or "MACRO"
            lines.append(f"[{i}] {ticker} | {cluster.event_type.value} | {article.clean_title}")
            if article.clean_description:
                lines.append(f"    {truncate_text(article.clean_description, 300)}")
        lines.append("")
        lines.append(
            f"Group these {len(selected)} events into at most {max_themes} themes. "
            f"Use event numbers 0-{len(selected) - 1} in eventIndices. "
            f"Return a JSON array of objects with keys themeName, eventIndices, hook, "
            f"contextExplanation, whyItMatters."
        )
        return "\n".join(lines)

    async def group_with_llm(
        self,
        selected: List[EventCluster],
        holdings: Sequence[Holding],
        debug: Optional[PipelineDebugData] = None,
    ) -> List[FeedTheme]:
        """
        Ask the model for themes and assemble them.

        Raises:
            ThemeGroupingError: response validated but no theme kept any cluster
            ValidationError: response is not a bare JSON array of theme objects
            asyncio.TimeoutError: no response within LLM_TIMEOUT
        """
        response = await asyncio.wait_for(
            self.completer.complete(self.build_prompt(selected, holdings), THEME_SYSTEM_PROMPT),
            timeout=self.settings.llm_timeout,
        )
        groupings = THEME_RESPONSE_ADAPTER.validate_json(response)
        themes, claimed = self.assemble(groupings, selected)
        if not themes:
            raise ThemeGroupingError("model returned no usable themes")

        for i, cluster in enumerate(selected):
            if i not in claimed:
                logger.info(f"Theme grouping left cluster {i} unassigned: {cluster.canonical.clean_title[:60]}")
                if debug is not None:
                    debug.reject(
                        "theming", "cluster", cluster.canonical.clean_title,
                        "not assigned to any theme", cluster.dominant_ticker,
                    )
        return themes

    @staticmethod
    def assemble(
        groupings: List[ThemeGroupingLLM],
        selected: List[EventCluster],
    ) -> Tuple[List[FeedTheme], Set[int]]:
        """Validated groupings → themes. Drops bad/claimed indices, empty themes, and themes past the budget."""
        max_themes = max_themes_for(len(selected))
        claimed: Set[int] = set()
        themes: List[FeedTheme] = []
        for grouping in groupings:
            if len(themes) >= max_themes:
                logger.debug(f"Dropping theme '{grouping.theme_name}': over budget {max_themes}")
                break
            indices = []
            for idx in grouping.event_indices:
                if 0 <= idx < len(selected) and idx not in claimed:
                    claimed.add(idx)
                    indices.append(idx)
            if not indices:
                logger.debug(f"Skipping theme '{grouping.theme_name}': no unclaimed valid indices")
                continue
            themes.append(FeedTheme(
                theme_name=grouping.theme_name,
                clusters=[selected[i] for i in indices],
                hook=grouping.hook,
                context_explanation=grouping.context_explanation,
                why_it_matters=grouping.why_it_matters,
                generated_by="llm",
            ))
        return themes, claimed

    # ── Fallback ──────────────────────────────────────────────────────

    @staticmethod
    def fallback_themes(selected: List[EventCluster], holdings: Sequence[Holding]) -> List[FeedTheme]:
        """One theme per cluster, built only from cluster data. Deterministic."""
        held = {h.symbol: h for h in holdings}
        themes = []
        for cluster in selected:
            article = cluster.canonical
            themes.append(FeedTheme(
                theme_name=cluster.dominant_ticker or FALLBACK_THEME_NAME,
                clusters=[cluster],
                hook=article.clean_title,
                context_explanation=article.clean_description or article.clean_title,
                why_it_matters=_why_it_matters(cluster, held),
                generated_by="fallback",
            ))
        return themes


def _why_it_matters(cluster: EventCluster, held: Dict[str, Holding]) -> str:
    ticker = cluster.dominant_ticker
    event = cluster.event_type.value.replace("_", " ")
    if ticker and ticker in held:
        return f"You hold {ticker}, and this {event} news could move your position."
    member_held = sorted({t for e in cluster.events for t in e.article.tickers} & set(held))
    if member_held:
        return f"This {event} story also involves {', '.join(member_held)}, which you hold."
    return FALLBACK_WHY
