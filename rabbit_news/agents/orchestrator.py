"""
LangGraph Orchestrator: linear news pipeline for one user request.

Flow: fetch -> clean -> detect -> cluster -> score -> build_feed -> END

Each node owns one stage and applies that stage's keep/drop policy,
recording every decision in PipelineDebugData. A NoDataAvailableError
from the fetch node aborts the run and reaches the caller.
"""

import asyncio
import logging
import operator
import time
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional, Sequence, TypedDict

from langgraph.graph import END, START, StateGraph

from ..config import MODE_LIMITS
from ..news.cleaner import Cleaner
from ..news.clusterer import Clusterer
from ..news.event_detector import EventDetector
from ..news.feed_builder import FeedBuilder
from ..news.fetcher import Fetcher
from ..news.impact_labels import STRONG_LABELS
from ..news.scorer import Scorer
from ..schemas import (
    CleanedArticle,
    ClusterScoreDebug,
    DetectedEvent,
    EventCluster,
    EventImpact,
    EventMagnitude,
    EventType,
    FeedEvent,
    FeedTheme,
    Holding,
    PipelineDebugData,
    PipelineResult,
    RabbitMode,
    RawArticle,
    UserEventScore,
)
from .deps import PipelineDeps

logger = logging.getLogger(__name__)


# ── Graph State ──────────────────────────────────────────────────────────────

class GraphState(TypedDict):
    """LangGraph state shared across all stage nodes."""
    deps: Any                                       # PipelineDeps instance
    run_id: str
    holdings: List[Holding]
    interests: List[str]
    mode: RabbitMode
    limit: int
    raw_articles: List[RawArticle]
    cleaned: List[CleanedArticle]
    events: List[DetectedEvent]
    clusters: List[EventCluster]
    scores: List[UserEventScore]
    themes: List[FeedTheme]
    debug: PipelineDebugData
    errors: Annotated[List[str], operator.add]
    current_step: str


def _banner(title: str):
    logger.info("=" * 50)
    logger.info(title)
    logger.info("=" * 50)


def _held_focus(is_holdings_news: bool, mode: RabbitMode) -> bool:
    """Focus mode keeps holdings news that would otherwise be filtered."""
    return is_holdings_news and mode == RabbitMode.FOCUS


# ── Stage Nodes ──────────────────────────────────────────────────────────────

async def fetch_node(state: GraphState) -> dict:
    _banner("STEP 1: FETCH")
    deps: PipelineDeps = state["deps"]
    debug = state["debug"]
    t0 = time.perf_counter()

    fetcher = Fetcher(deps.news_source, settings=deps.settings, ticker_extractor=deps.ticker_extractor)
    raw = await fetcher.fetch_all(state["holdings"], state["limit"], debug=debug)

    debug.raw_count = len(raw)
    debug.stage_seconds["fetch"] = round(time.perf_counter() - t0, 3)
    return {"raw_articles": raw, "current_step": "fetch_complete"}


async def clean_node(state: GraphState) -> dict:
    _banner("STEP 2: CLEAN")
    deps: PipelineDeps = state["deps"]
    debug = state["debug"]
    t0 = time.perf_counter()

    cleaner = Cleaner(ticker_extractor=deps.ticker_extractor, watchlist=[h.symbol for h in state["holdings"]])
    cleaned = cleaner.clean_all(state["raw_articles"])

    debug.cleaned_count = len(cleaned)
    debug.stage_seconds["clean"] = round(time.perf_counter() - t0, 3)
    return {"cleaned": cleaned, "current_step": "clean_complete"}


async def detect_node(state: GraphState) -> dict:
    _banner("STEP 3: EVENT DETECTION")
    deps: PipelineDeps = state["deps"]
    debug = state["debug"]
    mode = state["mode"]
    t0 = time.perf_counter()

    detector = EventDetector(settings=deps.settings, ticker_extractor=deps.ticker_extractor, completer=deps.llm)
    detected = await detector.detect_all(state["cleaned"])

    kept: List[DetectedEvent] = []
    for event in detected:
        article = event.article
        ticker = event.dominant_ticker
        if event.event_type == EventType.OTHER and not _held_focus(article.is_holdings_news, mode):
            debug.reject("detection", "event", article.clean_title, "no classifiable event", ticker)
            continue
        if (
            event.event_type == EventType.ANALYST_NOTE
            and not article.is_holdings_news
            and not STRONG_LABELS.intersection(event.impact_labels)
        ):
            debug.reject("detection", "event", article.clean_title, "analyst note without strong impact", ticker)
            continue
        debug.accept("detection", "event", article.clean_title, f"{event.event_type.value} ({event.confidence:.2f})", ticker)
        kept.append(event)

    logger.info(f"Detection: kept {len(kept)} of {len(detected)} events")
    debug.event_count = len(kept)
    debug.stage_seconds["detect"] = round(time.perf_counter() - t0, 3)
    return {"events": kept, "current_step": "detect_complete"}


async def cluster_node(state: GraphState) -> dict:
    _banner("STEP 4: CLUSTERING")
    deps: PipelineDeps = state["deps"]
    debug = state["debug"]
    mode = state["mode"]
    t0 = time.perf_counter()

    clusters = Clusterer(settings=deps.settings).cluster(state["events"])

    kept: List[EventCluster] = []
    for cluster in clusters:
        title = cluster.canonical.clean_title
        if cluster.is_low_information and not _held_focus(cluster.is_holdings_news, mode):
            debug.reject("clustering", "cluster", title, "low information", cluster.dominant_ticker)
            continue
        debug.accept("clustering", "cluster", title, f"{cluster.size} source(s)", cluster.dominant_ticker)
        kept.append(cluster)

    debug.cluster_count = len(kept)
    debug.stage_seconds["cluster"] = round(time.perf_counter() - t0, 3)
    return {"clusters": kept, "current_step": "cluster_complete"}


async def score_node(state: GraphState) -> dict:
    _banner("STEP 5: SCORING")
    deps: PipelineDeps = state["deps"]
    debug = state["debug"]
    mode = state["mode"]
    t0 = time.perf_counter()

    clusters = state["clusters"]
    scorer = Scorer(settings=deps.settings, ticker_extractor=deps.ticker_extractor)
    scores = scorer.score_all(clusters, state["holdings"], state["interests"])
    by_id = {c.id: c for c in clusters}

    kept: List[UserEventScore] = []
    for score in scores:
        cluster = by_id[score.cluster_id]
        b = score.breakdown
        debug.cluster_scores.append(ClusterScoreDebug(
            cluster_id=str(cluster.id),
            title=cluster.canonical.clean_title[:200],
            ticker=cluster.dominant_ticker,
            event_type=cluster.event_type.value,
            size=cluster.size,
            breakdown=b,
        ))
        if mode == RabbitMode.FOCUS and (b.holdings_relevance <= 0 or b.total < deps.settings.focus_min_total_score):
            debug.reject(
                "scoring", "cluster", cluster.canonical.clean_title,
                f"focus mode: relevance {b.holdings_relevance:.2f}, total {b.total:.3f}", cluster.dominant_ticker,
            )
            continue
        kept.append(score)

    debug.scored_count = len(kept)
    debug.stage_seconds["score"] = round(time.perf_counter() - t0, 3)
    return {"scores": kept, "current_step": "score_complete"}


async def build_feed_node(state: GraphState) -> dict:
    _banner("STEP 6: FEED")
    deps: PipelineDeps = state["deps"]
    debug = state["debug"]
    t0 = time.perf_counter()

    builder = FeedBuilder(deps.llm, settings=deps.settings)
    themes = await builder.build_feed(state["clusters"], state["scores"], state["holdings"], state["mode"], debug=debug)

    debug.selected_count = min(len(state["scores"]), MODE_LIMITS[state["mode"].value])
    debug.theme_count = len(themes)
    debug.stage_seconds["build_feed"] = round(time.perf_counter() - t0, 3)
    errors = [] if not themes or themes[0].generated_by == "llm" else ["Theme grouping fell back to per-cluster themes"]
    return {"themes": themes, "errors": errors, "current_step": "feed_complete"}


# ── Graph Construction ───────────────────────────────────────────────────────

def create_pipeline_graph():
    """Build and compile the linear stage graph."""
    workflow = StateGraph(GraphState)

    workflow.add_node("fetch",      fetch_node)
    workflow.add_node("clean",      clean_node)
    workflow.add_node("detect",     detect_node)
    workflow.add_node("cluster",    cluster_node)
    workflow.add_node("score",      score_node)
    workflow.add_node("build_feed", build_feed_node)

    workflow.add_edge(START, "fetch")
    workflow.add_edge("fetch", "clean")
    workflow.add_edge("clean", "detect")
    workflow.add_edge("detect", "cluster")
    workflow.add_edge("cluster", "score")
    workflow.add_edge("score", "build_feed")
    workflow.add_edge("build_feed", END)

    return workflow.compile()


# ── Public Entry Point ───────────────────────────────────────────────────────

async def run_pipeline(
    holdings: Sequence[Holding],
    interests: Sequence[str] = (),
    mode: RabbitMode = RabbitMode.SMART,
    limit: Optional[int] = None,
    deps: Optional[PipelineDeps] = None,
    user_id: Optional[str] = None,
) -> PipelineResult:
    """Run fetch → feed for one user and return the ordered themes plus diagnostics.

    Raises:
        NoDataAvailableError: every source failed and the holdings search failed
    """
    started_at = datetime.now(timezone.utc)
    run_id = started_at.strftime("%Y%m%d_%H%M%S_%f")
    deps = deps or PipelineDeps.create()
    mode = RabbitMode(mode)
    limit = limit or deps.settings.default_fetch_limit

    logger.info("Starting Rabbit news pipeline")
    logger.info(f"Run ID: {run_id} | User: {user_id} | Mode: {mode.value} | "
                f"Holdings: {[h.symbol for h in holdings]} | Limit: {limit}")

    initial_state: GraphState = {
        "deps": deps,
        "run_id": run_id,
        "holdings": list(holdings),
        "interests": list(interests),
        "mode": mode,
        "limit": limit,
        "raw_articles": [],
        "cleaned": [],
        "events": [],
        "clusters": [],
        "scores": [],
        "themes": [],
        "debug": PipelineDebugData(),
        "errors": [],
        "current_step": "init",
    }

    graph = create_pipeline_graph()
    final_state: dict = dict(initial_state)
    async for snapshot in graph.astream(initial_state, stream_mode="values"):
        final_state = snapshot
        logger.debug(f"Pipeline step: {snapshot.get('current_step', '?')}")

    runtime = (datetime.now(timezone.utc) - started_at).total_seconds()
    themes = final_state.get("themes", [])
    debug: PipelineDebugData = final_state["debug"]

    _banner("PIPELINE COMPLETED")
    logger.info(f"Articles: {debug.raw_count} | Events: {debug.event_count} | Clusters: {debug.cluster_count} | "
                f"Themes: {len(themes)} | Runtime: {runtime:.1f}s")

    return PipelineResult(
        run_id=run_id,
        user_id=user_id,
        mode=mode.value,
        status="success",
        themes=themes,
        events=convert_themes_to_events(themes),
        debug=debug,
        errors=final_state.get("errors", []),
        started_at=started_at,
        run_time_seconds=runtime,
    )


# ── Display Conversion ───────────────────────────────────────────────────────

_DISPLAY_MAPPING = {
    EventType.EARNINGS: (EventImpact.POSITIVE, EventMagnitude.HIGH),
    EventType.GUIDANCE: (EventImpact.POSITIVE, EventMagnitude.HIGH),
    EventType.MERGER_ACQUISITION: (EventImpact.POSITIVE, EventMagnitude.HIGH),
    EventType.REGULATION: (EventImpact.MIXED, EventMagnitude.MEDIUM),
    EventType.LITIGATION: (EventImpact.MIXED, EventMagnitude.MEDIUM),
    EventType.PRODUCT_LAUNCH: (EventImpact.POSITIVE, EventMagnitude.MEDIUM),
    EventType.MACRO: (EventImpact.MIXED, EventMagnitude.MEDIUM),
}
_DEFAULT_DISPLAY = (EventImpact.MIXED, EventMagnitude.LOW)


def convert_themes_to_events(themes: List[FeedTheme]) -> List[FeedEvent]:
    """One display event per theme, led by the theme's first cluster."""
    events = []
    for theme in themes:
        lead = theme.clusters[0]
        impact, magnitude = _DISPLAY_MAPPING.get(lead.event_type, _DEFAULT_DISPLAY)

        sources: List[str] = []
        for cluster in theme.clusters:
            for event in cluster.events:
                if event.article.source_name not in sources:
                    sources.append(event.article.source_name)
        summary = ", ".join(sources[:3])
        if len(sources) > 3:
            summary += f" +{len(sources) - 3} more"

        events.append(FeedEvent(
            theme_id=theme.id,
            ticker=lead.dominant_ticker,
            title=theme.hook,
            summary=f"{theme.context_explanation} {theme.why_it_matters}".strip(),
            event_type=lead.event_type,
            impact=impact,
            magnitude=magnitude,
            source_count=sum(c.size for c in theme.clusters),
            sources_summary=summary,
        ))
    return events


# ── Market Context ───────────────────────────────────────────────────────────

async def fetch_market_context(holdings: Sequence[Holding], deps: Optional[PipelineDeps] = None) -> Dict[str, Dict]:
    """Quotes and social buzz for the held symbols. Each lookup degrades per symbol."""
    deps = deps or PipelineDeps.create()
    symbols = [h.symbol for h in holdings]
    if not symbols:
        return {"quotes": {}, "buzz": {}}

    async def _empty() -> Dict:
        return {}

    quotes, buzz = await asyncio.gather(
        deps.quote_service.get_quotes(symbols) if deps.quote_service else _empty(),
        deps.buzz_service.get_buzz(symbols) if deps.buzz_service else _empty(),
    )
    return {"quotes": quotes, "buzz": buzz}
