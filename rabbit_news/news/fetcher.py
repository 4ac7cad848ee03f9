"""
Multi-layer news fetcher with holdings-first priority.

FETCH ORDER (each step is one concurrent task group):
  0. HOLDINGS:  one news search per held ticker (always first, layer 1)
  1. WIRE:      mandatory wire feeds (Bloomberg, Reuters, AP, ...)
  2. AGGREGATE: financial aggregators, only while still short of `limit`
  3. FALLBACK:  supplemental APIs, only while still short of `limit`

CONCURRENCY:
  Tasks never touch shared state. Each returns its own SourceResult and a
  single-threaded merge (after the group completes) dedups by normalized
  URL, so priority is decided at merge time, not by which request
  returns first.

FAILURE:
  A source failing (HTTP error, timeout, malformed feed) is logged and
  counts as zero articles. NoDataAvailableError is raised only when no
  feed answered and the holdings search failed too.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, List, Optional, Set, Tuple

from ..config import AGGREGATOR_SOURCES, SUPPLEMENTAL_SOURCES, WIRE_SOURCES, Settings, get_settings
from ..errors import NoDataAvailableError
from ..schemas import Holding, PipelineDebugData, RawArticle
from ..shared.helpers import contains_any, keyword_in, strip_html_tags
from ..tools.news_source import NewsSource
from .cleaner import parse_timestamp
from .keywords import (
    GENERIC_STORY_PATTERNS,
    HOLDINGS_DENY_PATTERNS,
    HOLDINGS_EVENT_KEYWORDS,
    MACRO_KEYWORDS,
    REGULATION_KEYWORDS,
)
from .tickers import TickerExtractor, get_ticker_extractor

logger = logging.getLogger(__name__)


@dataclass
class SourceResult:
    """What one fetch task produced. Built locally inside the task."""
    source: str
    articles: List[RawArticle] = field(default_factory=list)
    rejected: List[Tuple[str, str]] = field(default_factory=list)  # (title, reason)
    ok: bool = True
    error: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════════
# Hard filters (pure)
# ══════════════════════════════════════════════════════════════════════════════

def holdings_reject_reason(article: RawArticle, ticker: str, company_name: Optional[str] = None) -> Optional[str]:
    """Why a holdings-search hit should be dropped, or None to keep it."""
    title = article.title.lower()
    for pattern in HOLDINGS_DENY_PATTERNS:
        if pattern in title:
            return f"low-value pattern '{pattern}'"
    if contains_any(title, HOLDINGS_EVENT_KEYWORDS):
        return None
    if keyword_in(title, ticker):
        return None
    if company_name and keyword_in(title, company_name):
        return None
    return "no event keyword and ticker not in title"


def top_story_reject_reason(
    article: RawArticle,
    tickers: Iterable[str],
    now: datetime,
    freshness_hours: float = 48.0,
) -> Optional[str]:
    """Why a feed article should be dropped, or None to keep it."""
    title = article.title.lower()
    for pattern in GENERIC_STORY_PATTERNS:
        if pattern.startswith(" ") or " " in pattern:
            if pattern in title:
                return f"generic pattern '{pattern.strip()}'"
        elif keyword_in(title, pattern):
            return f"generic pattern '{pattern}'"

    text = f"{article.title} {strip_html_tags(article.description or '')}"
    has_macro_or_reg = contains_any(text, MACRO_KEYWORDS) or contains_any(text, REGULATION_KEYWORDS)

    published = parse_timestamp(article.published_at_raw, now=now)
    if now - published > timedelta(hours=freshness_hours) and not has_macro_or_reg:
        return f"older than {freshness_hours:.0f}h"
    if not list(tickers) and not has_macro_or_reg:
        return "no ticker and no macro/regulation keyword"
    return None


# ══════════════════════════════════════════════════════════════════════════════
# Fetcher
# ══════════════════════════════════════════════════════════════════════════════

class Fetcher:
    """Concurrent multi-source acquisition with holdings-first merge."""

    def __init__(
        self,
        news_source: NewsSource,
        settings: Optional[Settings] = None,
        ticker_extractor: Optional[TickerExtractor] = None,
        wire_sources: Optional[List[dict]] = None,
        aggregator_sources: Optional[List[dict]] = None,
        supplemental_sources: Optional[List[dict]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.news_source = news_source
        self.settings = settings or get_settings()
        self.extractor = ticker_extractor or get_ticker_extractor()
        self.wire_sources = WIRE_SOURCES if wire_sources is None else wire_sources
        self.aggregator_sources = AGGREGATOR_SOURCES if aggregator_sources is None else aggregator_sources
        self.supplemental_sources = SUPPLEMENTAL_SOURCES if supplemental_sources is None else supplemental_sources
        self.clock = clock

    async def fetch_all(
        self,
        holdings: List[Holding],
        limit: int,
        debug: Optional[PipelineDebugData] = None,
    ) -> List[RawArticle]:
        """
        Fetch, filter and merge articles from every layer.

        Returns at most `limit` articles, deduplicated by normalized URL,
        ordered holdings → layer 1 → layer 2 → layer 3.

        Raises:
            NoDataAvailableError: no source answered and holdings search failed
        """
        symbols = [h.symbol for h in holdings]
        merged: List[RawArticle] = []
        seen: Set[str] = set()
        sources_ok = 0
        sources_failed = 0
        holdings_ok = False

        # ── Step 0: holdings search (highest priority) ──
        if holdings:
            if self.news_source.can_search():
                results = await self._run_group(
                    [self._search_ticker(h) for h in holdings],
                    labels=[f"search:{h.symbol}" for h in holdings],
                )
                holdings_ok = any(r.ok for r in results)
                added = self._merge(results, seen, merged, debug)
                logger.info(f"[HOLDINGS] {added} articles for {len(holdings)} tickers")
            else:
                logger.warning("[HOLDINGS] News search not configured, skipping holdings lookup")

        # ── Step 1: wire feeds (always) ──
        layers = [
            ("WIRE", self.wire_sources, lambda s: self._fetch_feed(s, limit, symbols), True),
            ("AGGREGATOR", self.aggregator_sources, lambda s: self._fetch_feed(s, limit, symbols), False),
            ("SUPPLEMENTAL", self.supplemental_sources,
             lambda s: self._fetch_supplemental(s, max(1, limit // 2), symbols), False),
        ]
        for name, sources, make_task, mandatory in layers:
            if not mandatory and len(merged) >= limit:
                logger.info(f"[{name}] Skipped: {len(merged)} >= limit {limit}")
                continue
            usable = [s for s in sources if self.news_source.is_configured(s)]
            if not usable:
                continue
            results = await self._run_group([make_task(s) for s in usable], labels=[s["name"] for s in usable])
            sources_ok += sum(1 for r in results if r.ok)
            sources_failed += sum(1 for r in results if not r.ok)
            added = self._merge(results, seen, merged, debug)
            logger.info(f"[{name}] +{added} articles ({len(merged)} total)")

        if sources_ok == 0 and not holdings_ok:
            logger.error(f"[FETCH] No data: {sources_failed} sources failed, holdings search failed")
            raise NoDataAvailableError(failed_sources=sources_failed, holdings_failed=True)

        if len(merged) > limit:
            for article in merged[limit:]:
                if debug is not None:
                    debug.reject("fetch", "article", article.title, f"over fetch limit {limit}")
            merged = merged[:limit]

        logger.info(f"[FETCH] {len(merged)} unique articles (limit {limit})")
        return merged

    # ── Task group plumbing ───────────────────────────────────────────

    async def _run_group(self, tasks: List[Awaitable[SourceResult]], labels: List[str]) -> List[SourceResult]:
        """Run one fan-out group with a concurrency bound and per-task timeout."""
        semaphore = asyncio.Semaphore(self.settings.fetch_concurrency)
        timeout = self.settings.source_timeout

        async def _limited(task: Awaitable[SourceResult], label: str) -> SourceResult:
            async with semaphore:
                try:
                    return await asyncio.wait_for(task, timeout=timeout)
                except asyncio.TimeoutError:
                    logger.warning(f"[TIMEOUT] {label}: fetch timeout ({timeout:.0f}s), skipping")
                    return SourceResult(source=label, ok=False, error="timeout")

        results = await asyncio.gather(
            *[_limited(t, label) for t, label in zip(tasks, labels)],
            return_exceptions=True,
        )
        out: List[SourceResult] = []
        for label, result in zip(labels, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(f"[FAIL] {label}: {result}")
                out.append(SourceResult(source=label, ok=False, error=str(result)))
            else:
                out.append(result)
        return out

    def _merge(
        self,
        results: List[SourceResult],
        seen: Set[str],
        merged: List[RawArticle],
        debug: Optional[PipelineDebugData],
    ) -> int:
        """Single-writer merge: append unseen URLs in task order."""
        added = 0
        for result in results:
            for title, reason in result.rejected:
                if debug is not None:
                    debug.reject("fetch", "article", title, f"{result.source}: {reason}")
            for article in result.articles:
                key = article.normalized_url()
                if not key or key in seen:
                    if debug is not None:
                        debug.reject("fetch", "article", article.title, "duplicate URL")
                    continue
                seen.add(key)
                merged.append(article)
                added += 1
        return added

    # ── Per-source tasks ──────────────────────────────────────────────

    async def _search_ticker(self, holding: Holding) -> SourceResult:
        ticker = holding.symbol
        label = f"search:{ticker}"
        try:
            found = await self.news_source.search(ticker, self.settings.holdings_search_page_size)
        except Exception as e:
            logger.warning(f"[FAIL] {label}: {e}")
            return SourceResult(source=label, ok=False, error=str(e))

        company = holding.name or self.extractor.company_name(ticker)
        result = SourceResult(source=label)
        for article in found:
            reason = holdings_reject_reason(article, ticker, company)
            if reason:
                result.rejected.append((article.title, reason))
                continue
            result.articles.append(article.model_copy(update={
                "source_layer": 1,
                "is_holdings_news": True,
                "source_tag": article.source_tag or "HoldingsSearch",
                "raw_tickers": [ticker] + [t for t in article.raw_tickers if t != ticker],
            }))
        logger.info(f"[OK] {label}: {len(result.articles)} kept of {len(found)}")
        return result

    async def _fetch_feed(self, source: dict, limit: int, symbols: List[str]) -> SourceResult:
        try:
            found = await self.news_source.fetch_feed(source, limit)
        except Exception as e:
            logger.warning(f"[FAIL] {source['name']}: {e}")
            return SourceResult(source=source["name"], ok=False, error=str(e))
        return self._filter_top_stories(source["name"], found, symbols)

    async def _fetch_supplemental(self, source: dict, limit: int, symbols: List[str]) -> SourceResult:
        try:
            found = await self.news_source.fetch_supplemental(source, limit)
        except Exception as e:
            logger.warning(f"[FAIL] {source['name']}: {e}")
            return SourceResult(source=source["name"], ok=False, error=str(e))
        return self._filter_top_stories(source["name"], found, symbols)

    def _filter_top_stories(self, name: str, found: List[RawArticle], symbols: List[str]) -> SourceResult:
        now = self.clock()
        result = SourceResult(source=name)
        for article in found:
            text = f"{article.title} {strip_html_tags(article.description or '')}"
            tickers = self.extractor.extract(text, candidates=article.raw_tickers, extra_symbols=symbols)
            reason = top_story_reject_reason(article, tickers, now, self.settings.freshness_hours)
            if reason:
                result.rejected.append((article.title, reason))
                continue
            result.articles.append(article.model_copy(update={"raw_tickers": tickers}))
        logger.info(f"[OK] {name}: {len(result.articles)} kept of {len(found)}")
        return result
