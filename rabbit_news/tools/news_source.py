"""
News source client: RSS feeds, per-ticker news search, supplemental APIs.

Every method either returns RawArticle objects or raises (httpx errors,
feed parse errors). Catching is the Fetcher's job, per source, so that a
failure can be told apart from an empty-but-healthy source.
"""

import html
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol

import feedparser
import httpx
from langdetect import DetectorFactory, LangDetectException, detect

from ..config import NEWSAPI_EVERYTHING_URL, Settings, get_settings
from ..schemas import RawArticle

DetectorFactory.seed = 0  # Deterministic language detection

logger = logging.getLogger(__name__)

HOLDINGS_SOURCE_NAME = "NewsAPI (Holdings Search)"
HOLDINGS_SOURCE_TAG = "HoldingsSearch"


class NewsSource(Protocol):
    """Collaborator interface the Fetcher depends on."""

    def can_search(self) -> bool: ...

    def is_configured(self, source: Dict[str, Any]) -> bool: ...

    async def search(self, ticker: str, limit: int) -> List[RawArticle]: ...

    async def fetch_feed(self, source: Dict[str, Any], limit: int) -> List[RawArticle]: ...

    async def fetch_supplemental(self, source: Dict[str, Any], limit: int) -> List[RawArticle]: ...


class FeedParseError(ValueError):
    """Feed body could not be parsed into entries."""


class NewsSourceClient:
    """
    httpx + feedparser implementation of NewsSource.

    `transport` lets tests swap the network for an httpx.MockTransport.
    """

    # Browser-like User-Agent to avoid being blocked by some RSS feeds
    _USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        mock_mode: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.mock_mode = mock_mode or self.settings.mock_mode
        self._transport = transport

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.settings.http_timeout,
            transport=self._transport,
            follow_redirects=True,
        )

    @staticmethod
    def _is_target_language(text: str, target_lang: str = "en") -> bool:
        """Check if text is in the target language using langdetect.

        Returns True if detected language matches target, or if text is too
        short for reliable detection (< 20 chars).
        """
        if not text or len(text.strip()) < 20:
            return True  # Too short to reliably detect
        try:
            return detect(text[:500]) == target_lang
        except LangDetectException:
            return True  # Ambiguous, let through

    # ── Availability ──────────────────────────────────────────────────

    def can_search(self) -> bool:
        return self.mock_mode or bool(self.settings.newsapi_key)

    def is_configured(self, source: Dict[str, Any]) -> bool:
        """RSS sources are always usable; API sources need their key."""
        if self.mock_mode or source.get("source_type", "rss") == "rss":
            return True
        if source["id"] == "newsapi_org":
            return bool(self.settings.newsapi_key)
        if source["id"] == "newsdata_io":
            return bool(self.settings.newsdata_api_key)
        return False

    # ── Holdings search ───────────────────────────────────────────────

    async def search(self, ticker: str, limit: int) -> List[RawArticle]:
        """Latest English articles mentioning `ticker` (NewsAPI /everything)."""
        if self.mock_mode:
            return self._get_mock_search(ticker)
        if not self.settings.newsapi_key:
            raise RuntimeError("NEWSAPI_KEY not set, holdings search unavailable")

        params = {
            "q": ticker,
            "language": "en",
            "sortBy": "publishedAt",
            "pageSize": min(limit, self.settings.holdings_search_page_size),
        }
        headers = {"X-Api-Key": self.settings.newsapi_key}
        async with self._client() as client:
            response = await client.get(NEWSAPI_EVERYTHING_URL, params=params, headers=headers)
            response.raise_for_status()
            data = response.json()

        articles = []
        for item in data.get("articles", []):
            if not item.get("title") or not item.get("url"):
                continue
            articles.append(RawArticle(
                source_name=HOLDINGS_SOURCE_NAME,
                source_layer=1,
                title=item["title"],
                description=item.get("description"),
                body_html=item.get("content"),
                published_at_raw=item.get("publishedAt") or "",
                url=item["url"],
                raw_tickers=[ticker.upper()],
                is_holdings_news=True,
                source_tag=HOLDINGS_SOURCE_TAG,
            ))
        return articles

    # ── RSS feeds ─────────────────────────────────────────────────────

    async def fetch_feed(self, source: Dict[str, Any], limit: int) -> List[RawArticle]:
        """Fetch and parse one RSS feed."""
        if self.mock_mode:
            return [a for a in self._get_mock_articles() if a.source_name == source["name"]][:limit]

        rss_url = source.get("rss_url")
        if not rss_url:
            return []

        headers = {"User-Agent": self._USER_AGENT}
        async with self._client() as client:
            response = await client.get(rss_url, headers=headers)
            response.raise_for_status()

        feed = feedparser.parse(response.text)
        if feed.bozo and not feed.entries:
            raise FeedParseError(f"malformed feed: {getattr(feed, 'bozo_exception', 'unknown error')}")

        articles = []
        for entry in feed.entries[:limit]:
            article = self._parse_rss_entry(entry, source)
            if article:
                articles.append(article)
        return articles

    def _parse_rss_entry(self, entry: Dict, source: Dict) -> Optional[RawArticle]:
        """Parse RSS entry to RawArticle. Text stays raw; the Cleaner normalizes it."""
        title = html.unescape(entry.get("title", "") or "").strip()
        link = (entry.get("link", "") or "").strip()
        if not title or not link:
            return None

        description = entry.get("summary", "") or entry.get("description", "")
        body_html = None
        content = entry.get("content")
        if content:
            body_html = content[0].get("value") if isinstance(content[0], dict) else None

        # Language filter: reject non-English articles
        target_lang = source.get("language", "en")
        check_text = f"{title} {re.sub(r'<[^>]+>', ' ', description)[:200]}"
        if not self._is_target_language(check_text, target_lang):
            logger.debug(f"Filtered non-{target_lang} article: {title[:60]}...")
            return None

        return RawArticle(
            source_name=source["name"],
            source_layer=source["layer"],
            title=title,
            description=description or None,
            body_html=body_html,
            published_at_raw=entry.get("published", "") or entry.get("updated", "") or "",
            url=link,
        )

    # ── Supplemental APIs (layer 3) ───────────────────────────────────

    async def fetch_supplemental(self, source: Dict[str, Any], limit: int) -> List[RawArticle]:
        if self.mock_mode:
            return [a for a in self._get_mock_articles() if a.source_layer == 3][:limit]
        if source["id"] == "newsapi_org":
            return await self._fetch_newsapi_headlines(source, limit)
        if source["id"] == "newsdata_io":
            return await self._fetch_newsdata(source, limit)
        return []

    async def _fetch_newsapi_headlines(self, source: Dict, limit: int) -> List[RawArticle]:
        """NewsAPI.org US business top headlines."""
        if not self.settings.newsapi_key:
            logger.debug("NEWSAPI_KEY not set, skipping")
            return []

        params = {"category": "business", "country": "us", "pageSize": max(1, min(limit, 100))}
        headers = {"X-Api-Key": self.settings.newsapi_key}
        async with self._client(timeout=30.0) as client:
            response = await client.get(source["api_endpoint"], params=params, headers=headers)
            response.raise_for_status()
            data = response.json()

        articles = []
        for item in data.get("articles", [])[:limit]:
            if not item.get("title") or not item.get("url"):
                continue
            articles.append(RawArticle(
                source_name=(item.get("source") or {}).get("name") or source["name"],
                source_layer=source["layer"],
                title=item["title"],
                description=item.get("description"),
                body_html=item.get("content"),
                published_at_raw=item.get("publishedAt") or "",
                url=item["url"],
            ))
        return articles

    async def _fetch_newsdata(self, source: Dict, limit: int) -> List[RawArticle]:
        """NewsData.io US business news (200 free calls/day)."""
        if not self.settings.newsdata_api_key:
            logger.debug("NEWSDATA_API_KEY not set, skipping")
            return []

        params = {
            "apikey": self.settings.newsdata_api_key,
            "country": "us",
            "category": "business",
            "language": "en",
        }
        async with self._client(timeout=30.0) as client:
            response = await client.get(source["api_endpoint"], params=params)
            response.raise_for_status()
            data = response.json()

        articles = []
        for item in data.get("results", [])[:limit]:
            if not item.get("title") or not item.get("link"):
                continue
            articles.append(RawArticle(
                source_name=item.get("source_id") or source["name"],
                source_layer=source["layer"],
                title=item["title"],
                description=item.get("description"),
                body_html=item.get("content"),
                published_at_raw=item.get("pubDate") or "",
                url=item["link"],
            ))
        return articles

    # ── Mock mode ─────────────────────────────────────────────────────

    def _get_mock_search(self, ticker: str) -> List[RawArticle]:
        now = datetime.now(timezone.utc)
        return [RawArticle(
            source_name=HOLDINGS_SOURCE_NAME,
            source_layer=1,
            title=f"{ticker.upper()} reports quarterly earnings above expectations",
            description=f"{ticker.upper()} beats analyst estimates with revenue up 12% year over year.",
            published_at_raw=(now - timedelta(hours=2)).isoformat(),
            url=f"https://example.com/mock/{ticker.lower()}-earnings",
            raw_tickers=[ticker.upper()],
            is_holdings_news=True,
            source_tag=HOLDINGS_SOURCE_TAG,
        )]

    def _get_mock_articles(self) -> List[RawArticle]:
        """Canned articles covering each layer, for offline runs."""
        now = datetime.now(timezone.utc)
        mock_news = [
            ("Bloomberg", 1, "Fed holds interest rates steady as inflation cools to 2.9%",
             "The Federal Reserve kept its benchmark rate unchanged, citing slowing inflation.", 1),
            ("Reuters", 1, "Microsoft (NASDAQ: MSFT) announces $10 billion AI data center expansion",
             "Microsoft said it will spend $10 billion on new data centers across the US.", 3),
            ("AP News", 1, "SEC approves new disclosure rules for climate risk",
             "The SEC voted 3-2 to approve rules requiring companies to report climate risks.", 5),
            ("Financial Times", 1, "Nvidia shares surge 8% to all-time high after record data center sales",
             "NVDA reported record revenue driven by demand for AI chips.", 2),
            ("Yahoo Finance", 2, "Tesla recalls 120,000 vehicles over seat belt warning",
             "TSLA is recalling vehicles after regulators flagged a seat belt chime defect.", 6),
            ("CNBC", 2, "Amazon acquires robotics startup in $1.2 billion deal",
             "AMZN announced the acquisition to expand warehouse automation.", 8),
            ("NewsAPI", 3, "Oil prices slip as GDP data points to slower growth",
             "Crude fell 2% after weaker-than-expected GDP figures.", 10),
        ]
        articles = []
        for i, (source, layer, title, summary, hours) in enumerate(mock_news):
            articles.append(RawArticle(
                source_name=source,
                source_layer=layer,
                title=title,
                description=summary,
                published_at_raw=(now - timedelta(hours=hours)).isoformat(),
                url=f"https://example.com/mock/{i}",
            ))
        logger.info(f"[NEWS] Returning {len(articles)} mock articles")
        return articles
