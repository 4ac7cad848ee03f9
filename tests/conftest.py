"""Shared fixtures and fakes. No test touches the network."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from uuid import uuid4

import pytest

from rabbit_news.agents.deps import PipelineDeps
from rabbit_news.config import Settings
from rabbit_news.news.tickers import TickerExtractor
from rabbit_news.schemas import (
    CleanedArticle,
    DetectedEvent,
    EventCluster,
    EventType,
    RawArticle,
)

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_raw(**kwargs) -> RawArticle:
    defaults = {
        "source_name": "Reuters",
        "source_layer": 1,
        "title": "Apple reports record quarterly earnings",
        "description": "Apple beat estimates on strong iPhone sales.",
        "published_at_raw": (NOW - timedelta(hours=1)).isoformat(),
        "url": "https://example.com/a",
    }
    defaults.update(kwargs)
    return RawArticle(**defaults)


def make_cleaned(**kwargs) -> CleanedArticle:
    defaults = {
        "raw_article_id": uuid4(),
        "url": "https://example.com/a",
        "source_name": "Reuters",
        "source_layer": 1,
        "clean_title": "Apple reports record quarterly earnings",
        "clean_description": "Apple beat estimates on strong iPhone sales.",
        "published_at": NOW - timedelta(hours=1),
        "tickers": ["AAPL"],
        "source_quality": 1.0,
    }
    defaults.update(kwargs)
    return CleanedArticle(**defaults)


def make_event(event_type: EventType = EventType.EARNINGS, dominant_ticker: Optional[str] = "AAPL", **kwargs) -> DetectedEvent:
    return DetectedEvent(
        article=make_cleaned(**kwargs),
        event_type=event_type,
        dominant_ticker=dominant_ticker,
        base_score=0.5,
    )


def make_cluster(event_type: EventType = EventType.EARNINGS, dominant_ticker: Optional[str] = "AAPL", **kwargs) -> EventCluster:
    event = make_event(event_type, dominant_ticker, **kwargs)
    return EventCluster(events=[event], canonical=event.article, dominant_ticker=dominant_ticker, event_type=event_type)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeNewsSource:
    """NewsSource with canned per-source results. Values may be exceptions to raise."""

    def __init__(
        self,
        search: Optional[Dict[str, object]] = None,
        feeds: Optional[Dict[str, object]] = None,
        supplemental: Optional[Dict[str, object]] = None,
        searchable: bool = True,
    ):
        self.search_results = search or {}
        self.feed_results = feeds or {}
        self.supplemental_results = supplemental or {}
        self.searchable = searchable
        self.calls: List[str] = []

    def can_search(self) -> bool:
        return self.searchable

    def is_configured(self, source) -> bool:
        return True

    @staticmethod
    def _resolve(value):
        if isinstance(value, BaseException):
            raise value
        return list(value or [])

    async def search(self, ticker, limit):
        self.calls.append(f"search:{ticker}")
        return self._resolve(self.search_results.get(ticker))

    async def fetch_feed(self, source, limit):
        self.calls.append(f"feed:{source['name']}")
        return self._resolve(self.feed_results.get(source["name"]))

    async def fetch_supplemental(self, source, limit):
        self.calls.append(f"supplemental:{source['name']}")
        return self._resolve(self.supplemental_results.get(source["name"]))


class FakeLLM:
    """TextCompleter returning a fixed reply (or raising it)."""

    def __init__(self, reply):
        self.reply = reply
        self.prompts: List[str] = []

    async def complete(self, prompt: str, system_instructions: str = "") -> str:
        self.prompts.append(prompt)
        if isinstance(self.reply, BaseException):
            raise self.reply
        return self.reply


def source(name: str, layer: int = 1) -> dict:
    return {"id": name.lower().replace(" ", "_"), "name": name, "layer": layer, "source_type": "rss", "rss_url": f"https://{name.lower()}.test/rss"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        newsapi_key="",
        mock_mode=False,
        quote_request_delay=0,
        buzz_subreddit_delay=0,
        buzz_symbol_delay=0,
        llm_timeout=5,
        source_timeout=5,
    )


@pytest.fixture
def extractor() -> TickerExtractor:
    return TickerExtractor()


@pytest.fixture
def make_deps(settings, extractor):
    def _make(news_source, llm) -> PipelineDeps:
        return PipelineDeps(settings=settings, news_source=news_source, llm=llm, ticker_extractor=extractor)
    return _make
