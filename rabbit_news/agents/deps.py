"""
Shared dependency container for a pipeline run.

Every stage receives its collaborators from here instead of reaching for
module-level singletons, so tests can inject fakes (a canned NewsSource,
a scripted TextCompleter) without patching.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..config import Settings, get_settings
from ..news.tickers import TickerExtractor
from ..tools.llm_service import LLMService, TextCompleter
from ..tools.market_data import QuoteService, SocialBuzzService
from ..tools.news_source import NewsSource, NewsSourceClient

logger = logging.getLogger(__name__)


@dataclass
class PipelineDeps:
    """Collaborators for one pipeline run."""

    settings: Settings
    news_source: NewsSource
    llm: TextCompleter
    ticker_extractor: TickerExtractor
    quote_service: Optional[QuoteService] = field(default=None, repr=False)
    buzz_service: Optional[SocialBuzzService] = field(default=None, repr=False)

    def __hash__(self):
        # LangGraph may hash the config payload; each run gets a fresh deps
        return id(self)

    @classmethod
    def create(cls, mock_mode: bool = False, settings: Optional[Settings] = None) -> PipelineDeps:
        """Build the production collaborator set (mock-aware)."""
        settings = settings or get_settings()
        effective_mock = mock_mode or settings.mock_mode
        if effective_mock:
            logger.info("Pipeline deps: MOCK mode")
        return cls(
            settings=settings,
            news_source=NewsSourceClient(settings=settings, mock_mode=effective_mock),
            llm=LLMService(settings=settings, mock_mode=effective_mock),
            ticker_extractor=TickerExtractor(extra_path=settings.ticker_gazetteer_path),
            quote_service=QuoteService(settings=settings),
            buzz_service=SocialBuzzService(settings=settings),
        )
