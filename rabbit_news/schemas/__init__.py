"""
Schemas package: all data models for the Rabbit news pipeline.

Models are organized by stage in submodules:
  - base.py: Enums (RabbitMode, EventType, ImpactLabel, ...)
  - news.py: Holding, RawArticle, CleanedArticle
  - events.py: DetectedEvent, EventCluster, ScoreBreakdown, UserEventScore
  - feed.py: FeedTheme, ThemeGroupingLLM, FeedEvent
  - pipeline.py: PipelineResult and debug snapshots
  - market.py: StockQuote, SocialBuzz
"""

# base.py: enums
from rabbit_news.schemas.base import (
    RabbitMode, EventType, ImpactLabel, SourceCategory,
    EventImpact, EventMagnitude, BuzzLevel, QuoteSentiment,
)

# news.py: article models
from rabbit_news.schemas.news import Holding, RawArticle, CleanedArticle

# events.py: classification, clustering, scoring
from rabbit_news.schemas.events import (
    DetectedEvent, EventCluster, ScoreBreakdown, UserEventScore,
)

# feed.py: output models
from rabbit_news.schemas.feed import (
    FeedTheme, ThemeGroupingLLM, THEME_RESPONSE_ADAPTER, FeedEvent,
)

# pipeline.py: run result
from rabbit_news.schemas.pipeline import (
    FilteredItem, AcceptedItem, ClusterScoreDebug, PipelineDebugData, PipelineResult,
)

# market.py: market context
from rabbit_news.schemas.market import StockQuote, SocialBuzz

__all__ = [
    # base
    "RabbitMode", "EventType", "ImpactLabel", "SourceCategory",
    "EventImpact", "EventMagnitude", "BuzzLevel", "QuoteSentiment",
    # news
    "Holding", "RawArticle", "CleanedArticle",
    # events
    "DetectedEvent", "EventCluster", "ScoreBreakdown", "UserEventScore",
    # feed
    "FeedTheme", "ThemeGroupingLLM", "THEME_RESPONSE_ADAPTER", "FeedEvent",
    # pipeline
    "FilteredItem", "AcceptedItem", "ClusterScoreDebug", "PipelineDebugData", "PipelineResult",
    # market
    "StockQuote", "SocialBuzz",
]
