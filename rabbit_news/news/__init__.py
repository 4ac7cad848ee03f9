"""
News ingestion and structuring stages.

Modules:
- fetcher: holdings-first multi-layer acquisition with URL dedup
- cleaner: HTML/entity stripping, timestamps, tickers, quality
- event_detector: keyword rules (optional LLM) → typed events
- clusterer: union-find grouping of same-event coverage
- scorer: per-user relevance/impact/recency scoring
- feed_builder: strict selection + narrative theme grouping
"""

from rabbit_news.news.cleaner import Cleaner
from rabbit_news.news.clusterer import Clusterer
from rabbit_news.news.event_detector import EventDetector
from rabbit_news.news.feed_builder import FeedBuilder
from rabbit_news.news.fetcher import Fetcher
from rabbit_news.news.scorer import Scorer
from rabbit_news.news.tickers import TickerExtractor
