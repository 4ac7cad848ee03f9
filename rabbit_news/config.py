"""
Configuration management for the Rabbit news pipeline.

Settings come from environment variables (or a local .env file); source
registries and mode limits are module-level constants.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # News API keys (supplemental sources + holdings search)
    newsapi_key: str = Field(default="", alias="NEWSAPI_KEY")
    newsdata_api_key: str = Field(default="", alias="NEWSDATA_API_KEY")

    # Market data (rate-limited third parties)
    alpha_vantage_key: str = Field(default="", alias="ALPHA_VANTAGE_KEY")
    quote_request_delay: float = Field(default=13.0, alias="QUOTE_REQUEST_DELAY")  # free tier: 5 req/min
    buzz_subreddit_delay: float = Field(default=0.5, alias="BUZZ_SUBREDDIT_DELAY")
    buzz_symbol_delay: float = Field(default=2.0, alias="BUZZ_SYMBOL_DELAY")

    # LLM (pydantic-ai model string, e.g. "openai:gpt-4.1-mini")
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    llm_model: str = Field(default="openai:gpt-4.1-mini", alias="LLM_MODEL")
    llm_temperature: float = Field(default=0.7, alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(default=2000, alias="LLM_MAX_TOKENS")
    llm_timeout: float = Field(default=30.0, alias="LLM_TIMEOUT")
    use_llm_classification: bool = Field(default=False, alias="USE_LLM_CLASSIFICATION")

    # ── Fetcher ──
    fetch_concurrency: int = Field(default=6, alias="FETCH_CONCURRENCY")
    source_timeout: float = Field(default=15.0, alias="SOURCE_TIMEOUT")
    http_timeout: float = Field(default=12.0, alias="HTTP_TIMEOUT")
    freshness_hours: float = Field(default=48.0, alias="FRESHNESS_HOURS")
    holdings_search_page_size: int = Field(default=10, alias="HOLDINGS_SEARCH_PAGE_SIZE")
    default_fetch_limit: int = Field(default=50, alias="DEFAULT_FETCH_LIMIT")

    # ── Ticker extraction ──
    # Optional JSON file {"SYMBOL": {"name": ..., "sector": ...}} merged over the built-in gazetteer
    ticker_gazetteer_path: Optional[str] = Field(default=None, alias="TICKER_GAZETTEER_PATH")

    # ── Event detection ──
    detection_batch_size: int = Field(default=10, alias="DETECTION_BATCH_SIZE")

    # ── Clustering ──
    # Jaccard over title+description word sets.
    # 0.5 = same-ticker articles sharing half their vocabulary (syndicated rewrites)
    # 0.7 = required across different tickers (near-verbatim copies only)
    cluster_similarity_threshold: float = Field(default=0.5, alias="CLUSTER_SIMILARITY_THRESHOLD")
    cluster_cross_ticker_threshold: float = Field(default=0.7, alias="CLUSTER_CROSS_TICKER_THRESHOLD")
    cluster_window_hours: float = Field(default=48.0, alias="CLUSTER_WINDOW_HOURS")
    # Above this many events, MinHash LSH proposes candidate pairs instead of all-pairs
    cluster_lsh_min_events: int = Field(default=200, alias="CLUSTER_LSH_MIN_EVENTS")
    cluster_num_perm: int = Field(default=128, alias="CLUSTER_NUM_PERM")

    # ── Scoring ──
    # Recency: exp(-ln2 * age / half_life), 0 past the horizon
    # 12h half-life: 1h→0.94, 12h→0.5, 24h→0.25, 72h→0.016
    recency_half_life_hours: float = Field(default=12.0, alias="RECENCY_HALF_LIFE_HOURS")
    recency_horizon_hours: float = Field(default=168.0, alias="RECENCY_HORIZON_HOURS")
    focus_min_total_score: float = Field(default=0.5, alias="FOCUS_MIN_TOTAL_SCORE")

    mock_mode: bool = Field(default=False, alias="MOCK_MODE")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Items surviving the FeedBuilder's strict selection, per RabbitMode value
MODE_LIMITS = {
    "Beginner Mode": 6,
    "Smart Mode": 5,
    "Focus Mode": 4,
}

LAYER_WIRE = 1
LAYER_AGGREGATOR = 2
LAYER_SUPPLEMENTAL = 3


NEWS_SOURCES = {
    # ─────────────────────────────────────────────────────────────────────────
    # LAYER 1: Wire services (mandatory, always fetched)
    # ─────────────────────────────────────────────────────────────────────────
    "bloomberg": {
        "id": "bloomberg",
        "name": "Bloomberg",
        "source_type": "rss",
        "layer": LAYER_WIRE,
        "credibility_score": 1.0,
        "rss_url": "https://feeds.bloomberg.com/markets/news.rss",
        "language": "en",
    },
    "reuters": {
        "id": "reuters",
        "name": "Reuters",
        "source_type": "rss",
        "layer": LAYER_WIRE,
        "credibility_score": 1.0,
        # Reuters retired its public RSS; Google News site search is the stable route
        "rss_url": "https://news.google.com/rss/search?q=site:reuters.com+business+finance&hl=en-US&gl=US&ceid=US:en",
        "language": "en",
    },
    "ap_news": {
        "id": "ap_news",
        "name": "AP News",
        "source_type": "rss",
        "layer": LAYER_WIRE,
        "credibility_score": 1.0,
        "rss_url": "https://feeds.apnews.com/rss/business",
        "language": "en",
    },
    "pr_newswire": {
        "id": "pr_newswire",
        "name": "PR Newswire",
        "source_type": "rss",
        "layer": LAYER_WIRE,
        "credibility_score": 1.0,
        "rss_url": "https://www.prnewswire.com/rss/financial-services-latest-news/financial-services-latest-news-list.rss",
        "language": "en",
    },
    "financial_times": {
        "id": "financial_times",
        "name": "Financial Times",
        "source_type": "rss",
        "layer": LAYER_WIRE,
        "credibility_score": 1.0,
        "rss_url": "https://www.ft.com/?format=rss",
        "language": "en",
    },
    # ─────────────────────────────────────────────────────────────────────────
    # LAYER 2: Financial aggregators (only when layer 1 leaves room)
    # ─────────────────────────────────────────────────────────────────────────
    "yahoo_finance": {
        "id": "yahoo_finance",
        "name": "Yahoo Finance",
        "source_type": "rss",
        "layer": LAYER_AGGREGATOR,
        "credibility_score": 0.85,
        "rss_url": "https://feeds.finance.yahoo.com/rss/2.0/headline",
        "language": "en",
    },
    "marketwatch": {
        "id": "marketwatch",
        "name": "MarketWatch",
        "source_type": "rss",
        "layer": LAYER_AGGREGATOR,
        "credibility_score": 0.80,
        "rss_url": "https://www.marketwatch.com/rss/topstories",
        "language": "en",
    },
    "cnbc": {
        "id": "cnbc",
        "name": "CNBC",
        "source_type": "rss",
        "layer": LAYER_AGGREGATOR,
        "credibility_score": 0.90,
        "rss_url": "https://www.cnbc.com/id/100003114/device/rss/rss.html",
        "language": "en",
    },
    "investing_com": {
        "id": "investing_com",
        "name": "Investing.com",
        "source_type": "rss",
        "layer": LAYER_AGGREGATOR,
        "credibility_score": 0.75,
        "rss_url": "https://www.investing.com/rss/news.rss",
        "language": "en",
    },
    "thestreet": {
        "id": "thestreet",
        "name": "TheStreet",
        "source_type": "rss",
        "layer": LAYER_AGGREGATOR,
        "credibility_score": 0.80,
        "rss_url": "https://www.thestreet.com/.rss/full-coverage",
        "language": "en",
    },
    # ─────────────────────────────────────────────────────────────────────────
    # LAYER 3: Supplemental APIs (fallback when still short; key required)
    # ─────────────────────────────────────────────────────────────────────────
    "newsapi_org": {
        "id": "newsapi_org",
        "name": "NewsAPI",
        "source_type": "api",
        "layer": LAYER_SUPPLEMENTAL,
        "credibility_score": 0.60,
        "api_endpoint": "https://newsapi.org/v2/top-headlines",
        "language": "en",
    },
    "newsdata_io": {
        "id": "newsdata_io",
        "name": "NewsData.io",
        "source_type": "api",
        "layer": LAYER_SUPPLEMENTAL,
        "credibility_score": 0.60,
        "api_endpoint": "https://newsdata.io/api/1/news",
        "language": "en",
    },
}

# Quick access lists
WIRE_SOURCES = [src for src in NEWS_SOURCES.values() if src["layer"] == LAYER_WIRE]
AGGREGATOR_SOURCES = [src for src in NEWS_SOURCES.values() if src["layer"] == LAYER_AGGREGATOR]
SUPPLEMENTAL_SOURCES = [src for src in NEWS_SOURCES.values() if src["layer"] == LAYER_SUPPLEMENTAL]

NEWSAPI_EVERYTHING_URL = "https://newsapi.org/v2/everything"
ALPHA_VANTAGE_URL = "https://www.alphavantage.co/query"
REDDIT_SEARCH_URL = "https://www.reddit.com/r/{subreddit}/search.json"
BUZZ_SUBREDDITS = ["wallstreetbets", "stocks"]
