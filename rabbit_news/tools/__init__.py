# Tools module
from .llm_service import LLMService, TextCompleter
from .market_data import QuoteService, SocialBuzzService
from .news_source import NewsSource, NewsSourceClient

__all__ = [
    # LLM
    "LLMService",
    "TextCompleter",
    # News
    "NewsSource",
    "NewsSourceClient",
    # Market context
    "QuoteService",
    "SocialBuzzService",
]
