"""
Market context lookups: stock quotes and social buzz.

Both upstreams are quota constrained, so requests are serialized with
fixed delays instead of fanned out:
  - Alpha Vantage free tier: 5 requests/minute → QUOTE_REQUEST_DELAY (13s)
  - Reddit public search: BUZZ_SUBREDDIT_DELAY between subreddits,
    BUZZ_SYMBOL_DELAY between symbols

A 429, non-200 or transport error degrades that one symbol to an
unavailable quote / zero mentions. Nothing here raises.
"""

import asyncio
import logging
import re
from typing import Dict, List, Optional, Sequence

import httpx

from ..config import ALPHA_VANTAGE_URL, BUZZ_SUBREDDITS, REDDIT_SEARCH_URL, Settings, get_settings
from ..schemas import BuzzLevel, QuoteSentiment, SocialBuzz, StockQuote

logger = logging.getLogger(__name__)

REDDIT_USER_AGENT = "python:rabbit-news:v1.0"


def quote_sentiment(change_percent: float) -> QuoteSentiment:
    if change_percent >= 2:
        return QuoteSentiment.BULLISH
    if change_percent < -2:
        return QuoteSentiment.BEARISH
    if abs(change_percent) <= 0.5:
        return QuoteSentiment.STEADY
    return QuoteSentiment.NEUTRAL


def buzz_level(mentions: int) -> BuzzLevel:
    if mentions >= 50:
        return BuzzLevel.HOT
    if mentions >= 20:
        return BuzzLevel.RISING
    if mentions >= 5:
        return BuzzLevel.CALM
    return BuzzLevel.QUIET


def _parse_float(value, default: float = 0.0) -> float:
    try:
        return float(str(value).rstrip("%"))
    except (TypeError, ValueError):
        return default


class QuoteService:
    """Alpha Vantage GLOBAL_QUOTE lookups, one request at a time."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self._transport = transport

    async def get_quotes(self, symbols: Sequence[str]) -> Dict[str, StockQuote]:
        quotes: Dict[str, StockQuote] = {}
        if not self.settings.alpha_vantage_key:
            logger.warning("ALPHA_VANTAGE_KEY not set, quotes unavailable")
            return {s: StockQuote(symbol=s) for s in symbols}

        async with httpx.AsyncClient(timeout=self.settings.http_timeout, transport=self._transport) as client:
            for i, symbol in enumerate(symbols):
                if i > 0:
                    await asyncio.sleep(self.settings.quote_request_delay)
                quotes[symbol] = await self._get_quote(client, symbol)

        available = sum(1 for q in quotes.values() if q.available)
        logger.info(f"[QUOTES] {available}/{len(quotes)} quotes available")
        return quotes

    async def _get_quote(self, client: httpx.AsyncClient, symbol: str) -> StockQuote:
        params = {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self.settings.alpha_vantage_key}
        try:
            response = await client.get(ALPHA_VANTAGE_URL, params=params)
        except httpx.HTTPError as e:
            logger.warning(f"[FAIL] quote {symbol}: {e}")
            return StockQuote(symbol=symbol)
        if response.status_code == 429:
            logger.warning(f"[FAIL] quote {symbol}: rate limited (429)")
            return StockQuote(symbol=symbol)
        if response.status_code != 200:
            logger.warning(f"[FAIL] quote {symbol}: HTTP {response.status_code}")
            return StockQuote(symbol=symbol)

        try:
            data = response.json().get("Global Quote") or {}
        except ValueError:
            data = {}
        if "05. price" not in data:
            # Alpha Vantage reports quota exhaustion as a 200 with a "Note" body
            logger.warning(f"[FAIL] quote {symbol}: no quote in response")
            return StockQuote(symbol=symbol)

        change_percent = _parse_float(data.get("10. change percent"))
        return StockQuote(
            symbol=symbol,
            price=_parse_float(data["05. price"]),
            change=_parse_float(data.get("09. change")),
            change_percent=change_percent,
            sentiment=quote_sentiment(change_percent),
        )


class SocialBuzzService:
    """Weekly Reddit mention counts per symbol."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        subreddits: Optional[List[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.subreddits = subreddits or BUZZ_SUBREDDITS
        self._transport = transport

    async def get_buzz(self, symbols: Sequence[str]) -> Dict[str, SocialBuzz]:
        results: Dict[str, SocialBuzz] = {}
        headers = {"User-Agent": REDDIT_USER_AGENT}
        async with httpx.AsyncClient(
            timeout=self.settings.http_timeout, transport=self._transport, headers=headers,
        ) as client:
            for i, symbol in enumerate(symbols):
                if i > 0:
                    await asyncio.sleep(self.settings.buzz_symbol_delay)
                mentions = 0
                for j, subreddit in enumerate(self.subreddits):
                    if j > 0:
                        await asyncio.sleep(self.settings.buzz_subreddit_delay)
                    mentions += await self._count_mentions(client, subreddit, symbol)
                results[symbol] = SocialBuzz(symbol=symbol, mentions=mentions, buzz_level=buzz_level(mentions))

        logger.info("[BUZZ] " + ", ".join(f"{s}={b.mentions}" for s, b in results.items()))
        return results

    async def _count_mentions(self, client: httpx.AsyncClient, subreddit: str, symbol: str) -> int:
        params = {"q": symbol, "restrict_sr": 1, "limit": 100, "sort": "new", "t": "week"}
        try:
            response = await client.get(REDDIT_SEARCH_URL.format(subreddit=subreddit), params=params)
        except httpx.HTTPError as e:
            logger.warning(f"[FAIL] r/{subreddit} {symbol}: {e}")
            return 0
        if response.status_code == 429:
            logger.warning(f"[FAIL] r/{subreddit} {symbol}: rate limited (429)")
            return 0
        if response.status_code != 200:
            logger.warning(f"[FAIL] r/{subreddit} {symbol}: HTTP {response.status_code}")
            return 0

        try:
            posts = response.json().get("data", {}).get("children", [])
        except ValueError:
            return 0
        pattern = re.compile(rf"\$?\b{re.escape(symbol)}\b", re.IGNORECASE)
        count = 0
        for post in posts:
            data = post.get("data", {})
            count += len(pattern.findall(f"{data.get('title', '')} {data.get('selftext', '')}"))
        return count
