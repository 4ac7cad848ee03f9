"""
Article cleaning and normalization.

clean() is pure and total: it never raises and never drops an article.
Unparseable timestamps fall back to "now", unknown authors stay None,
and is_low_information is only a flag for later stages.
"""

import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Iterable, List, Optional

from ..config import NEWS_SOURCES
from ..schemas import CleanedArticle, RawArticle, SourceCategory
from ..shared.helpers import (
    collapse_whitespace,
    contains_any,
    keyword_in,
    remove_phrases,
    strip_html_tags,
)
from .keywords import (
    DESCRIPTION_BOILERPLATE,
    EVENT_VERBS,
    LAYER_QUALITY,
    MACRO_KEYWORDS,
    OUTLET_QUALITY,
    PAGE_BOILERPLATE,
    REGULATION_KEYWORDS,
)
from .tickers import TickerExtractor, get_ticker_extractor

logger = logging.getLogger(__name__)

# Legacy patterns tried after ISO-8601
_DATE_FORMATS = [
    "%a, %d %b %Y %H:%M:%S %z",
    "%a, %d %b %Y %H:%M:%S %Z",
    "%a, %d %b %Y %H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S",
]

_AUTHOR_PATTERNS = [
    re.compile(r'"author"\s*:\s*"([^"]{2,80})"'),
    re.compile(r'\b[Bb]y\s+([A-Z][a-z]+(?:\s+[A-Z]\.)?\s+[A-Z][a-z]+)'),
    re.compile(r'Author:\s*([A-Z][a-z]+\s+[A-Z][a-z]+)'),
]

_SOURCE_SUFFIX_RE = re.compile(r'\s+[-|–]\s+([^-|–]{2,40})$')
_KNOWN_OUTLETS = frozenset(OUTLET_QUALITY) | frozenset(s["name"].lower() for s in NEWS_SOURCES.values())


def parse_timestamp(raw: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Normalize a source timestamp to an aware UTC datetime.

    Tries ISO-8601 (with and without fractional seconds), then RFC 822,
    then the legacy RSS/API patterns. Anything unparseable becomes `now`.
    """
    now = now or datetime.now(timezone.utc)
    if not raw or not raw.strip():
        return now
    value = raw.strip()

    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        # RFC 822 first: it resolves named zones ("EST", "PDT") strptime cannot
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            parsed = None
    if parsed is None:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        logger.debug(f"Unparseable timestamp '{value[:40]}', using now")
        return now

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def source_category(source_name: str) -> SourceCategory:
    name = (source_name or "").lower()
    if "reuters" in name or "bloomberg" in name or keyword_in(name, "ap") or "associated press" in name:
        return SourceCategory.WIRE
    if "finance" in name or "market" in name or "financial" in name:
        return SourceCategory.FINANCIAL
    if "news" in name:
        return SourceCategory.NEWS
    return SourceCategory.OTHER


def source_quality(source_name: str, layer: int) -> float:
    """Layer baseline, raised (never lowered) for named high-trust outlets."""
    quality = LAYER_QUALITY.get(layer, 0.5)
    name = (source_name or "").lower()
    for outlet, score in OUTLET_QUALITY.items():
        if outlet in name:
            quality = max(quality, score)
    return quality


def is_low_information(text: str) -> bool:
    """No digit, no event verb, no macro/regulation keyword."""
    if any(ch.isdigit() for ch in text):
        return False
    if contains_any(text, EVENT_VERBS):
        return False
    if contains_any(text, MACRO_KEYWORDS) or contains_any(text, REGULATION_KEYWORDS):
        return False
    return True


def extract_author(*texts: Optional[str]) -> Optional[str]:
    for text in texts:
        if not text:
            continue
        for pattern in _AUTHOR_PATTERNS:
            m = pattern.search(text)
            if m:
                return m.group(1).strip()
    return None


class Cleaner:
    """RawArticle → CleanedArticle."""

    def __init__(
        self,
        ticker_extractor: Optional[TickerExtractor] = None,
        watchlist: Iterable[str] = (),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.extractor = ticker_extractor or get_ticker_extractor()
        # Holdings symbols count as known tickers even if the gazetteer lacks them
        self.watchlist = [s.upper() for s in watchlist]
        self.clock = clock

    def clean_all(self, articles: List[RawArticle]) -> List[CleanedArticle]:
        cleaned = [self.clean(a) for a in articles]
        low_info = sum(1 for c in cleaned if c.is_low_information)
        logger.info(f"Cleaning: {len(cleaned)} articles ({low_info} flagged low-information)")
        return cleaned

    def clean(self, raw: RawArticle) -> CleanedArticle:
        try:
            return self._clean(raw)
        except Exception as e:
            # Total by contract: degrade to minimally-processed fields
            logger.warning(f"Cleaner fallback for '{raw.title[:60]}': {e}")
            return CleanedArticle(
                raw_article_id=raw.id,
                url=raw.url,
                source_name=raw.source_name,
                source_layer=raw.source_layer,
                clean_title=collapse_whitespace(raw.title),
                published_at=self.clock(),
                tickers=list(raw.raw_tickers),
                source_quality=source_quality(raw.source_name, raw.source_layer),
                is_holdings_news=raw.is_holdings_news,
            )

    def _clean(self, raw: RawArticle) -> CleanedArticle:
        title = self.clean_title(raw.title, raw.source_name)
        description = remove_phrases(strip_html_tags(raw.description or ""), DESCRIPTION_BOILERPLATE)
        body = remove_phrases(strip_html_tags(raw.body_html or ""), PAGE_BOILERPLATE + DESCRIPTION_BOILERPLATE)
        if not body:
            body = description

        combined = f"{title} {description}"
        tickers = self.extractor.extract(
            f"{combined} {body[:1000]}",
            candidates=raw.raw_tickers,
            extra_symbols=self.watchlist,
        )

        return CleanedArticle(
            raw_article_id=raw.id,
            url=raw.url.strip(),
            source_name=raw.source_name,
            source_layer=raw.source_layer,
            clean_title=title,
            clean_description=description,
            clean_body=body,
            published_at=parse_timestamp(raw.published_at_raw, now=self.clock()),
            tickers=tickers,
            source_quality=source_quality(raw.source_name, raw.source_layer),
            is_low_information=is_low_information(combined),
            source_category=source_category(raw.source_name),
            is_holdings_news=raw.is_holdings_news,
            author=extract_author(raw.body_html, raw.description),
            language="en",
        )

    @staticmethod
    def clean_title(title: str, source_name: str = "") -> str:
        """Decode entities, strip tags, collapse whitespace, drop a trailing ' - Outlet' suffix.

        The suffix is only dropped when it names the article's own source or
        a known outlet; any other trailing clause is part of the headline.
        """
        text = strip_html_tags(title)
        m = _SOURCE_SUFFIX_RE.search(text)
        if m and len(text) - len(m.group(0)) >= 15:
            suffix = m.group(1).strip().lower()
            if suffix == source_name.strip().lower() or suffix in _KNOWN_OUTLETS:
                text = text[:m.start()]
        return text.strip()
