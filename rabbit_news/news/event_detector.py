"""
Rule-based event detection with optional LLM classification.

HOW IT WORKS:
  1. Ordered keyword rules assign an event type + confidence. The first
     rule that fires wins, so specific signals (earnings, M&A) are checked
     before generic ones (product-launch verbs like "announces").
  2. ImpactLabeler tags the article with qualitative impact labels.
  3. Base importance comes from a fixed per-type table.
  4. Dominant ticker: most-mentioned ticker in title+description, ties
     go to the first-mentioned one. Holdings-search hits keep the
     searched ticker. Ticker-less macro events get None.

With USE_LLM_CLASSIFICATION the model picks the type label instead; any
failure or unknown label falls back to the rules.
"""

import asyncio
import logging
from collections import Counter
from typing import List, Optional, Tuple

from ..config import Settings, get_settings
from ..schemas import CleanedArticle, DetectedEvent, EventType
from ..shared.helpers import keyword_in
from ..tools.llm_service import TextCompleter
from .impact_labels import ImpactLabeler
from .tickers import TickerExtractor, get_ticker_extractor

logger = logging.getLogger(__name__)

# Base importance per event type (also the scorer's event-type weight)
EVENT_BASE_SCORES = {
    EventType.EARNINGS: 1.0,
    EventType.GUIDANCE: 0.95,
    EventType.REGULATION: 0.9,
    EventType.MERGER_ACQUISITION: 0.85,
    EventType.PRODUCT_LAUNCH: 0.8,
    EventType.MACRO: 0.7,
    EventType.LITIGATION: 0.65,
    EventType.ANALYST_NOTE: 0.45,
    EventType.SOCIAL_SENTIMENT: 0.35,
    EventType.RUMOR: 0.25,
    EventType.OTHER: 0.1,
}

# Ordered: first match wins
EVENT_RULES: List[Tuple[EventType, float, List[str]]] = [
    (EventType.EARNINGS, 0.9, ["earnings", "quarterly results", "q1", "q2", "q3", "q4"]),
    (EventType.GUIDANCE, 0.85, ["guidance", "forecast", "outlook", "expects"]),
    (EventType.MERGER_ACQUISITION, 0.85, ["merger", "acquisition", "acquires", "acquire", "buys", "deal", "takeover"]),
    (EventType.REGULATION, 0.8, ["regulation", "regulatory", "regulators", "sec", "fda", "government"]),
    (EventType.LITIGATION, 0.8, ["lawsuit", "sues", "sued", "legal", "settlement"]),
    (EventType.PRODUCT_LAUNCH, 0.8, ["launches", "launch", "announces", "unveils", "introduces"]),
    (EventType.ANALYST_NOTE, 0.75, ["analyst", "analysts", "upgrade", "downgrade", "price target"]),
    (EventType.MACRO, 0.8, ["fed", "federal reserve", "inflation", "gdp", "unemployment", "interest rate", "interest rates"]),
    (EventType.SOCIAL_SENTIMENT, 0.7, ["reddit", "social media", "viral", "trending"]),
    (EventType.RUMOR, 0.6, ["rumor", "rumored", "reportedly", "sources say", "unconfirmed"]),
]
FALLBACK_CONFIDENCE = 0.5

CLASSIFY_SYSTEM_PROMPT = (
    "You classify financial news headlines. Reply with exactly one label from this list "
    "and nothing else: " + ", ".join(e.value for e in EventType) + "."
)


def classify_by_rules(text: str) -> Tuple[EventType, float]:
    for event_type, confidence, keywords in EVENT_RULES:
        if any(keyword_in(text, kw) for kw in keywords):
            return event_type, confidence
    return EventType.OTHER, FALLBACK_CONFIDENCE


def llm_confidence(article: CleanedArticle) -> float:
    confidence = 0.7
    if len(article.clean_body) > 200:
        confidence += 0.1
    if article.tickers:
        confidence += 0.1
    if article.source_quality > 0.8:
        confidence += 0.1
    return min(1.0, confidence)


class EventDetector:
    """CleanedArticle → DetectedEvent."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        labeler: Optional[ImpactLabeler] = None,
        ticker_extractor: Optional[TickerExtractor] = None,
        completer: Optional[TextCompleter] = None,
    ):
        self.settings = settings or get_settings()
        self.labeler = labeler or ImpactLabeler()
        self.extractor = ticker_extractor or get_ticker_extractor()
        # Only consulted when USE_LLM_CLASSIFICATION is on
        self.completer = completer if self.settings.use_llm_classification else None

    def detect(self, article: CleanedArticle) -> DetectedEvent:
        event_type, confidence = classify_by_rules(article.text)
        return self._build(article, event_type, confidence, "rules")

    async def detect_with_llm(self, article: CleanedArticle) -> DetectedEvent:
        """LLM picks the type; rules on any failure or unknown label."""
        if self.completer is None:
            return self.detect(article)
        prompt = f"Headline: {article.clean_title}\nSummary: {article.clean_description[:400]}\nLabel:"
        try:
            response = await asyncio.wait_for(
                self.completer.complete(prompt, CLASSIFY_SYSTEM_PROMPT),
                timeout=self.settings.llm_timeout,
            )
            event_type = EventType(response.strip().strip('."\'').lower())
        except asyncio.TimeoutError:
            logger.debug(f"LLM classification timeout, using rules: {article.clean_title[:60]}")
            return self.detect(article)
        except ValueError:
            logger.debug(f"LLM returned unknown label, using rules: {article.clean_title[:60]}")
            return self.detect(article)
        except Exception as e:
            logger.debug(f"LLM classification failed ({e}), using rules")
            return self.detect(article)
        return self._build(article, event_type, llm_confidence(article), "llm")

    async def detect_all(self, articles: List[CleanedArticle]) -> List[DetectedEvent]:
        """Detect in fixed-size batches; LLM calls within a batch run concurrently."""
        batch_size = max(1, self.settings.detection_batch_size)
        events: List[DetectedEvent] = []
        for start in range(0, len(articles), batch_size):
            batch = articles[start:start + batch_size]
            if self.completer is not None:
                events.extend(await asyncio.gather(*[self.detect_with_llm(a) for a in batch]))
            else:
                events.extend(self.detect(a) for a in batch)

        distribution = Counter(e.event_type.value for e in events)
        dist_str = ", ".join(f"{k}={v}" for k, v in distribution.most_common())
        logger.info(f"Event detection: {len(events)} events [{dist_str}]")
        return events

    def _build(self, article: CleanedArticle, event_type: EventType, confidence: float, source: str) -> DetectedEvent:
        return DetectedEvent(
            article=article,
            event_type=event_type,
            impact_labels=self.labeler.labels(article.text),
            base_score=EVENT_BASE_SCORES[event_type],
            dominant_ticker=self.dominant_ticker(article),
            confidence=confidence,
            classified_by=source,
        )

    def dominant_ticker(self, article: CleanedArticle) -> Optional[str]:
        """Most-mentioned ticker in title+description; first-mentioned wins ties."""
        if not article.tickers:
            return None
        if article.is_holdings_news:
            return article.tickers[0]
        text = article.text
        best, best_count = article.tickers[0], -1
        for ticker in article.tickers:
            count = self._mentions(text, ticker)
            if count > best_count:
                best, best_count = ticker, count
        return best

    def _mentions(self, text: str, ticker: str) -> int:
        count = text.count(ticker) if len(ticker) > 1 else 0
        name = self.extractor.company_name(ticker)
        if name and name.upper() != ticker:
            count += text.lower().count(name.lower())
        return count
