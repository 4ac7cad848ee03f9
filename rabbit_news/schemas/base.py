"""
Common enums used across the pipeline.

These define the vocabulary of the system: user modes, event types,
impact labels, source categories, and the display-side impact scale.
"""

from enum import Enum


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS - User preferences
# ══════════════════════════════════════════════════════════════════════════════

class RabbitMode(str, Enum):
    """Coarseness setting that scales how many items survive each narrowing stage."""
    BEGINNER = "Beginner Mode"
    SMART = "Smart Mode"
    FOCUS = "Focus Mode"


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS - Classification Types
# ══════════════════════════════════════════════════════════════════════════════

class EventType(str, Enum):
    """Closed set of event types an article can be classified into."""
    EARNINGS = "earnings"
    GUIDANCE = "guidance"
    REGULATION = "regulation"
    MERGER_ACQUISITION = "merger_acquisition"
    PRODUCT_LAUNCH = "product_launch"
    MACRO = "macro"
    LITIGATION = "litigation"
    ANALYST_NOTE = "analyst_note"
    SOCIAL_SENTIMENT = "social_sentiment"
    RUMOR = "rumor"
    OTHER = "other"               # Fluff: nothing classifiable


class ImpactLabel(str, Enum):
    """Qualitative tags describing the nature of an event's market impact."""
    MOST_IMPACTFUL = "most_impactful"
    SURPRISING = "surprising"
    DRAMA = "drama"
    PRICE_AFFECTING_ABNORMAL = "price_affecting_abnormal"
    BIG_MOVES = "big_moves"
    ALL_TIME_HIGH = "all_time_high"
    ALL_TIME_LOW = "all_time_low"
    STOCK_POPULARITY = "stock_popularity"


class SourceCategory(str, Enum):
    """Coarse outlet category derived from the source name."""
    WIRE = "wire"
    FINANCIAL = "financial"
    NEWS = "news"
    OTHER = "other"


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS - Display / market context
# ══════════════════════════════════════════════════════════════════════════════

class EventImpact(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    MIXED = "mixed"


class EventMagnitude(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class BuzzLevel(str, Enum):
    """Social chatter level from weekly mention counts."""
    HOT = "hot"           # >= 50 mentions
    RISING = "rising"     # >= 20
    CALM = "calm"         # >= 5
    QUIET = "quiet"


class QuoteSentiment(str, Enum):
    """Price-move sentiment from daily change percent."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    STEADY = "steady"
    NEUTRAL = "neutral"
