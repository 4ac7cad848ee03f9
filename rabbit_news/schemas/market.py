"""Market context models returned by the rate-limited quote and buzz lookups."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from .base import BuzzLevel, QuoteSentiment


class StockQuote(BaseModel):
    symbol: str
    price: Optional[float] = None           # None when the lookup was rate limited or failed
    change: float = 0.0
    change_percent: float = 0.0
    sentiment: QuoteSentiment = QuoteSentiment.NEUTRAL
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def available(self) -> bool:
        return self.price is not None


class SocialBuzz(BaseModel):
    symbol: str
    mentions: int = 0
    buzz_level: BuzzLevel = BuzzLevel.QUIET
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
