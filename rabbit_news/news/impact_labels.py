"""
Impact labeling: qualitative tags describing how an event moves a stock.

Each label has a keyword list and a severity weight. The scorer turns
label hits into a 0-1 impact score:

    impact = min(1, Σ(weight × hits) / Σ(all weights))

so one all-time-high headline (0.4) scores ~0.17 and a surprising
earnings beat with a big move stacks several labels.
"""

import logging
import re
from typing import Dict, List, Tuple

from ..schemas import ImpactLabel
from ..shared.helpers import keyword_in

logger = logging.getLogger(__name__)

IMPACT_LABELS: Dict[ImpactLabel, Dict] = {
    ImpactLabel.MOST_IMPACTFUL: {
        "weight": 0.30,
        "keywords": ["breakthrough", "historic", "unprecedented", "game-changer",
                     "transformative", "revolutionary", "milestone"],
    },
    ImpactLabel.SURPRISING: {
        "weight": 0.25,
        "keywords": ["unexpected", "unexpectedly", "surprise", "surprising", "shock", "stunned",
                     "caught off guard", "beat expectations", "missed expectations"],
    },
    ImpactLabel.DRAMA: {
        "weight": 0.20,
        "keywords": ["scandal", "controversy", "lawsuit", "investigation", "resignation",
                     "resigns", "fired", "crisis", "turmoil", "conflict"],
    },
    ImpactLabel.PRICE_AFFECTING_ABNORMAL: {
        "weight": 0.35,
        "keywords": ["earnings", "guidance", "forecast", "upgrade", "downgrade",
                     "price target", "analyst", "revenue", "profit"],
    },
    ImpactLabel.BIG_MOVES: {
        "weight": 0.30,
        "keywords": ["surge", "surges", "plunge", "plunges", "rally", "rallies", "crash",
                     "soar", "soars", "tumble", "tumbles", "jump", "jumps", "drop", "drops",
                     "spike", "spikes", "plummet", "plummets"],
    },
    ImpactLabel.ALL_TIME_HIGH: {
        "weight": 0.40,
        "keywords": ["all-time high", "all time high", "ath", "record high", "highest ever", "new high"],
    },
    ImpactLabel.ALL_TIME_LOW: {
        "weight": 0.40,
        "keywords": ["all-time low", "all time low", "atl", "record low", "lowest ever", "new low"],
    },
    ImpactLabel.STOCK_POPULARITY: {
        "weight": 0.15,
        "keywords": ["viral", "trending", "popular", "buzz", "hype", "social media",
                     "reddit", "wallstreetbets", "retail investors"],
    },
}

TOTAL_LABEL_WEIGHT = sum(cfg["weight"] for cfg in IMPACT_LABELS.values())

# Labels strong enough to justify keeping an otherwise weak analyst note / rumor
STRONG_LABELS = {
    ImpactLabel.MOST_IMPACTFUL,
    ImpactLabel.SURPRISING,
    ImpactLabel.BIG_MOVES,
    ImpactLabel.ALL_TIME_HIGH,
    ImpactLabel.ALL_TIME_LOW,
}

# "up 7%", "fell 12.5 percent", "-6%"
_PERCENT_RE = re.compile(r'(\d+(?:\.\d+)?)\s*(?:%|percent\b)')
BIG_MOVE_PERCENT = 5.0


class ImpactLabeler:
    """Assigns impact labels with per-label hit counts."""

    def label_counts(self, text: str) -> List[Tuple[ImpactLabel, int]]:
        """(label, hits) for every label that fires, in table order."""
        counts: List[Tuple[ImpactLabel, int]] = []
        for label, cfg in IMPACT_LABELS.items():
            hits = sum(1 for kw in cfg["keywords"] if keyword_in(text, kw))
            if label == ImpactLabel.BIG_MOVES:
                hits += sum(1 for m in _PERCENT_RE.finditer(text) if float(m.group(1)) >= BIG_MOVE_PERCENT)
            if hits:
                counts.append((label, hits))
        return counts

    def labels(self, text: str) -> List[ImpactLabel]:
        return [label for label, _ in self.label_counts(text)]

    @staticmethod
    def impact_score(label_counts: List[Tuple[ImpactLabel, int]]) -> float:
        """Severity-weighted label score, normalized by the total label weight, capped at 1."""
        raw = sum(IMPACT_LABELS[label]["weight"] * count for label, count in label_counts)
        return min(1.0, raw / TOTAL_LABEL_WEIGHT)
