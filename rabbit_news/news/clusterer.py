"""
Event clustering: groups detected events that describe the same real-world event.

LINKING (union-find, so grouping is transitive):
  0. PRE-PASS:    same URL (query/fragment stripped) or same normalized title
  1. STRONG LINK: same dominant ticker + same event type (not other/macro)
                  within the window → score 0.95
  2. LEXICAL:     Jaccard over title+description word sets
                  ≥ cluster_similarity_threshold for the same ticker,
                  ≥ cluster_cross_ticker_threshold across tickers

Every event lands in exactly one cluster; nothing is discarded.

CANDIDATE PAIRS:
  Small runs compare all pairs. Past cluster_lsh_min_events, MinHash LSH
  proposes the lexical candidates (same datasketch setup as article dedup)
  and exact Jaccard confirms them, so thresholds keep their meaning.
"""

import logging
import re
from collections import Counter, defaultdict
from datetime import timedelta
from itertools import combinations
from typing import Dict, FrozenSet, List, Optional, Set, Tuple
from urllib.parse import urlsplit, urlunsplit

from datasketch import MinHash, MinHashLSH

from ..config import Settings, get_settings
from ..schemas import DetectedEvent, EventCluster, EventType
from ..shared.stopwords import SIMILARITY_STOP

logger = logging.getLogger(__name__)

STRONG_LINK_SCORE = 0.95
DUPLICATE_SCORE = 1.0

# Types too broad for "same ticker + same type" to mean "same event"
_NO_STRONG_LINK = {EventType.OTHER, EventType.MACRO}

_WORD_RE = re.compile(r"[a-z0-9]+")


def similarity_words(text: str) -> FrozenSet[str]:
    """Lower-cased words longer than 2 chars, similarity stopwords removed."""
    return frozenset(w for w in _WORD_RE.findall(text.lower()) if len(w) > 2 and w not in SIMILARITY_STOP)


def jaccard(a: FrozenSet[str], b: FrozenSet[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def strip_url(url: str) -> str:
    """Scheme+host+path, lower-cased, no query or fragment."""
    parts = urlsplit(url.strip().lower())
    return urlunsplit((parts.scheme, parts.netloc, parts.path.rstrip("/"), "", ""))


def normalize_title(title: str) -> str:
    return " ".join(_WORD_RE.findall(title.lower()))


class _UnionFind:
    def __init__(self, n: int):
        self.parent = list(range(n))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, i: int, j: int):
        ri, rj = self.find(i), self.find(j)
        if ri != rj:
            # Lower index stays root so cluster order follows input order
            self.parent[max(ri, rj)] = min(ri, rj)


class Clusterer:
    """DetectedEvent list → EventCluster list."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.threshold = self.settings.cluster_similarity_threshold
        self.cross_threshold = self.settings.cluster_cross_ticker_threshold
        self.window = timedelta(hours=self.settings.cluster_window_hours)

    def cluster(self, events: List[DetectedEvent]) -> List[EventCluster]:
        if not events:
            return []

        words = [similarity_words(e.article.text) for e in events]
        uf = _UnionFind(len(events))
        links: Dict[Tuple[int, int], float] = {}

        for i, j in self._duplicate_pairs(events):
            links[(i, j)] = DUPLICATE_SCORE
            uf.union(i, j)

        for i, j in sorted(self._candidate_pairs(events, words)):
            if (i, j) in links:
                continue
            score = self.link_score(events[i], events[j], words[i], words[j])
            if score is not None:
                links[(i, j)] = score
                uf.union(i, j)

        groups: Dict[int, List[int]] = defaultdict(list)
        for i in range(len(events)):
            groups[uf.find(i)].append(i)

        clusters = [self._build(events, members, links) for _, members in sorted(groups.items())]
        multi = sum(1 for c in clusters if c.size > 1)
        logger.info(f"Clustering: {len(events)} events -> {len(clusters)} clusters ({multi} multi-source)")
        return clusters

    def link_score(
        self,
        a: DetectedEvent,
        b: DetectedEvent,
        words_a: FrozenSet[str],
        words_b: FrozenSet[str],
    ) -> Optional[float]:
        """Similarity that justifies linking two events, or None."""
        if abs(a.article.published_at - b.article.published_at) > self.window:
            return None

        # Ticker-less events only link on text overlap
        if a.dominant_ticker is not None and a.dominant_ticker == b.dominant_ticker:
            if a.event_type == b.event_type and a.event_type not in _NO_STRONG_LINK:
                return STRONG_LINK_SCORE
            score = jaccard(words_a, words_b)
            return score if score >= self.threshold else None

        score = jaccard(words_a, words_b)
        return score if score >= self.cross_threshold else None

    # ── Pair generation ───────────────────────────────────────────────

    @staticmethod
    def _duplicate_pairs(events: List[DetectedEvent]) -> List[Tuple[int, int]]:
        first_by_key: Dict[str, int] = {}
        pairs = []
        for i, event in enumerate(events):
            keys = [f"url:{strip_url(event.article.url)}", f"title:{normalize_title(event.article.clean_title)}"]
            for key in keys:
                if key.endswith(":"):
                    continue
                if key in first_by_key:
                    pairs.append((first_by_key[key], i))
                else:
                    first_by_key[key] = i
        return pairs

    def _candidate_pairs(self, events: List[DetectedEvent], words: List[FrozenSet[str]]) -> Set[Tuple[int, int]]:
        n = len(events)
        if n < self.settings.cluster_lsh_min_events:
            return set(combinations(range(n), 2))

        # Strong-link candidates: same ticker + same type bucket
        pairs: Set[Tuple[int, int]] = set()
        buckets: Dict[Tuple, List[int]] = defaultdict(list)
        for i, event in enumerate(events):
            if event.dominant_ticker is not None and event.event_type not in _NO_STRONG_LINK:
                buckets[(event.dominant_ticker, event.event_type)].append(i)
        for members in buckets.values():
            pairs.update(combinations(members, 2))

        pairs.update(self._lsh_pairs(words))
        return pairs

    def _lsh_pairs(self, words: List[FrozenSet[str]]) -> Set[Tuple[int, int]]:
        """Lexical candidates from MinHash LSH at the lower of the two thresholds."""
        num_perm = self.settings.cluster_num_perm
        # LSH recall drops near its threshold; query below the real cut-off
        lsh = MinHashLSH(threshold=max(0.1, min(self.threshold, self.cross_threshold) * 0.7), num_perm=num_perm)
        pairs: Set[Tuple[int, int]] = set()
        for i, word_set in enumerate(words):
            if not word_set:
                continue
            m = MinHash(num_perm=num_perm)
            for w in sorted(word_set):
                m.update(w.encode("utf-8"))
            for key in lsh.query(m):
                pairs.add((int(key), i))
            lsh.insert(str(i), m)
        return pairs

    # ── Cluster assembly ──────────────────────────────────────────────

    def _build(
        self,
        events: List[DetectedEvent],
        members: List[int],
        links: Dict[Tuple[int, int], float],
    ) -> EventCluster:
        member_events = [events[i] for i in members]
        local = {global_i: local_i for local_i, global_i in enumerate(members)}

        # Highest quality wins; earliest publication breaks ties, then input order
        canonical_idx = min(
            range(len(member_events)),
            key=lambda k: (-member_events[k].article.source_quality, member_events[k].article.published_at, k),
        )
        canonical = member_events[canonical_idx]

        scores = sorted(
            (local[i], local[j], round(score, 4))
            for (i, j), score in links.items()
            if i in local and j in local
        )

        return EventCluster(
            events=member_events,
            canonical=canonical.article,
            dominant_ticker=self._majority(
                [e.dominant_ticker for e in member_events if e.dominant_ticker], canonical.dominant_ticker
            ),
            event_type=self._majority([e.event_type for e in member_events], canonical.event_type),
            similarity_scores=scores,
        )

    @staticmethod
    def _majority(values: List, preferred):
        """Most common value; `preferred` (the canonical member's) wins ties."""
        if not values:
            return preferred
        counts = Counter(values)
        top = max(counts.values())
        if preferred is not None and counts.get(preferred) == top:
            return preferred
        return next(v for v in values if counts[v] == top)
