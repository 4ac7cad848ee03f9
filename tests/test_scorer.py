from datetime import timedelta
from uuid import uuid4

import pytest

from conftest import NOW, make_cluster
from rabbit_news.news.event_detector import EVENT_BASE_SCORES
from rabbit_news.news.scorer import Scorer, recency_bucket, recency_score
from rabbit_news.schemas import EventType, Holding, ScoreBreakdown, UserEventScore

AAPL = [Holding(symbol="AAPL")]


def make_scorer(settings, extractor):
    return Scorer(settings=settings, ticker_extractor=extractor, clock=lambda: NOW)


# ---------------------------------------------------------------------------
# Recency
# ---------------------------------------------------------------------------

class TestRecency:
    def test_half_life(self):
        assert recency_score(12, 12, 168) == pytest.approx(0.5)
        assert recency_score(24, 12, 168) == pytest.approx(0.25)

    def test_fresh_and_future_score_one(self):
        assert recency_score(0, 12, 168) == 1.0
        assert recency_score(-3, 12, 168) == 1.0

    def test_past_horizon_is_zero(self):
        assert recency_score(169, 12, 168) == 0.0

    def test_buckets(self):
        assert recency_bucket(0.5) == 1.0
        assert recency_bucket(30) == 0.4
        assert recency_bucket(500) == 0.2


# ---------------------------------------------------------------------------
# Holdings relevance
# ---------------------------------------------------------------------------

class TestHoldingsRelevance:
    def score(self, settings, extractor, cluster, holdings=AAPL):
        return make_scorer(settings, extractor).score(cluster, holdings).breakdown.holdings_relevance

    def test_dominant_ticker_held(self, settings, extractor):
        assert self.score(settings, extractor, make_cluster()) == 1.0

    def test_member_ticker_held(self, settings, extractor):
        cluster = make_cluster(dominant_ticker="NVDA", tickers=["NVDA", "AAPL"])
        assert self.score(settings, extractor, cluster) == 0.6

    def test_same_sector_ticker(self, settings, extractor):
        cluster = make_cluster(dominant_ticker="MSFT", tickers=["MSFT"], clean_title="Microsoft posts results", clean_description="")
        assert self.score(settings, extractor, cluster) == 0.3

    def test_sector_keywords_in_text(self, settings, extractor):
        cluster = make_cluster(
            EventType.MACRO, None, tickers=[],
            clean_title="Chip demand lifts semiconductor outlook", clean_description="",
        )
        assert self.score(settings, extractor, cluster, [Holding(symbol="NVDA")]) == 0.3

    def test_macro_cluster(self, settings, extractor):
        cluster = make_cluster(EventType.MACRO, None, tickers=[], clean_title="Fed holds rates steady", clean_description="")
        assert self.score(settings, extractor, cluster) == 0.15

    def test_unowned_ticker(self, settings, extractor):
        cluster = make_cluster(dominant_ticker="XOM", tickers=["XOM"], clean_title="Exxon output rises", clean_description="")
        assert self.score(settings, extractor, cluster) == 0.0

    def test_no_holdings(self, settings, extractor):
        assert self.score(settings, extractor, make_cluster(), []) == 0.0


# ---------------------------------------------------------------------------
# Totals and ranking
# ---------------------------------------------------------------------------

class TestScorer:
    def test_weighted_total(self, settings, extractor):
        cluster = make_cluster(clean_title="Apple posts quarterly results", clean_description="", published_at=NOW)
        breakdown = make_scorer(settings, extractor).score(cluster, AAPL).breakdown

        assert breakdown.impact_score == 0.0
        assert breakdown.recency == 1.0
        expected = 0.55 * 1.0 + 0.15 * EVENT_BASE_SCORES[EventType.EARNINGS] + 0.10 * 1.0
        assert breakdown.total == pytest.approx(expected, abs=1e-4)

    def test_impact_labels_raise_total(self, settings, extractor):
        scorer = make_scorer(settings, extractor)
        plain = make_cluster(clean_title="Apple posts quarterly results", clean_description="")
        loud = make_cluster(clean_title="Apple shares surge to record high after surprise profit", clean_description="")

        assert scorer.score(loud, AAPL).total > scorer.score(plain, AAPL).total

    def test_older_cluster_scores_lower(self, settings, extractor):
        scorer = make_scorer(settings, extractor)
        fresh = make_cluster(published_at=NOW - timedelta(hours=1))
        stale = make_cluster(published_at=NOW - timedelta(hours=30))

        assert scorer.score(fresh, AAPL).total > scorer.score(stale, AAPL).total

    def test_deterministic(self, settings, extractor):
        scorer = make_scorer(settings, extractor)
        cluster = make_cluster()
        assert scorer.score(cluster, AAPL).breakdown == scorer.score(cluster, AAPL).breakdown

    def test_interest_match_is_diagnostic(self, settings, extractor):
        cluster = make_cluster(clean_title="Apple iPhone demand climbs", clean_description="")
        scorer = make_scorer(settings, extractor)

        with_interests = scorer.score(cluster, AAPL, interests=["iphone", "china"]).breakdown
        without = scorer.score(cluster, AAPL).breakdown

        assert with_interests.user_interest_match == 0.5
        assert with_interests.total == without.total

    def test_score_all_keeps_order(self, settings, extractor):
        clusters = [make_cluster(), make_cluster(EventType.MACRO, None, tickers=[])]
        scores = make_scorer(settings, extractor).score_all(clusters, AAPL)
        assert [s.cluster_id for s in scores] == [c.id for c in clusters]


class TestRank:
    @staticmethod
    def entry(total, holdings=0.0, impact=0.0):
        return UserEventScore(
            cluster_id=uuid4(),
            breakdown=ScoreBreakdown(total=total, holdings_relevance=holdings, impact_score=impact),
        )

    def test_total_descending(self):
        low, high = self.entry(0.2), self.entry(0.8)
        assert Scorer.rank([low, high]) == [high, low]

    def test_ties_broken_by_holdings_then_impact(self):
        a = self.entry(0.5, holdings=0.3, impact=0.9)
        b = self.entry(0.5, holdings=1.0, impact=0.1)
        c = self.entry(0.5, holdings=1.0, impact=0.4)
        assert Scorer.rank([a, b, c]) == [c, b, a]
