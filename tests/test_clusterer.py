from datetime import timedelta

from conftest import NOW, make_event
from rabbit_news.news.clusterer import Clusterer, jaccard, similarity_words, strip_url
from rabbit_news.schemas import EventType


def titles(cluster):
    return sorted(e.article.clean_title for e in cluster.events)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestSimilarityHelpers:
    def test_words_drop_short_and_stopwords(self):
        assert similarity_words("The Fed and the ECB cut rates") == frozenset({"fed", "ecb", "cut", "rates"})

    def test_jaccard(self):
        a = frozenset({"tesla", "recall", "vehicles"})
        b = frozenset({"tesla", "recall", "seatbelt"})
        assert jaccard(a, b) == 0.5
        assert jaccard(frozenset(), b) == 0.0

    def test_strip_url(self):
        assert strip_url("https://News.test/story/?utm=1#top") == "https://news.test/story"


# ---------------------------------------------------------------------------
# Clusterer.cluster
# ---------------------------------------------------------------------------

class TestClusterer:
    def test_every_event_in_exactly_one_cluster(self, settings):
        events = [
            make_event(EventType.EARNINGS, "AAPL", clean_title="Apple earnings beat", url="https://a.test/1"),
            make_event(EventType.EARNINGS, "AAPL", clean_title="Apple quarterly results strong", url="https://b.test/1"),
            make_event(EventType.REGULATION, "TSLA", clean_title="Tesla recall ordered", url="https://c.test/1"),
            make_event(EventType.MACRO, None, clean_title="Fed holds rates", url="https://d.test/1", tickers=[]),
        ]
        clusters = Clusterer(settings=settings).cluster(events)

        members = [id(e) for c in clusters for e in c.events]
        assert len(members) == len(events) == len(set(members))

    def test_same_ticker_same_type_strong_link(self, settings):
        events = [
            make_event(EventType.EARNINGS, "AAPL", clean_title="Apple earnings beat", url="https://a.test/1"),
            make_event(EventType.EARNINGS, "AAPL", clean_title="Cupertino posts record quarter", url="https://b.test/1"),
        ]
        clusters = Clusterer(settings=settings).cluster(events)

        assert len(clusters) == 1
        assert clusters[0].similarity_scores == [(0, 1, 0.95)]

    def test_other_type_needs_text_similarity(self, settings):
        events = [
            make_event(EventType.OTHER, "AAPL", clean_title="Apple store hours change", clean_description="", url="https://a.test/1"),
            make_event(EventType.OTHER, "AAPL", clean_title="Cupertino weather report", clean_description="", url="https://b.test/1"),
        ]
        assert len(Clusterer(settings=settings).cluster(events)) == 2

    def test_outside_window_not_linked(self, settings):
        events = [
            make_event(EventType.EARNINGS, "AAPL", url="https://a.test/1", published_at=NOW),
            make_event(EventType.EARNINGS, "AAPL", url="https://b.test/1", clean_title="Apple results again",
                       published_at=NOW - timedelta(hours=72)),
        ]
        assert len(Clusterer(settings=settings).cluster(events)) == 2

    def test_cross_ticker_requires_higher_threshold(self, settings):
        events = [
            make_event(EventType.OTHER, "NVDA", clean_title="Chip export rules eased", clean_description="", url="https://a.test/1"),
            # 0.8 overlap with the first: linked across tickers
            make_event(EventType.OTHER, "AMD", clean_title="Chip export rules eased again", clean_description="", url="https://b.test/1"),
            # 0.6 overlap: enough for one ticker, not across tickers
            make_event(EventType.OTHER, "INTC", clean_title="Chip export rules tightened", clean_description="", url="https://c.test/1"),
        ]
        clusters = Clusterer(settings=settings).cluster(events)

        assert sorted(c.size for c in clusters) == [1, 2]
        assert clusters[0].dominant_ticker == "NVDA"

    def test_same_ticker_uses_lower_threshold(self, settings):
        events = [
            make_event(EventType.OTHER, "INTC", clean_title="Chip export rules eased", clean_description="", url="https://a.test/1"),
            make_event(EventType.OTHER, "INTC", clean_title="Chip export rules tightened", clean_description="", url="https://c.test/1"),
        ]
        clusters = Clusterer(settings=settings).cluster(events)
        assert len(clusters) == 1
        assert clusters[0].similarity_scores == [(0, 1, 0.6)]

    def test_tickerless_same_type_needs_text_similarity(self, settings):
        events = [
            make_event(EventType.REGULATION, None, tickers=[], clean_title="FDA bans menthol cigarettes nationwide",
                       clean_description="", url="https://a.test/1"),
            make_event(EventType.REGULATION, None, tickers=[], clean_title="SEC fines crypto exchange for reporting failures",
                       clean_description="", url="https://b.test/1"),
        ]
        clusters = Clusterer(settings=settings).cluster(events)

        assert len(clusters) == 2
        assert all(c.similarity_scores == [] for c in clusters)

    def test_tickerless_events_link_across_threshold(self, settings):
        events = [
            make_event(EventType.REGULATION, None, tickers=[], clean_title="Chip export rules eased",
                       clean_description="", url="https://a.test/1"),
            make_event(EventType.REGULATION, None, tickers=[], clean_title="Chip export rules eased again",
                       clean_description="", url="https://b.test/1"),
        ]
        clusters = Clusterer(settings=settings).cluster(events)

        assert len(clusters) == 1
        assert clusters[0].similarity_scores == [(0, 1, 0.8)]

    def test_transitive_grouping(self, settings):
        events = [
            make_event(EventType.OTHER, "TSLA", clean_title="tesla recall vehicles seatbelt warning", clean_description="", url="https://a.test/1"),
            make_event(EventType.OTHER, "TSLA", clean_title="tesla recall vehicles seatbelt chime", clean_description="", url="https://b.test/1"),
            make_event(EventType.OTHER, "TSLA", clean_title="tesla recall vehicles chime defect", clean_description="", url="https://c.test/1"),
        ]
        clusters = Clusterer(settings=settings).cluster(events)
        assert len(clusters) == 1
        assert clusters[0].size == 3

    def test_duplicate_url_prepass(self, settings):
        events = [
            make_event(EventType.OTHER, "AAPL", clean_title="One headline", clean_description="", url="https://a.test/x?utm=1"),
            make_event(EventType.MACRO, None, clean_title="Different words entirely", clean_description="", url="https://a.test/x", tickers=[]),
        ]
        clusters = Clusterer(settings=settings).cluster(events)
        assert len(clusters) == 1

    def test_canonical_is_highest_quality(self, settings):
        events = [
            make_event(EventType.EARNINGS, "AAPL", source_name="Blog", source_quality=0.6, url="https://a.test/1"),
            make_event(EventType.EARNINGS, "AAPL", source_name="Reuters", source_quality=1.0, url="https://b.test/1",
                       clean_title="Apple earnings top forecasts"),
        ]
        cluster = Clusterer(settings=settings).cluster(events)[0]
        assert cluster.canonical.source_name == "Reuters"
        assert cluster.dominant_ticker == "AAPL"
        assert cluster.event_type == EventType.EARNINGS

    def test_empty_input(self, settings):
        assert Clusterer(settings=settings).cluster([]) == []

    def test_lsh_path_matches_pairwise(self, settings):
        desc = "Regulators ordered the recall of vehicles over seatbelt warning chimes"
        events = [
            make_event(EventType.OTHER, "TSLA", clean_title="Tesla recall seatbelt chime", clean_description=desc, url="https://a.test/1"),
            make_event(EventType.OTHER, "TSLA", clean_title="Tesla recall seatbelt chime issue", clean_description=desc, url="https://b.test/1"),
            make_event(EventType.EARNINGS, "AAPL", url="https://c.test/1"),
            make_event(EventType.EARNINGS, "AAPL", url="https://d.test/1", clean_title="Apple quarterly beat"),
        ]
        pairwise = Clusterer(settings=settings).cluster(events)
        lsh = Clusterer(settings=settings.model_copy(update={"cluster_lsh_min_events": 0})).cluster(events)

        assert sorted(map(titles, pairwise)) == sorted(map(titles, lsh))
        assert len(lsh) == 2
