from datetime import timedelta

import httpx
import pytest

from conftest import NOW, FakeNewsSource, make_raw, source
from rabbit_news.errors import NoDataAvailableError
from rabbit_news.news.fetcher import Fetcher, holdings_reject_reason, top_story_reject_reason
from rabbit_news.schemas import Holding, PipelineDebugData
from rabbit_news.tools.news_source import FeedParseError, NewsSourceClient

WIRE = [source("Reuters", 1), source("Bloomberg", 1)]
AGGREGATORS = [source("CNBC", 2)]
SUPPLEMENTAL = [source("NewsAPI", 3)]


def make_fetcher(news_source, settings, extractor, **kwargs):
    return Fetcher(
        news_source,
        settings=settings,
        ticker_extractor=extractor,
        wire_sources=kwargs.get("wire", WIRE),
        aggregator_sources=kwargs.get("aggregators", AGGREGATORS),
        supplemental_sources=kwargs.get("supplemental", SUPPLEMENTAL),
        clock=lambda: NOW,
    )


# ---------------------------------------------------------------------------
# Hard filters
# ---------------------------------------------------------------------------

class TestHoldingsFilter:
    def test_event_keyword_keeps_article(self):
        article = make_raw(title="Company posts quarterly earnings beat")
        assert holdings_reject_reason(article, "AAPL") is None

    def test_ticker_in_title_keeps_article(self):
        article = make_raw(title="What AAPL holders are watching")
        assert holdings_reject_reason(article, "AAPL") is None

    def test_company_name_in_title_keeps_article(self):
        article = make_raw(title="Apple opens flagship store in Mumbai")
        assert holdings_reject_reason(article, "AAPL", "Apple") is None

    def test_deny_pattern_rejects_even_with_keyword(self):
        article = make_raw(title="3 stocks to buy after AAPL earnings")
        assert holdings_reject_reason(article, "AAPL") is not None

    def test_unrelated_title_rejected(self):
        article = make_raw(title="A quiet morning on the trading floor")
        assert holdings_reject_reason(article, "AAPL", "Apple") is not None


class TestTopStoryFilter:
    def test_stale_article_without_macro_rejected(self):
        article = make_raw(
            title="Apple unveils new headset",
            description="",
            published_at_raw=(NOW - timedelta(hours=72)).isoformat(),
        )
        assert "older" in top_story_reject_reason(article, ["AAPL"], NOW)

    def test_stale_macro_article_kept(self):
        article = make_raw(
            title="Fed signals patience on inflation",
            description="",
            published_at_raw=(NOW - timedelta(hours=72)).isoformat(),
        )
        assert top_story_reject_reason(article, [], NOW) is None

    @pytest.mark.parametrize("title", [
        "Federal Reserve holds benchmark rate steady",
        "Traders price in a June rate cut",
    ])
    def test_spelled_out_macro_headline_kept(self, title):
        article = make_raw(title=title, description="")
        assert top_story_reject_reason(article, [], NOW) is None

    def test_no_ticker_no_macro_rejected(self):
        article = make_raw(title="Celebrity chef opens restaurant", description="")
        assert top_story_reject_reason(article, [], NOW) is not None


# ---------------------------------------------------------------------------
# fetch_all
# ---------------------------------------------------------------------------

class TestFetchAll:
    @pytest.mark.asyncio
    async def test_duplicate_urls_merged_once(self, settings, extractor):
        dup = "https://news.test/tesla-recall"
        news = FakeNewsSource(feeds={
            "Reuters": [make_raw(source_name="Reuters", title="Tesla recalls 120,000 vehicles", url=dup)],
            "Bloomberg": [make_raw(source_name="Bloomberg", title="Tesla recalls 120,000 vehicles", url=dup.upper())],
        })
        debug = PipelineDebugData()
        articles = await make_fetcher(news, settings, extractor).fetch_all([], limit=10, debug=debug)

        assert len(articles) == 1
        assert articles[0].source_name == "Reuters"
        assert any(f.reason == "duplicate URL" for f in debug.filtered_items)

    @pytest.mark.asyncio
    async def test_padded_url_is_a_duplicate(self, settings, extractor):
        news = FakeNewsSource(feeds={
            "Reuters": [make_raw(title="Tesla recalls 120,000 vehicles", url="https://news.test/recall")],
            "CNBC": [make_raw(source_name="CNBC", source_layer=2, title="Tesla recall widens", url="  https://News.test/Recall ")],
        })
        articles = await make_fetcher(news, settings, extractor).fetch_all([], limit=10)
        assert [a.source_name for a in articles] == ["Reuters"]

    @pytest.mark.asyncio
    async def test_tickerless_fed_headline_kept(self, settings, extractor):
        news = FakeNewsSource(feeds={
            "Reuters": [make_raw(title="Federal Reserve holds benchmark rate steady", description="", url="https://w.test/fed")],
        })
        debug = PipelineDebugData()
        articles = await make_fetcher(news, settings, extractor).fetch_all([], limit=10, debug=debug)

        assert [a.url for a in articles] == ["https://w.test/fed"]
        assert debug.filtered_items == []

    @pytest.mark.asyncio
    async def test_holdings_news_comes_first(self, settings, extractor):
        news = FakeNewsSource(
            search={"NVDA": [make_raw(source_name="NewsAPI (Holdings Search)", title="Nvidia earnings beat", url="https://h.test/1")]},
            feeds={"Reuters": [make_raw(title="Apple launches new iPhone", url="https://w.test/1")]},
        )
        articles = await make_fetcher(news, settings, extractor).fetch_all([Holding(symbol="nvda")], limit=10)

        assert articles[0].is_holdings_news
        assert articles[0].raw_tickers[0] == "NVDA"
        assert articles[0].source_layer == 1
        assert news.calls[0] == "search:NVDA"

    @pytest.mark.asyncio
    async def test_layer_order_and_limit(self, settings, extractor):
        news = FakeNewsSource(
            feeds={
                "Reuters": [make_raw(title=f"Apple launches product {i}", url=f"https://w.test/{i}") for i in range(2)],
                "CNBC": [make_raw(source_name="CNBC", source_layer=2, title=f"Tesla launches model {i}", url=f"https://c.test/{i}") for i in range(5)],
            },
        )
        articles = await make_fetcher(news, settings, extractor).fetch_all([], limit=4)

        assert len(articles) == 4
        assert [a.source_layer for a in articles] == [1, 1, 2, 2]

    @pytest.mark.asyncio
    async def test_optional_layers_skipped_when_full(self, settings, extractor):
        news = FakeNewsSource(feeds={
            "Reuters": [make_raw(title=f"Apple launches product {i}", url=f"https://w.test/{i}") for i in range(3)],
        })
        await make_fetcher(news, settings, extractor).fetch_all([], limit=3)

        assert "feed:CNBC" not in news.calls
        assert not any(c.startswith("supplemental") for c in news.calls)

    @pytest.mark.asyncio
    async def test_partial_failure_is_not_fatal(self, settings, extractor):
        news = FakeNewsSource(feeds={
            "Reuters": httpx.ConnectError("boom"),
            "Bloomberg": [make_raw(source_name="Bloomberg", title="Apple launches Vision Pro", url="https://b.test/1")],
        })
        articles = await make_fetcher(news, settings, extractor).fetch_all([], limit=10)
        assert [a.source_name for a in articles] == ["Bloomberg"]

    @pytest.mark.asyncio
    async def test_all_sources_failing_raises(self, settings, extractor):
        news = FakeNewsSource(
            search={"AAPL": RuntimeError("quota")},
            feeds={
                "Reuters": httpx.ConnectError("down"),
                "Bloomberg": FeedParseError("bad xml"),
                "CNBC": httpx.ReadTimeout("slow"),
            },
            supplemental={"NewsAPI": httpx.ConnectError("down")},
        )
        with pytest.raises(NoDataAvailableError) as exc_info:
            await make_fetcher(news, settings, extractor).fetch_all([Holding(symbol="AAPL")], limit=10)
        assert exc_info.value.failed_sources == 4

    @pytest.mark.asyncio
    async def test_empty_but_healthy_sources_return_empty(self, settings, extractor):
        news = FakeNewsSource()
        assert await make_fetcher(news, settings, extractor).fetch_all([], limit=10) == []


# ---------------------------------------------------------------------------
# NewsSourceClient over a mock transport
# ---------------------------------------------------------------------------

RSS_BODY = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Test</title>
<item>
  <title>Microsoft &amp; OpenAI expand partnership</title>
  <link>https://feed.test/msft</link>
  <description>&lt;p&gt;Microsoft said the deal extends through 2030.&lt;/p&gt;</description>
  <pubDate>Mon, 02 Mar 2026 12:00:00 GMT</pubDate>
</item>
</channel></rss>"""


class TestNewsSourceClient:
    @pytest.mark.asyncio
    async def test_parses_rss_entries(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text=RSS_BODY))
        client = NewsSourceClient(settings=settings, transport=transport)

        articles = await client.fetch_feed({"name": "Reuters", "layer": 1, "rss_url": "https://feed.test/rss"}, 10)

        assert len(articles) == 1
        assert articles[0].title == "Microsoft & OpenAI expand partnership"
        assert articles[0].url == "https://feed.test/msft"
        assert articles[0].source_layer == 1
        assert "2026" in articles[0].published_at_raw

    @pytest.mark.asyncio
    async def test_http_error_raises(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        client = NewsSourceClient(settings=settings, transport=transport)
        with pytest.raises(httpx.HTTPStatusError):
            await client.fetch_feed({"name": "Reuters", "layer": 1, "rss_url": "https://feed.test/rss"}, 10)

    @pytest.mark.asyncio
    async def test_search_without_key_raises(self, settings):
        client = NewsSourceClient(settings=settings)
        assert not client.can_search()
        with pytest.raises(RuntimeError):
            await client.search("AAPL", 5)

    @pytest.mark.asyncio
    async def test_search_tags_holdings_news(self, settings):
        payload = {"articles": [{
            "title": "Apple earnings beat", "url": "https://n.test/1",
            "description": "Strong quarter", "publishedAt": "2026-03-02T10:00:00Z",
        }]}
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=payload))
        client = NewsSourceClient(settings=settings.model_copy(update={"newsapi_key": "k"}), transport=transport)

        articles = await client.search("aapl", 5)

        assert articles[0].is_holdings_news
        assert articles[0].raw_tickers == ["AAPL"]
        assert articles[0].source_tag == "HoldingsSearch"
