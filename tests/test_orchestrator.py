"""End-to-end pipeline runs over fake sources. Timestamps are relative to the real clock."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import FakeLLM, FakeNewsSource, make_cluster, make_raw
from rabbit_news.agents import PipelineDeps, RunManager, convert_themes_to_events, fetch_market_context, run_pipeline
from rabbit_news.config import AGGREGATOR_SOURCES, SUPPLEMENTAL_SOURCES, WIRE_SOURCES
from rabbit_news.errors import NoDataAvailableError
from rabbit_news.schemas import EventImpact, EventMagnitude, EventType, FeedTheme, Holding, RabbitMode

HOLDINGS = [Holding(symbol="AAPL", name="Apple"), Holding(symbol="NVDA")]


def recent(hours: float = 1) -> str:
    return (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()


def article(source_name, url, title, description=""):
    return make_raw(source_name=source_name, url=url, title=title, description=description, published_at_raw=recent())


def news_day() -> FakeNewsSource:
    return FakeNewsSource(
        searchable=False,
        feeds={
            "Reuters": [
                article("Reuters", "https://r.test/1", "Apple reports record quarterly earnings",
                        "Apple beat estimates on strong iPhone sales. Revenue rose 8%."),
                article("Reuters", "https://r.test/2", "Apple earnings beat estimates on iPhone demand",
                        "Apple posted revenue of $95 billion."),
                article("Reuters", "https://r.test/3", "Nvidia launches new AI chip for data centers",
                        "Nvidia unveils the successor to Blackwell."),
                article("Reuters", "https://r.test/4", "Apple fans line up at Fifth Avenue store"),
            ],
            "Bloomberg": [
                article("Bloomberg", "https://b.test/1", "Fed holds interest rates steady",
                        "Inflation remains above target."),
                article("Bloomberg", "https://b.test/2", "Goldman analyst cuts Tesla price target"),
                article("Bloomberg", "https://b.test/3", "Celebrity chef opens restaurant"),
            ],
        },
    )


def theme(name, indices):
    return {
        "themeName": name,
        "eventIndices": indices,
        "hook": f"{name} hook",
        "contextExplanation": f"{name} context",
        "whyItMatters": f"{name} matters",
    }


GOOD_REPLY = json.dumps([theme("Apple quarter", [0]), theme("Chips and rates", [1, 2])])


# ---------------------------------------------------------------------------
# run_pipeline
# ---------------------------------------------------------------------------

class TestRunPipeline:
    @pytest.mark.asyncio
    async def test_end_to_end_smart_mode(self, make_deps):
        llm = FakeLLM(GOOD_REPLY)
        result = await run_pipeline(HOLDINGS, mode=RabbitMode.SMART, deps=make_deps(news_day(), llm), user_id="u1")

        assert result.status == "success"
        assert result.errors == []
        assert [t.theme_name for t in result.themes] == ["Apple quarter", "Chips and rates"]
        lead = result.themes[0].clusters[0]
        assert lead.dominant_ticker == "AAPL"
        assert lead.size == 2
        assert [c.dominant_ticker for c in result.themes[1].clusters] == ["NVDA", None]
        assert len(result.events) == len(result.themes)

        debug = result.debug
        assert (debug.raw_count, debug.cleaned_count, debug.event_count, debug.cluster_count) == (6, 6, 4, 3)
        assert debug.selected_count == 3
        reasons = {f.title: (f.stage, f.reason) for f in debug.filtered_items}
        assert reasons["Celebrity chef opens restaurant"][0] == "fetch"
        assert reasons["Goldman analyst cuts Tesla price target"] == ("detection", "analyst note without strong impact")
        assert reasons["Apple fans line up at Fifth Avenue store"] == ("detection", "no classifiable event")
        assert set(debug.stage_seconds) == {"fetch", "clean", "detect", "cluster", "score", "build_feed"}

    @pytest.mark.asyncio
    async def test_focus_mode_drops_unrelated_clusters(self, make_deps):
        result = await run_pipeline(HOLDINGS, mode=RabbitMode.FOCUS, deps=make_deps(news_day(), FakeLLM(GOOD_REPLY)))

        kept = [c.dominant_ticker for t in result.themes for c in t.clusters]
        assert kept == ["AAPL", "NVDA"]
        assert any(f.stage == "scoring" and f.title == "Fed holds interest rates steady" for f in result.debug.filtered_items)

    @pytest.mark.asyncio
    async def test_bad_theme_reply_falls_back(self, make_deps):
        result = await run_pipeline(HOLDINGS, deps=make_deps(news_day(), FakeLLM("I could not decide")))

        assert len(result.themes) == 3
        assert all(t.generated_by == "fallback" for t in result.themes)
        assert result.themes[0].theme_name == "AAPL"
        assert result.errors == ["Theme grouping fell back to per-cluster themes"]

    @pytest.mark.asyncio
    async def test_no_data_propagates(self, make_deps):
        down = httpx.ConnectError("down")
        news = FakeNewsSource(
            searchable=False,
            feeds={s["name"]: down for s in WIRE_SOURCES + AGGREGATOR_SOURCES},
            supplemental={s["name"]: down for s in SUPPLEMENTAL_SOURCES},
        )
        with pytest.raises(NoDataAvailableError):
            await run_pipeline(HOLDINGS, deps=make_deps(news, FakeLLM(GOOD_REPLY)))

    @pytest.mark.asyncio
    async def test_quiet_day_is_empty_not_error(self, make_deps):
        result = await run_pipeline(HOLDINGS, deps=make_deps(FakeNewsSource(searchable=False), FakeLLM(GOOD_REPLY)))
        assert result.status == "success"
        assert result.themes == []

    @pytest.mark.asyncio
    async def test_mock_mode_runs_offline(self, settings):
        deps = PipelineDeps.create(mock_mode=True, settings=settings)
        result = await run_pipeline(HOLDINGS, mode=RabbitMode.SMART, deps=deps)

        assert 1 <= len(result.themes) <= 3
        assert all(t.generated_by == "llm" for t in result.themes)
        ids = [c.id for t in result.themes for c in t.clusters]
        assert len(ids) == len(set(ids))
        assert result.themes[0].clusters[0].dominant_ticker in {"AAPL", "NVDA"}


# ---------------------------------------------------------------------------
# Display conversion and market context
# ---------------------------------------------------------------------------

class TestConvertThemes:
    def test_one_event_per_theme(self):
        earnings = make_cluster(EventType.EARNINGS, "AAPL", source_name="Reuters")
        macro = make_cluster(EventType.MACRO, None, tickers=[], source_name="Bloomberg")
        themes = [
            FeedTheme(theme_name="Apple", clusters=[earnings, macro], hook="Apple beats",
                      context_explanation="Context.", why_it_matters="It matters."),
            FeedTheme(theme_name="Rates", clusters=[macro], hook="Fed holds",
                      context_explanation="Rates.", why_it_matters="Borrowing."),
        ]

        events = convert_themes_to_events(themes)

        assert [e.ticker for e in events] == ["AAPL", None]
        assert events[0].title == "Apple beats"
        assert events[0].summary == "Context. It matters."
        assert (events[0].impact, events[0].magnitude) == (EventImpact.POSITIVE, EventMagnitude.HIGH)
        assert events[0].source_count == 2
        assert events[0].sources_summary == "Reuters, Bloomberg"
        assert events[1].theme_id == themes[1].id


class TestMarketContext:
    @pytest.mark.asyncio
    async def test_without_services(self, make_deps):
        context = await fetch_market_context(HOLDINGS, deps=make_deps(FakeNewsSource(), FakeLLM("")))
        assert context == {"quotes": {}, "buzz": {}}

    @pytest.mark.asyncio
    async def test_no_holdings(self, make_deps):
        context = await fetch_market_context([], deps=make_deps(FakeNewsSource(), FakeLLM("")))
        assert context == {"quotes": {}, "buzz": {}}


# ---------------------------------------------------------------------------
# RunManager
# ---------------------------------------------------------------------------

class GatedNewsSource(FakeNewsSource):
    """Feed fetches block until the gate opens."""

    def __init__(self, gate: asyncio.Event, **kwargs):
        super().__init__(**kwargs)
        self.gate = gate

    async def fetch_feed(self, source, limit):
        await self.gate.wait()
        return await super().fetch_feed(source, limit)


class TestRunManager:
    @pytest.mark.asyncio
    async def test_newer_request_supersedes(self, make_deps):
        gate = asyncio.Event()
        news = GatedNewsSource(gate, searchable=False, feeds=news_day().feed_results)
        manager = RunManager(deps=make_deps(news, FakeLLM(GOOD_REPLY)))

        first = asyncio.create_task(manager.run("u1", HOLDINGS))
        await asyncio.sleep(0)
        first_run = manager.get_run("u1")
        second = asyncio.create_task(manager.run("u1", HOLDINGS))
        await asyncio.sleep(0)
        gate.set()

        stale, fresh = await asyncio.gather(first, second)

        assert stale.status == "cancelled"
        assert fresh.status == "success"
        assert fresh.themes
        assert first_run.status == "cancelled"
        assert manager.get_run("u1").status == "completed"
        assert manager.active_users == []

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self, make_deps):
        gate = asyncio.Event()
        manager = RunManager(deps=make_deps(GatedNewsSource(gate, searchable=False), FakeLLM(GOOD_REPLY)))

        caller = asyncio.create_task(manager.run("u1", HOLDINGS))
        await asyncio.sleep(0)
        run = manager.get_run("u1")
        caller.cancel()

        with pytest.raises(asyncio.CancelledError):
            await caller
        await asyncio.wait([run.task])
        assert run.task.cancelled()
        assert run.status == "cancelled"

    @pytest.mark.asyncio
    async def test_failure_marks_run_and_raises(self, make_deps):
        down = httpx.ConnectError("down")
        news = FakeNewsSource(
            searchable=False,
            feeds={s["name"]: down for s in WIRE_SOURCES + AGGREGATOR_SOURCES},
            supplemental={s["name"]: down for s in SUPPLEMENTAL_SOURCES},
        )
        manager = RunManager(deps=make_deps(news, FakeLLM(GOOD_REPLY)))

        with pytest.raises(NoDataAvailableError):
            await manager.run("u2", HOLDINGS)
        assert manager.get_run("u2").status == "failed"

    @pytest.mark.asyncio
    async def test_users_are_independent(self, make_deps):
        manager = RunManager(deps=make_deps(news_day(), FakeLLM(GOOD_REPLY)))
        a, b = await asyncio.gather(manager.run("a", HOLDINGS), manager.run("b", HOLDINGS))
        assert a.status == b.status == "success"
        assert a.user_id == "a" and b.user_id == "b"
