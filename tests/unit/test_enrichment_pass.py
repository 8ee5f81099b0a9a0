from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta
from pathlib import Path
import sys
import tempfile
import time
import unittest

import httpx
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "src"))

from config.settings import EnrichmentSettings
from db.tables import fund_quality_scores, metadata
from extract.fund_attribute_client import FundAttributeResolver
from load.fund_score_cache import FundScoreCache
from models.enums import EnrichmentState
from models.schemas import FundAttributes, FundEnrichmentCandidate
from services.enrichment_service import enrich_fund, is_fresh, run_enrichment_pass
from utils.errors import ExternalLookupError
from utils.pacing import FixedDelayPacer, NoDelayPacer

NOW = datetime(2026, 3, 1, 12, 0, 0)

S = EnrichmentState


class FakeIdentityResolver:
    def __init__(self, isins: dict[int, str | Exception | None], calls: list[tuple[str, object]]) -> None:
        self.isins = isins
        self.calls = calls

    async def resolve_isin(self, scheme_code: int | str) -> str | None:
        self.calls.append(("identity", scheme_code))
        result = self.isins.get(int(scheme_code))
        if isinstance(result, Exception):
            raise result
        return result


class FakeAttributeResolver:
    def __init__(self, attributes: dict[str, FundAttributes | Exception | None], calls: list[tuple[str, object]]) -> None:
        self.attributes = attributes
        self.calls = calls

    async def fetch_attributes(self, isin: str) -> FundAttributes | None:
        self.calls.append(("attributes", isin))
        result = self.attributes.get(isin)
        if isinstance(result, Exception):
            raise result
        return result


class CountingPacer:
    def __init__(self) -> None:
        self.waits = 0

    async def wait(self) -> None:
        self.waits += 1


def _candidate(manager: str | None = None, enriched_days_ago: float | None = None) -> FundEnrichmentCandidate:
    updated_at = NOW - timedelta(days=enriched_days_ago) if enriched_days_ago is not None else None
    return FundEnrichmentCandidate(
        fund_name="FUND_A",
        scheme_name="Fund A Growth",
        fund_house="House A",
        scheme_code=101,
        fund_manager=manager,
        fund_manager_updated_at=updated_at,
    )


class TestEnrichmentStateMachine(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.calls: list[tuple[str, object]] = []
        self.pacer = CountingPacer()

    async def _enrich(
        self,
        candidate: FundEnrichmentCandidate,
        isins: dict[int, str | Exception | None] | None = None,
        attributes: dict[str, FundAttributes | Exception | None] | None = None,
    ):
        return await enrich_fund(
            candidate,
            FakeIdentityResolver(isins if isins is not None else {101: "INF000A"}, self.calls),
            FakeAttributeResolver(
                attributes if attributes is not None else {"INF000A": FundAttributes("New Manager", date(2012, 1, 1))},
                self.calls,
            ),
            self.pacer,
            now=NOW,
            freshness_days=30,
        )

    async def test_recently_enriched_fund_is_skipped_without_calls(self) -> None:
        outcome = await self._enrich(_candidate("Old Manager", enriched_days_ago=10))

        self.assertEqual(outcome.path, (S.PENDING, S.SKIPPED))
        self.assertEqual(self.calls, [])
        self.assertEqual(self.pacer.waits, 0)

    async def test_stale_fund_is_re_enriched(self) -> None:
        outcome = await self._enrich(_candidate("Old Manager", enriched_days_ago=31))

        self.assertEqual(outcome.path, (S.PENDING, S.RESOLVING_IDENTITY, S.RESOLVING_ATTRIBUTES, S.UPDATED))
        self.assertEqual(outcome.attributes.fund_manager, "New Manager")
        self.assertEqual(self.pacer.waits, 2)

    async def test_fund_without_manager_is_never_skipped(self) -> None:
        outcome = await self._enrich(_candidate(None, enriched_days_ago=1))

        self.assertEqual(outcome.state, S.UPDATED)

    async def test_identity_failure_is_not_found(self) -> None:
        failure = ExternalLookupError("scheme_identity", "101", "HTTP 500")
        outcome = await self._enrich(_candidate(), isins={101: failure})

        self.assertEqual(outcome.path, (S.PENDING, S.RESOLVING_IDENTITY, S.NOT_FOUND))
        self.assertIn("HTTP 500", outcome.reason)
        self.assertEqual(self.calls, [("identity", 101)])
        self.assertEqual(self.pacer.waits, 1)

    async def test_identity_without_isin_is_not_found(self) -> None:
        outcome = await self._enrich(_candidate(), isins={101: None})

        self.assertEqual(outcome.state, S.NOT_FOUND)
        self.assertEqual(outcome.reason, "no ISIN found")

    async def test_attribute_failure_is_not_found(self) -> None:
        failure = ExternalLookupError("fund_attributes", "INF000A", "redirect response without a usable target URL")
        outcome = await self._enrich(_candidate(), attributes={"INF000A": failure})

        self.assertEqual(outcome.path, (S.PENDING, S.RESOLVING_IDENTITY, S.RESOLVING_ATTRIBUTES, S.NOT_FOUND))
        self.assertEqual(outcome.isin, "INF000A")
        self.assertEqual(self.pacer.waits, 2)

    async def test_attributes_without_manager_are_not_found(self) -> None:
        for attributes in (None, FundAttributes(None, date(2012, 1, 1))):
            with self.subTest(attributes=attributes):
                outcome = await self._enrich(_candidate(), attributes={"INF000A": attributes})
                self.assertEqual(outcome.state, S.NOT_FOUND)
                self.assertEqual(outcome.reason, "no fund manager found")

    def test_freshness_window_boundary(self) -> None:
        self.assertTrue(is_fresh(_candidate("M", enriched_days_ago=29.99), NOW, 30))
        self.assertFalse(is_fresh(_candidate("M", enriched_days_ago=30), NOW, 30))
        self.assertFalse(is_fresh(_candidate("", enriched_days_ago=1), NOW, 30))
        self.assertFalse(is_fresh(_candidate("M", enriched_days_ago=None), NOW, 30))


class TestEnrichmentOverHttp(unittest.IsolatedAsyncioTestCase):
    """Runs the state machine against the real attribute client on a mocked transport."""

    async def _enrich_with_bodies(self, bodies: list[str]):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, text=bodies[len(requests) - 1])

        calls: list[tuple[str, object]] = []
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            outcome = await enrich_fund(
                _candidate(),
                FakeIdentityResolver({101: "INF000A"}, calls),
                FundAttributeResolver(client, "https://proxy.test/kuvera"),
                NoDelayPacer(),
                now=NOW,
                freshness_days=30,
            )
        return outcome, requests

    async def test_malformed_redirect_target_is_not_found(self) -> None:
        for body in ("Redirecting to http://[broken/fund.json", "Redirecting to https://api.test/a\x00b"):
            with self.subTest(body=body):
                outcome, requests = await self._enrich_with_bodies([body])

                self.assertEqual(outcome.path, (S.PENDING, S.RESOLVING_IDENTITY, S.RESOLVING_ATTRIBUTES, S.NOT_FOUND))
                self.assertEqual(outcome.isin, "INF000A")
                self.assertEqual(len(requests), 1)

    async def test_followed_redirect_is_updated(self) -> None:
        bodies = [
            "Redirecting to https://api.test/fund.json",
            '[{"fund_manager": "A. Manager", "start_date": "2004-06-03"}]',
        ]
        outcome, requests = await self._enrich_with_bodies(bodies)

        self.assertEqual(outcome.state, S.UPDATED)
        self.assertEqual(outcome.attributes, FundAttributes("A. Manager", date(2004, 6, 3)))
        self.assertEqual(str(requests[1].url), "https://api.test/fund.json")


class TestEnrichmentPass(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.engine = create_engine(f"sqlite:///{Path(self.tmp.name) / 'enrich.db'}")
        metadata.create_all(self.engine)
        self.cache = FundScoreCache(self.engine)
        self.settings = EnrichmentSettings(
            scheme_api_base_url="https://api.mfapi.test/mf",
            attribute_api_base_url="https://proxy.test/kuvera",
            pacing_delay_seconds=0.0,
            request_timeout_seconds=10.0,
            freshness_days=30,
        )
        self.calls: list[tuple[str, object]] = []

    def tearDown(self) -> None:
        self.engine.dispose()
        self.tmp.cleanup()

    def _seed(self) -> None:
        self.cache.put("FUND_B", {"scheme_name": "Fund B", "mfapi_scheme_code": 102})
        self.cache.put(
            "FUND_A",
            {"scheme_name": "Fund A", "mfapi_scheme_code": 101},
            set_once={"fund_start_date": date(2001, 1, 1)},
        )
        self.cache.put("FUND_C", {"scheme_name": "Fund C without scheme code"})
        self.cache.put(
            "FUND_D",
            {"mfapi_scheme_code": 104, "fund_manager": "Fresh Manager",
             "fund_manager_updated_at": NOW - timedelta(days=10)},
        )
        self.cache.put("FUND_E", {"mfapi_scheme_code": 105})

    def _resolvers(self, stop_event: asyncio.Event | None = None):
        identity = FakeIdentityResolver({101: "INF000A", 102: "INF000B", 104: "INF000D", 105: None}, self.calls)
        attributes = FakeAttributeResolver(
            {
                "INF000A": FundAttributes("Manager A", date(2005, 5, 5)),
                "INF000B": FundAttributes("Manager B1; Manager B2", date(2010, 2, 3)),
            },
            self.calls,
        )
        if stop_event is not None:
            original = identity.resolve_isin

            async def resolve_then_stop(scheme_code: int | str) -> str | None:
                stop_event.set()
                return await original(scheme_code)

            identity.resolve_isin = resolve_then_stop  # type: ignore[method-assign]
        return identity, attributes

    async def test_pass_counts_outcomes_and_writes_enrichment_fields(self) -> None:
        self._seed()
        identity, attributes = self._resolvers()

        report = await run_enrichment_pass(
            self.engine, self.settings, identity, attributes, NoDelayPacer(), now_fn=lambda: NOW
        )

        self.assertEqual((report.updated, report.skipped, report.not_found), (2, 1, 1))
        self.assertFalse(report.cancelled)
        self.assertEqual([outcome.fund_name for outcome in report.outcomes], ["FUND_A", "FUND_B", "FUND_D", "FUND_E"])
        self.assertEqual(
            self.calls,
            [
                ("identity", 101),
                ("attributes", "INF000A"),
                ("identity", 102),
                ("attributes", "INF000B"),
                ("identity", 105),
            ],
        )

        fund_a = self.cache.get("FUND_A")
        self.assertEqual(fund_a["fund_manager"], "Manager A")
        self.assertEqual(fund_a["fund_manager_updated_at"], NOW)
        self.assertEqual(fund_a["fund_start_date"], date(2001, 1, 1))
        self.assertEqual(fund_a["scheme_name"], "Fund A")

        fund_b = self.cache.get("FUND_B")
        self.assertEqual(fund_b["fund_manager"], "Manager B1; Manager B2")
        self.assertEqual(fund_b["fund_start_date"], date(2010, 2, 3))

        self.assertIsNone(self.cache.get("FUND_C")["fund_manager"])
        self.assertEqual(self.cache.get("FUND_D")["fund_manager"], "Fresh Manager")
        self.assertIsNone(self.cache.get("FUND_E")["fund_manager"])

    async def test_second_pass_skips_freshly_enriched_funds(self) -> None:
        self._seed()
        identity, attributes = self._resolvers()
        await run_enrichment_pass(self.engine, self.settings, identity, attributes, NoDelayPacer(), now_fn=lambda: NOW)
        self.calls.clear()

        report = await run_enrichment_pass(
            self.engine, self.settings, identity, attributes, NoDelayPacer(),
            now_fn=lambda: NOW + timedelta(days=1),
        )

        self.assertEqual((report.updated, report.skipped, report.not_found), (0, 3, 1))
        self.assertEqual(self.calls, [("identity", 105)])

    async def test_pacing_delay_applies_after_every_call(self) -> None:
        for code, name in ((101, "FUND_A"), (102, "FUND_B"), (103, "FUND_C")):
            self.cache.put(name, {"mfapi_scheme_code": code})
        identity = FakeIdentityResolver({101: "I1", 102: "I2", 103: "I3"}, self.calls)
        attributes = FakeAttributeResolver({"I1": FundAttributes("M1"), "I2": None, "I3": FundAttributes("M3")}, self.calls)
        delay = 0.02

        started = time.monotonic()
        report = await run_enrichment_pass(
            self.engine, self.settings, identity, attributes, FixedDelayPacer(delay), now_fn=lambda: NOW
        )
        elapsed = time.monotonic() - started

        self.assertEqual(report.total, 3)
        self.assertGreaterEqual(elapsed, 3 * 2 * delay)
        self.assertEqual([call for kind, call in self.calls if kind == "identity"], [101, 102, 103])

    async def test_stop_event_halts_between_funds(self) -> None:
        self._seed()
        stop_event = asyncio.Event()
        identity, attributes = self._resolvers(stop_event)

        report = await run_enrichment_pass(
            self.engine, self.settings, identity, attributes, NoDelayPacer(),
            stop_event=stop_event, now_fn=lambda: NOW,
        )

        self.assertTrue(report.cancelled)
        self.assertEqual(report.total, 1)
        self.assertEqual(report.outcomes[0].state, S.UPDATED)
        self.assertEqual(self.cache.get("FUND_A")["fund_manager"], "Manager A")
        self.assertIsNone(self.cache.get("FUND_B")["fund_manager"])

    async def test_missing_cache_table_is_fatal(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(text(f"DROP TABLE {fund_quality_scores.name}"))
        identity, attributes = self._resolvers()

        with self.assertRaises(SQLAlchemyError):
            await run_enrichment_pass(self.engine, self.settings, identity, attributes, NoDelayPacer())


if __name__ == "__main__":
    unittest.main()
