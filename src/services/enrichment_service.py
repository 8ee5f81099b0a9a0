"""Enrich cached funds with manager names and inception dates from external lookups.

Each fund walks an explicit state machine::

    PENDING -> SKIPPED | RESOLVING_IDENTITY
    RESOLVING_IDENTITY -> NOT_FOUND | RESOLVING_ATTRIBUTES
    RESOLVING_ATTRIBUTES -> NOT_FOUND | UPDATED

Funds are processed one at a time in ascending fund-name order, and the pacer
is awaited after every external call whether or not it succeeded. Lookup
failures end in NOT_FOUND and never abort the pass; database failures do.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import time
from typing import Protocol

import structlog
from sqlalchemy.engine import Engine

from config.settings import EnrichmentSettings
from extract.holdings_reader import read_enrichment_candidates
from load.fund_score_cache import FundScoreCache
from models.enums import EnrichmentState
from models.schemas import FundAttributes, FundEnrichmentCandidate
from services.aggregation_service import utcnow
from utils.errors import ExternalLookupError
from utils.pacing import Pacer

logger = structlog.get_logger(__name__)


class IdentityResolver(Protocol):
    async def resolve_isin(self, scheme_code: int | str) -> str | None: ...


class AttributeResolver(Protocol):
    async def fetch_attributes(self, isin: str) -> FundAttributes | None: ...


@dataclass(frozen=True)
class EnrichmentOutcome:
    fund_name: str
    path: tuple[EnrichmentState, ...]
    isin: str | None = None
    attributes: FundAttributes | None = None
    reason: str | None = None

    @property
    def state(self) -> EnrichmentState:
        return self.path[-1]


@dataclass
class EnrichmentReport:
    updated: int = 0
    skipped: int = 0
    not_found: int = 0
    cancelled: bool = False
    elapsed_seconds: float = 0.0
    outcomes: list[EnrichmentOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.updated + self.skipped + self.not_found

    def record(self, outcome: EnrichmentOutcome) -> None:
        if not outcome.state.is_terminal:
            raise ValueError(f"Outcome for {outcome.fund_name} ended in non-terminal state {outcome.state}")
        self.outcomes.append(outcome)
        if outcome.state is EnrichmentState.UPDATED:
            self.updated += 1
        elif outcome.state is EnrichmentState.SKIPPED:
            self.skipped += 1
        else:
            self.not_found += 1


def is_fresh(candidate: FundEnrichmentCandidate, now: datetime, freshness_days: int) -> bool:
    """A fund is fresh when it has a manager enriched less than ``freshness_days`` ago."""
    if not candidate.fund_manager or candidate.fund_manager_updated_at is None:
        return False
    elapsed = now.replace(microsecond=0) - candidate.fund_manager_updated_at.replace(microsecond=0)
    return elapsed < timedelta(days=freshness_days)


async def enrich_fund(
    candidate: FundEnrichmentCandidate,
    identity_resolver: IdentityResolver,
    attribute_resolver: AttributeResolver,
    pacer: Pacer,
    now: datetime,
    freshness_days: int,
) -> EnrichmentOutcome:
    """Drive one fund from PENDING to a terminal state. Never raises for lookup failures."""
    path = [EnrichmentState.PENDING]

    def finish(state: EnrichmentState, **kwargs) -> EnrichmentOutcome:
        path.append(state)
        return EnrichmentOutcome(fund_name=candidate.fund_name, path=tuple(path), **kwargs)

    if is_fresh(candidate, now, freshness_days):
        return finish(EnrichmentState.SKIPPED, reason="recently enriched")

    path.append(EnrichmentState.RESOLVING_IDENTITY)
    try:
        isin = await identity_resolver.resolve_isin(candidate.scheme_code)
    except ExternalLookupError as exc:
        isin, reason = None, str(exc)
    else:
        reason = "no ISIN found"
    await pacer.wait()

    if not isin:
        return finish(EnrichmentState.NOT_FOUND, reason=reason)

    path.append(EnrichmentState.RESOLVING_ATTRIBUTES)
    try:
        attributes = await attribute_resolver.fetch_attributes(isin)
    except ExternalLookupError as exc:
        attributes, reason = None, str(exc)
    else:
        reason = "no fund manager found"
    await pacer.wait()

    if attributes is None or not attributes.fund_manager:
        return finish(EnrichmentState.NOT_FOUND, isin=isin, reason=reason)

    return finish(EnrichmentState.UPDATED, isin=isin, attributes=attributes)


def apply_outcome(cache: FundScoreCache, outcome: EnrichmentOutcome, now: datetime) -> None:
    if outcome.state is not EnrichmentState.UPDATED or outcome.attributes is None:
        return
    cache.put(
        outcome.fund_name,
        {"fund_manager": outcome.attributes.fund_manager, "fund_manager_updated_at": now},
        set_once={"fund_start_date": outcome.attributes.inception_date},
    )


def _log_outcome(index: int, total: int, candidate: FundEnrichmentCandidate, outcome: EnrichmentOutcome) -> None:
    log = logger.bind(position=f"{index}/{total}", fund=candidate.label, state=outcome.state.value)
    attributes = outcome.attributes
    if outcome.state is EnrichmentState.UPDATED and attributes is not None:
        log.info(
            "fund_enriched",
            fund_manager=attributes.fund_manager,
            inception_date=attributes.inception_date,
        )
    elif outcome.state is EnrichmentState.SKIPPED:
        log.info("fund_skipped", fund_manager=candidate.fund_manager, last_enriched=candidate.fund_manager_updated_at)
    else:
        log.warning("fund_not_found", isin=outcome.isin, reason=outcome.reason)


async def run_enrichment_pass(
    engine: Engine,
    settings: EnrichmentSettings,
    identity_resolver: IdentityResolver,
    attribute_resolver: AttributeResolver,
    pacer: Pacer,
    stop_event: asyncio.Event | None = None,
    now_fn: Callable[[], datetime] = utcnow,
) -> EnrichmentReport:
    """Enrich every fund with a known scheme code. Database errors propagate."""
    started = time.monotonic()
    candidates = read_enrichment_candidates(engine)
    cache = FundScoreCache(engine)
    report = EnrichmentReport()
    logger.info("enrichment_started", candidates=len(candidates), freshness_days=settings.freshness_days)

    for index, candidate in enumerate(candidates, start=1):
        if stop_event is not None and stop_event.is_set():
            report.cancelled = True
            logger.warning("enrichment_cancelled", processed=report.total, remaining=len(candidates) - report.total)
            break

        now = now_fn()
        outcome = await enrich_fund(
            candidate,
            identity_resolver,
            attribute_resolver,
            pacer,
            now=now,
            freshness_days=settings.freshness_days,
        )
        apply_outcome(cache, outcome, now)
        report.record(outcome)
        _log_outcome(index, len(candidates), candidate, outcome)

    report.elapsed_seconds = time.monotonic() - started
    logger.info(
        "enrichment_finished",
        updated=report.updated,
        skipped=report.skipped,
        not_found=report.not_found,
        cancelled=report.cancelled,
        elapsed_seconds=round(report.elapsed_seconds, 2),
    )
    return report
