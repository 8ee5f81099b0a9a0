"""Schemas for fund score cache rows and the enrichment inputs derived from them."""

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(slots=True)
class FundEnrichmentCandidate:
    fund_name: str
    scheme_name: str | None
    fund_house: str | None
    scheme_code: int
    fund_manager: str | None = None
    fund_manager_updated_at: datetime | None = None

    @property
    def label(self) -> str:
        return self.scheme_name or self.fund_name


@dataclass(slots=True, frozen=True)
class FundAttributes:
    fund_manager: str | None
    inception_date: date | None = None
