"""Schema objects for core entities."""

from .fund_score import FundAttributes, FundEnrichmentCandidate

__all__ = ["FundEnrichmentCandidate", "FundAttributes"]
