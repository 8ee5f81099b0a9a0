"""Enums shared by the aggregation and enrichment pipelines."""

from enum import Enum


class EnrichmentState(str, Enum):
    PENDING = "pending"
    SKIPPED = "skipped"
    RESOLVING_IDENTITY = "resolving_identity"
    RESOLVING_ATTRIBUTES = "resolving_attributes"
    NOT_FOUND = "not_found"
    UPDATED = "updated"

    @property
    def is_terminal(self) -> bool:
        return self in {EnrichmentState.SKIPPED, EnrichmentState.NOT_FOUND, EnrichmentState.UPDATED}
