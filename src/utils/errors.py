"""Exceptions shared by the extraction clients and the enrichment pass."""

from __future__ import annotations


class ExternalLookupError(Exception):
    """A single external lookup failed; recoverable for the fund being processed."""

    def __init__(self, source: str, key: str, message: str) -> None:
        super().__init__(f"{source} lookup failed for {key}: {message}")
        self.source = source
        self.key = key
        self.message = message
