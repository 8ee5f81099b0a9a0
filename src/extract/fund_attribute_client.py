"""Resolve an ISIN to fund manager name(s) and the fund inception date.

The attribute proxy sometimes answers with a plain-text body such as
``Redirecting to https://api.example/mf/ISIN`` instead of an HTTP redirect.
That sentinel is followed exactly once; a second sentinel is not followed.
"""

from __future__ import annotations

from datetime import date
import json
from typing import Any
from urllib.parse import urlparse

import httpx

from models.schemas import FundAttributes
from utils.errors import ExternalLookupError

SOURCE = "fund_attributes"
REDIRECT_PREFIX = "Redirecting"
MANAGER_SEPARATOR = "; "

_HEADERS = {"Accept": "application/json"}


def redirect_target(body: str) -> str | None:
    """Extract the URL from a redirect sentinel body, or None when it is missing or malformed."""
    _, sep, tail = body.partition("to ")
    if not sep:
        return None
    target = tail.strip()
    try:
        parsed = urlparse(target)
    except ValueError:
        return None
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    return target


def parse_manager(value: Any) -> str | None:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        names = [str(name).strip() for name in value if name is not None and str(name).strip()]
        return MANAGER_SEPARATOR.join(names) or None
    return None


def parse_inception_date(value: Any) -> date | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def parse_attributes(payload: Any) -> FundAttributes | None:
    record = payload
    if isinstance(payload, list):
        if not payload:
            return None
        record = payload[0]
    if record is None:
        return None
    if not isinstance(record, dict):
        raise ValueError(f"unexpected payload type {type(record).__name__}")
    return FundAttributes(
        fund_manager=parse_manager(record.get("fund_manager")),
        inception_date=parse_inception_date(record.get("start_date")),
    )


class FundAttributeResolver:
    def __init__(self, client: httpx.AsyncClient, base_url: str, timeout_seconds: float = 10.0) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds

    async def fetch_attributes(self, isin: str) -> FundAttributes | None:
        body = await self._get_text(f"{self._base_url}/{isin}", isin)

        if body.startswith(REDIRECT_PREFIX):
            target = redirect_target(body)
            if target is None:
                raise ExternalLookupError(SOURCE, isin, "redirect response without a usable target URL")
            body = await self._get_text(target, isin)

        try:
            return parse_attributes(json.loads(body))
        except ValueError as exc:
            raise ExternalLookupError(SOURCE, isin, f"malformed response: {exc}") from exc

    async def _get_text(self, url: str, isin: str) -> str:
        try:
            response = await self._client.get(
                url,
                headers=_HEADERS,
                timeout=self._timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExternalLookupError(SOURCE, isin, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ExternalLookupError(SOURCE, isin, f"{type(exc).__name__}: {exc}") from exc
        except httpx.InvalidURL as exc:
            raise ExternalLookupError(SOURCE, isin, f"invalid URL: {exc}") from exc
        return response.text
