"""Resolve an internal scheme code to a security identifier (ISIN)."""

from __future__ import annotations

from typing import Any

import httpx

from utils.errors import ExternalLookupError

SOURCE = "scheme_identity"


class SchemeIdentityResolver:
    """Looks up ``meta.isin_growth`` (falling back to the dividend-reinvestment ISIN)."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, timeout_seconds: float = 10.0) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds

    async def resolve_isin(self, scheme_code: int | str) -> str | None:
        key = str(scheme_code)
        try:
            response = await self._client.get(f"{self._base_url}/{key}", timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ExternalLookupError(SOURCE, key, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ExternalLookupError(SOURCE, key, f"{type(exc).__name__}: {exc}") from exc
        except httpx.InvalidURL as exc:
            raise ExternalLookupError(SOURCE, key, f"invalid URL: {exc}") from exc
        except ValueError as exc:
            raise ExternalLookupError(SOURCE, key, "response is not valid JSON") from exc

        return _isin_from_payload(payload)


def _isin_from_payload(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    meta = payload.get("meta")
    if not isinstance(meta, dict):
        return None
    for field in ("isin_growth", "isin_div_reinvestment"):
        value = meta.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None
