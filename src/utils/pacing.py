"""Pacing strategies that space out outbound calls to external APIs."""

from __future__ import annotations

import asyncio
from typing import Protocol


class Pacer(Protocol):
    async def wait(self) -> None:
        """Suspend before the next outbound call is allowed."""


class FixedDelayPacer:
    def __init__(self, delay_seconds: float) -> None:
        if delay_seconds < 0:
            raise ValueError(f"delay_seconds must be >= 0, got {delay_seconds}")
        self.delay_seconds = delay_seconds

    async def wait(self) -> None:
        await asyncio.sleep(self.delay_seconds)


class NoDelayPacer:
    async def wait(self) -> None:
        return None
