"""Readiness gate for the external map rendering library."""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

from . import config

logger = logging.getLogger(__name__)


class ReadinessOutcome(str, Enum):
    READY = "ready"
    TIMEOUT = "timeout"
    FAILED = "failed"


class MapReadinessGate:
    """Resolves once the map capability is confirmed usable.

    The loader calls mark_ready() or mark_failed(); consumers await wait(),
    which never raises on timeout and reports a typed outcome instead.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._outcome: Optional[ReadinessOutcome] = None
        self.failure_reason: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self._outcome is ReadinessOutcome.READY

    @property
    def outcome(self) -> Optional[ReadinessOutcome]:
        return self._outcome

    def mark_ready(self) -> None:
        if self._outcome is not None:
            return
        self._outcome = ReadinessOutcome.READY
        self._event.set()

    def mark_failed(self, reason: str) -> None:
        if self._outcome is not None:
            return
        logger.error("Map library failed to load: %s", reason)
        self._outcome = ReadinessOutcome.FAILED
        self.failure_reason = reason
        self._event.set()

    async def wait(self, timeout: Optional[float] = None) -> ReadinessOutcome:
        if self._outcome is not None:
            return self._outcome
        limit = config.MAP_READY_TIMEOUT_SECONDS if timeout is None else timeout
        try:
            await asyncio.wait_for(self._event.wait(), timeout=limit)
        except asyncio.TimeoutError:
            logger.warning("Map library not ready after %.1fs", limit)
            return ReadinessOutcome.TIMEOUT
        return self._outcome or ReadinessOutcome.FAILED
