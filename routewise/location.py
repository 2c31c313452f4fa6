"""
Courier location tracking.

The host application owns the device's location services and pushes
each fix into a ``LocationTracker``. The optimiser only reads the most
recent coordinate, optionally waiting for the first fix to arrive.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from routewise.config import settings
from routewise.models import Coordinate

logger = logging.getLogger(__name__)


class LocationProvider(Protocol):
    @property
    def latest(self) -> Optional[Coordinate]:
        ...

    async def wait_for_fix(self, timeout: Optional[float] = None) -> Optional[Coordinate]:
        ...


class LocationTracker:
    """In-memory holder for the courier's latest coordinate."""

    def __init__(self, initial: Optional[Coordinate] = None) -> None:
        self._latest = initial
        self._has_fix = asyncio.Event()
        if initial is not None:
            self._has_fix.set()

    @property
    def latest(self) -> Optional[Coordinate]:
        return self._latest

    def update(self, coordinate: Coordinate) -> None:
        logger.debug("Location update: %s", coordinate)
        self._latest = coordinate
        self._has_fix.set()

    async def wait_for_fix(self, timeout: Optional[float] = None) -> Optional[Coordinate]:
        """Return the latest coordinate, waiting up to ``timeout`` seconds for a first fix.

        Returns ``None`` if no fix arrives in time.
        """
        if self._latest is not None:
            return self._latest
        if timeout is None:
            timeout = settings.location_timeout_seconds
        try:
            await asyncio.wait_for(self._has_fix.wait(), timeout)
        except asyncio.TimeoutError:
            logger.info("No location fix after %.1fs", timeout)
            return None
        return self._latest
