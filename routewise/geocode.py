"""
Geocoding utilities for RouteWise.

This module provides a thin wrapper around the `geopy` library to
convert free‑form addresses into geographic coordinates. It uses
OpenStreetMap's Nominatim service via geopy's API, throttled with
geopy's ``RateLimiter`` so that concurrent lookups respect Nominatim's
usage policy.

The optimiser talks to any object implementing the ``Geocoder``
protocol, so tests and host applications can plug in their own
provider:

    class FixedGeocoder:
        async def resolve(self, address):
            return Coordinate(35.6586, 139.7454)

A geocoder returns ``None`` if the address cannot be geocoded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from geopy.exc import GeocoderServiceError, GeocoderTimedOut
from geopy.extra.rate_limiter import RateLimiter
from geopy.geocoders import Nominatim

from routewise.config import settings
from routewise.models import Coordinate

logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    async def resolve(self, address: str) -> Optional[Coordinate]:
        ...


class NominatimGeocoder:
    """Resolve addresses with Nominatim.

    Blocking geopy calls run in a worker thread so the event loop stays
    free while a batch of stops is being resolved. If a lookup times
    out or the service errors, the request is retried once with a
    longer timeout. Other errors are logged and ``None`` is returned.
    """

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_timeout: Optional[float] = None,
        min_delay_seconds: Optional[float] = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else settings.geocode_timeout_seconds
        self.retry_timeout = (
            retry_timeout if retry_timeout is not None else settings.geocode_retry_timeout_seconds
        )
        self._geocoder = Nominatim(user_agent=user_agent or settings.nominatim_user_agent)
        delay = min_delay_seconds if min_delay_seconds is not None else settings.geocode_min_delay_seconds
        # retries are handled below with a longer timeout
        self._geocode = RateLimiter(
            self._geocoder.geocode,
            min_delay_seconds=delay,
            max_retries=0,
            swallow_exceptions=False,
        )

    def geocode_address(self, address: str) -> Optional[Coordinate]:
        """Geocode an address and return its coordinate or ``None``.

        Args:
            address: Free form text to geocode.

        Returns:
            A ``Coordinate`` if geocoding succeeds, otherwise ``None``.
        """
        if not address or not address.strip():
            return None
        try:
            location = self._geocode(address, timeout=self.timeout)
        except (GeocoderTimedOut, GeocoderServiceError) as exc:
            logger.debug("Geocoding %r failed (%s), retrying once", address, exc)
            try:
                location = self._geocode(address, timeout=self.retry_timeout)
            except Exception as retry_exc:
                logger.warning("Geocoding %r failed after retry: %s", address, retry_exc)
                return None
        except Exception as exc:
            logger.warning("Geocoding %r failed: %s", address, exc)
            return None
        if location is None:
            return None
        return Coordinate(location.latitude, location.longitude)

    async def resolve(self, address: str) -> Optional[Coordinate]:
        return await asyncio.to_thread(self.geocode_address, address)
