"""
Directions utilities for RouteWise.

This module wraps network calls to OSRM (Open Source Routing Machine)
to fetch a drivable path between two coordinates. Directions are only
used to annotate a tour that has already been ordered: they never
influence the visiting sequence. If OSRM is unavailable or fails for a
leg, the leg falls back to the straight great‑circle segment with a
duration estimated from an average speed.

Requests go through a ``RequestThrottle`` which limits how many run at
once and enforces a minimum interval between request starts. The
public OSRM demo server allows roughly one request per second.

Example usage:

    provider = OSRMDirections()
    legs = await annotate_tour(start, tour, provider)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence, TypeVar

import requests

from routewise.config import settings
from routewise.models import Coordinate, Stop
from routewise.routing import estimate_duration_s, haversine_distance

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Directions:
    path: List[Coordinate]
    distance_km: float
    duration_s: float


@dataclass
class TourLeg:
    origin: Coordinate
    destination: Stop
    path: List[Coordinate] = field(default_factory=list)
    distance_km: float = 0.0
    duration_s: float = 0.0
    estimated: bool = False  # True when the leg is a straight-line fallback


class DirectionsProvider(Protocol):
    async def path(self, origin: Coordinate, destination: Coordinate) -> Optional[Directions]:
        ...


class RequestThrottle:
    """Bounded-concurrency queue with a minimum interval between request starts."""

    def __init__(
        self,
        max_concurrency: Optional[int] = None,
        min_interval: Optional[float] = None,
    ) -> None:
        self.max_concurrency = (
            max_concurrency if max_concurrency is not None else settings.directions_max_concurrency
        )
        self.min_interval = (
            min_interval if min_interval is not None else settings.directions_min_interval_seconds
        )
        self._slots = asyncio.Semaphore(self.max_concurrency)
        self._start_lock = asyncio.Lock()
        self._last_start: Optional[float] = None

    async def _wait_turn(self) -> None:
        async with self._start_lock:
            loop = asyncio.get_running_loop()
            if self._last_start is not None:
                delay = self._last_start + self.min_interval - loop.time()
                if delay > 0:
                    await asyncio.sleep(delay)
            self._last_start = loop.time()

    async def run(self, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        async with self._slots:
            await self._wait_turn()
            return await func(*args)


class OSRMDirections:
    """Directions provider backed by the OSRM ``route`` service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        profile: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url).rstrip("/")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.directions_timeout_seconds

    def fetch_route(self, origin: Coordinate, destination: Coordinate) -> Optional[Directions]:
        """Call OSRM route service for a single leg.

        Returns:
            ``Directions`` with the path as coordinates, the road distance
            in kilometers and the duration in seconds, or ``None`` on failure.
        """
        # OSRM expects lon,lat order and semicolon separated list
        locs = f"{origin.longitude},{origin.latitude};{destination.longitude},{destination.latitude}"
        url = f"{self.base_url}/route/v1/{self.profile}/{locs}"
        params = {"overview": "full", "geometries": "geojson"}
        try:
            resp = requests.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("OSRM route request failed: %s", exc)
            return None
        routes = data.get("routes") or []
        if data.get("code") != "Ok" or not routes:
            logger.warning("OSRM returned no route (code=%s)", data.get("code"))
            return None
        route = routes[0]
        try:
            path = [Coordinate(lat, lon) for lon, lat in route["geometry"]["coordinates"]]
            # OSRM returns distances in meters and durations in seconds
            return Directions(
                path=path,
                distance_km=route["distance"] / 1000.0,
                duration_s=float(route["duration"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Malformed OSRM route payload: %s", exc)
            return None

    async def path(self, origin: Coordinate, destination: Coordinate) -> Optional[Directions]:
        return await asyncio.to_thread(self.fetch_route, origin, destination)


def straight_leg(origin: Coordinate, destination: Stop, speed_kmh: Optional[float] = None) -> TourLeg:
    """Build a leg from the straight segment between ``origin`` and the stop."""
    speed = speed_kmh if speed_kmh is not None else settings.fallback_speed_kmh
    distance = haversine_distance(origin, destination.coordinate)
    return TourLeg(
        origin=origin,
        destination=destination,
        path=[origin, destination.coordinate],
        distance_km=distance,
        duration_s=estimate_duration_s(distance, speed),
        estimated=True,
    )


async def annotate_tour(
    start: Coordinate,
    tour: Sequence[Stop],
    provider: DirectionsProvider,
    throttle: Optional[RequestThrottle] = None,
    speed_kmh: Optional[float] = None,
) -> List[TourLeg]:
    """Fetch directions for every leg of an ordered tour.

    Legs run from ``start`` to the first stop and then from stop to
    stop. The order of ``tour`` is kept as is. Stops without a
    coordinate are skipped.

    Args:
        start: Courier's starting coordinate.
        tour: Stops in visiting order.
        provider: Directions provider queried once per leg.
        throttle: Request throttle, a fresh default one if omitted.
        speed_kmh: Speed for the straight‑line fallback.

    Returns:
        One ``TourLeg`` per stop, in tour order.
    """
    throttle = throttle or RequestThrottle()
    stops = [stop for stop in tour if stop.coordinate is not None]
    origins = [start] + [stop.coordinate for stop in stops[:-1]]

    async def fetch(origin: Coordinate, stop: Stop) -> TourLeg:
        try:
            directions = await throttle.run(provider.path, origin, stop.coordinate)
        except Exception as exc:
            logger.warning("Directions to stop %s failed: %s", stop.id, exc)
            directions = None
        if directions is None:
            return straight_leg(origin, stop, speed_kmh)
        return TourLeg(
            origin=origin,
            destination=stop,
            path=directions.path,
            distance_km=directions.distance_km,
            duration_s=directions.duration_s,
        )

    return list(await asyncio.gather(*(fetch(o, s) for o, s in zip(origins, stops))))
