"""
Delivery route optimiser.

``RouteOptimizer`` orders a batch of delivery stops into a visiting
sequence starting from the courier's current position. It works in two
stages:

1. Coordinate resolution: every stop without a coordinate is geocoded
   concurrently, and all lookups are awaited before moving on. Stops
   that fail to resolve are left out of the tour and reported in
   ``OptimisationResult.unresolved``.
2. Tour construction: a nearest-neighbour tour over the resolved stops,
   refined by a bounded 2-opt search. Both use the same haversine
   distance matrix.

Example usage:

    optimizer = RouteOptimizer(NominatimGeocoder())
    tour = await optimizer.optimize(stops, Coordinate(28.6266, 77.3649))
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import List, Optional, Sequence, Tuple

from routewise.config import settings
from routewise.geocode import Geocoder
from routewise.location import LocationProvider
from routewise.models import Coordinate, OptimisationResult, RouteWiseError, Stop
from routewise.optimisation import nearest_neighbor, tour_length, two_opt
from routewise.routing import compute_haversine_matrix

logger = logging.getLogger(__name__)

Resolved = Tuple[Stop, Coordinate]


def _with_coordinate(stop: Stop, coordinate: Coordinate) -> Stop:
    """Copy of ``stop`` carrying its resolved coordinate; payload is shared, not copied."""
    if stop.coordinate == coordinate:
        return stop
    return dataclasses.replace(stop, coordinate=coordinate)


class OptimisationCancelled(RouteWiseError):
    """Raised when coordinate resolution is cancelled before it completes.

    ``finished`` holds the stops whose lookups completed before the
    cancellation and ``cancelled`` the stops whose lookups were stopped.
    """

    def __init__(self, finished: List[Stop], cancelled: List[Stop]) -> None:
        super().__init__(
            f"optimisation cancelled with {len(cancelled)} of "
            f"{len(finished) + len(cancelled)} lookups pending"
        )
        self.finished = finished
        self.cancelled = cancelled


class RouteOptimizer:
    def __init__(
        self,
        geocoder: Geocoder,
        max_passes: Optional[int] = None,
        max_concurrency: Optional[int] = None,
    ) -> None:
        self.geocoder = geocoder
        self.max_passes = max_passes if max_passes is not None else settings.two_opt_max_passes
        self.max_concurrency = (
            max_concurrency if max_concurrency is not None else settings.geocode_max_concurrency
        )

    async def _lookup(self, stop: Stop, slots: asyncio.Semaphore) -> Optional[Coordinate]:
        if stop.coordinate is not None:
            return stop.coordinate
        async with slots:
            try:
                return await self.geocoder.resolve(stop.address)
            except Exception as exc:
                logger.warning("Could not geocode stop %s (%r): %s", stop.id, stop.address, exc)
                return None

    async def resolve(
        self,
        stops: Sequence[Stop],
        cancel: Optional[asyncio.Event] = None,
    ) -> Tuple[List[Resolved], List[Stop]]:
        """Resolve a coordinate for every stop.

        Lookups run concurrently; the result keeps the input order of
        ``stops`` regardless of which lookup finished first.

        Returns:
            ``(resolved, unresolved)`` where ``resolved`` is a list of
            ``(stop, coordinate)`` pairs.

        Raises:
            OptimisationCancelled: ``cancel`` was set before every lookup finished.
        """
        slots = asyncio.Semaphore(self.max_concurrency)
        tasks = [asyncio.ensure_future(self._lookup(stop, slots)) for stop in stops]
        barrier = asyncio.gather(*tasks, return_exceptions=True)

        if cancel is not None and not barrier.done():
            watcher = asyncio.ensure_future(cancel.wait())
            try:
                await asyncio.wait({barrier, watcher}, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                # the caller was cancelled; stop and collect every lookup first
                for task in tasks:
                    task.cancel()
                watcher.cancel()
                await asyncio.gather(*tasks, watcher, return_exceptions=True)
                raise
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            if cancel.is_set() and not barrier.done():
                for task in tasks:
                    task.cancel()
                # every task is still awaited, cancelled or not
                await asyncio.gather(barrier, return_exceptions=True)
                done = [s for s, t in zip(stops, tasks) if not t.cancelled()]
                pending = [s for s, t in zip(stops, tasks) if t.cancelled()]
                logger.info("Resolution cancelled: %d done, %d cancelled", len(done), len(pending))
                raise OptimisationCancelled(done, pending)

        outcomes = await barrier
        resolved: List[Resolved] = []
        unresolved: List[Stop] = []
        for stop, outcome in zip(stops, outcomes):
            if isinstance(outcome, Coordinate):
                resolved.append((stop, outcome))
            else:
                if isinstance(outcome, BaseException):
                    logger.warning("Lookup for stop %s raised %r", stop.id, outcome)
                unresolved.append(stop)
        if unresolved:
            logger.warning("%d of %d stops could not be geocoded", len(unresolved), len(stops))
        return resolved, unresolved

    def optimize_resolved(self, resolved: Sequence[Resolved], start: Coordinate) -> OptimisationResult:
        """Order already resolved stops. Pure and synchronous.

        Each stop in the tour carries the coordinate it was ordered by.

        Args:
            resolved: ``(stop, coordinate)`` pairs; their order is the
                nearest-neighbour pool order and decides exact ties.
            start: Courier's starting coordinate, never reordered.
        """
        if not resolved:
            return OptimisationResult()
        coords = [tuple(start)] + [tuple(coord) for _, coord in resolved]
        dist_matrix = compute_haversine_matrix(coords)
        initial = nearest_neighbor(dist_matrix, start=0)
        route, passes = two_opt(initial, dist_matrix, max_passes=self.max_passes)
        result = OptimisationResult(
            tour=[_with_coordinate(*resolved[idx - 1]) for idx in route[1:]],
            distance_km=tour_length(route, dist_matrix),
            initial_distance_km=tour_length(initial, dist_matrix),
            passes=passes,
        )
        logger.info(
            "Optimised %d stops: %.2f km -> %.2f km in %d 2-opt passes",
            len(result.tour),
            result.initial_distance_km,
            result.distance_km,
            passes,
        )
        return result

    async def optimize_detailed(
        self,
        stops: Sequence[Stop],
        start: Coordinate,
        cancel: Optional[asyncio.Event] = None,
    ) -> OptimisationResult:
        """Resolve and order ``stops``, reporting the stops that were dropped.

        Stops in the returned tour carry their resolved coordinate, so the
        tour can be passed straight to :func:`routewise.directions.annotate_tour`.
        Stops repeating an earlier stop's ``id`` are ignored; they appear in
        neither ``tour`` nor ``unresolved``.
        """
        if not stops:
            return OptimisationResult()
        seen = set()
        unique = []
        for stop in stops:
            if stop.id not in seen:
                seen.add(stop.id)
                unique.append(stop)
        if len(unique) < len(stops):
            logger.warning("Ignoring %d stops with a repeated id", len(stops) - len(unique))
        resolved, unresolved = await self.resolve(unique, cancel)
        result = self.optimize_resolved(resolved, start)
        result.unresolved = unresolved
        return result

    async def optimize(self, stops: Sequence[Stop], start: Coordinate) -> List[Stop]:
        """Return the resolvable ``stops`` in optimised visiting order from ``start``."""
        result = await self.optimize_detailed(stops, start)
        return result.tour

    async def optimize_from(
        self,
        stops: Sequence[Stop],
        location: LocationProvider,
        timeout: Optional[float] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> OptimisationResult:
        """Optimise starting from the courier's current location.

        Nothing is resolved or ordered while the location is unknown; an
        empty result is returned instead.
        """
        start = await location.wait_for_fix(timeout)
        if start is None:
            logger.info("Skipping optimisation of %d stops: no current location", len(stops))
            return OptimisationResult()
        return await self.optimize_detailed(stops, start, cancel)

    @staticmethod
    def nearby(
        stops: Sequence[Stop],
        location: Coordinate,
        radius_km: Optional[float] = None,
    ) -> List[Stop]:
        """Stops with a known coordinate within ``radius_km`` of ``location``, in input order."""
        radius = radius_km if radius_km is not None else settings.nearby_radius_km
        nearby = []
        for stop in stops:
            distance = stop.distance_from(location)
            if distance is not None and distance <= radius:
                nearby.append(stop)
        return nearby
