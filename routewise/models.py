"""
Value types for RouteWise.

Stops and coordinates are transient inputs and outputs of a single
optimisation call. A ``Stop`` carries an opaque ``payload`` owned by the
caller (customer details, delivery instructions, ...) which the
optimiser never reads or changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Hashable, Iterator, List, Optional

from routewise.routing import haversine_distance


class RouteWiseError(Exception):
    """Base class for errors raised by RouteWise."""


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")

    def __iter__(self) -> Iterator[float]:
        # allows ``lat, lon = coord`` and passing coordinates to the tuple helpers
        yield self.latitude
        yield self.longitude


@dataclass(frozen=True)
class Stop:
    id: Hashable
    address: str
    coordinate: Optional[Coordinate] = None
    payload: Any = field(default=None, compare=False)

    def distance_from(self, location: Optional[Coordinate]) -> Optional[float]:
        """Great-circle distance in km to ``location``, or ``None`` if either is unknown."""
        if location is None or self.coordinate is None:
            return None
        return haversine_distance(location, self.coordinate)


@dataclass
class OptimisationResult:
    """Outcome of one optimisation call.

    ``tour`` holds the resolved stops in visiting order. ``unresolved``
    lists the stops whose address could not be geocoded, in input order.
    Distances are straight-line kilometres measured from the start
    coordinate through every stop of the tour.
    """

    tour: List[Stop] = field(default_factory=list)
    unresolved: List[Stop] = field(default_factory=list)
    distance_km: float = 0.0
    initial_distance_km: float = 0.0
    passes: int = 0
