"""
RouteWise package initialization.

This package orders a courier's delivery stops into an efficient
visiting sequence starting from the courier's current position.

Modules:
    models       – Stop, Coordinate and result value types.
    config       – Settings loaded from ``ROUTEWISE_*`` environment variables.
    routing      – Haversine distance, distance matrix and route length.
    optimisation – Nearest neighbour and 2‑opt heuristics for tour optimisation.
    geocode      – Address geocoding using Nominatim.
    location     – Tracking of the courier's latest coordinate.
    directions   – OSRM directions used to annotate an ordered tour.
    optimizer    – ``RouteOptimizer``, tying resolution and ordering together.
"""

from routewise.models import Coordinate, OptimisationResult, RouteWiseError, Stop
from routewise.optimizer import OptimisationCancelled, RouteOptimizer

__all__ = [
    "Coordinate",
    "OptimisationCancelled",
    "OptimisationResult",
    "RouteOptimizer",
    "RouteWiseError",
    "Stop",
]
