"""
Distance utilities for RouteWise.

Every ordering decision made by the optimiser uses the straight-line
great-circle distance computed here, so that tour construction and 2-opt
refinement agree on what "shorter" means. Road-network distances from a
directions provider are only ever used to annotate a finished tour (see
:mod:`routewise.directions`).

Example usage:

    coords = [(35.6586, 139.7454), (35.6895, 139.6917)]
    dist_mat = compute_haversine_matrix(coords)
"""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

EARTH_RADIUS_KM = 6371.0


def haversine_distance(coord1: Tuple[float, float], coord2: Tuple[float, float]) -> float:
    """Compute the great‑circle distance between two coordinates in kilometers."""
    lat1, lon1 = coord1
    lat2, lon2 = coord2
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def compute_haversine_matrix(coords: Sequence[Tuple[float, float]]) -> List[List[float]]:
    """Compute a symmetric distance matrix using the Haversine formula.

    Args:
        coords: List of (lat, lon) tuples.

    Returns:
        Square matrix of distances in kilometers, zero on the diagonal.
    """
    n = len(coords)
    dist_matrix = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            dist = haversine_distance(coords[i], coords[j])
            dist_matrix[i][j] = dist
            dist_matrix[j][i] = dist
    return dist_matrix


def route_length(origin: Tuple[float, float], coords: Sequence[Tuple[float, float]]) -> float:
    """Total length in km of the open path from ``origin`` through ``coords`` in order."""
    total = 0.0
    current = origin
    for coord in coords:
        total += haversine_distance(current, coord)
        current = coord
    return total


def estimate_duration_s(distance_km: float, speed_kmh: float) -> float:
    """Travel time in seconds for ``distance_km`` at a constant ``speed_kmh``."""
    return distance_km / speed_kmh * 3600.0
