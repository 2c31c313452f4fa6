"""
Route optimisation heuristics for RouteWise.

This module implements the two travelling salesman heuristics used to
order delivery stops:

    - ``nearest_neighbor``: build an initial route by repeatedly
      visiting the nearest unvisited location.
    - ``two_opt``: refine that route with a bounded first-improvement
      2‑opt local search.

Both operate on a symmetric distance matrix. Index 0 is the courier's
starting point; it is always the first element of a route and is never
moved. Routes are open paths: there is no return leg to the start.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

DEFAULT_MAX_PASSES = 100


def nearest_neighbor(dist_matrix: Sequence[Sequence[float]], start: int = 0) -> List[int]:
    """Construct an initial route using the nearest neighbor heuristic.

    Unvisited locations are kept in index order, and when two candidates
    are exactly as close the one with the lower index wins.

    Args:
        dist_matrix: A square matrix of distances.
        start: Index of the start location in the matrix.

    Returns:
        A list of indices representing the visiting order, starting
        with ``start`` and including all other indices exactly once.
    """
    n = len(dist_matrix)
    if n == 0:
        return []
    unvisited = [i for i in range(n) if i != start]
    route = [start]
    current = start
    while unvisited:
        # min() returns the first minimal element, which gives the tie-break
        next_city = min(unvisited, key=lambda j: dist_matrix[current][j])
        route.append(next_city)
        unvisited.remove(next_city)
        current = next_city
    return route


def tour_length(route: Sequence[int], dist_matrix: Sequence[Sequence[float]]) -> float:
    """Sum of consecutive leg distances along ``route``."""
    length = 0.0
    for i in range(len(route) - 1):
        length += dist_matrix[route[i]][route[i + 1]]
    return length


def two_opt(
    route: List[int],
    dist_matrix: Sequence[Sequence[float]],
    max_passes: int = DEFAULT_MAX_PASSES,
) -> Tuple[List[int], int]:
    """Perform 2‑opt optimisation on a given route.

    ``route[0]`` is the fixed origin and ``route[1:]`` are the stops. In
    each pass the segment between stop positions ``i`` and ``j``
    (``1 <= i < j``, counted over the stops) is reversed; the first
    candidate that is strictly shorter is accepted and a new pass
    starts. The search ends when a pass finds no improvement or after
    ``max_passes`` passes, whichever comes first.

    Routes with three stops or fewer are returned unchanged.

    Args:
        route: Initial route as a list of indices, origin first.
        dist_matrix: Square matrix of distances corresponding to the
            indices in ``route``.
        max_passes: Upper bound on the number of passes.

    Returns:
        The optimised route and the number of passes performed.
    """
    best = list(route)
    stops = len(best) - 1
    if stops <= 3:
        return best, 0

    passes = 0
    improved = True
    while improved and passes < max_passes:
        improved = False
        passes += 1
        best_length = tour_length(best, dist_matrix)
        # stop position k lives at route index k + 1
        for i in range(2, stops):
            for j in range(i + 1, stops + 1):
                new_route = best[:i] + best[i:j + 1][::-1] + best[j + 1:]
                if tour_length(new_route, dist_matrix) < best_length:
                    best = new_route
                    improved = True
                    break
            if improved:
                break
    return best, passes
