import asyncio
import unittest
from unittest import mock

import requests

from routewise.directions import (
    Directions,
    OSRMDirections,
    RequestThrottle,
    annotate_tour,
)
from routewise.models import Coordinate, Stop
from routewise.optimizer import RouteOptimizer
from routewise.routing import haversine_distance

OSRM_OK = {
    "code": "Ok",
    "routes": [
        {
            "distance": 2500.0,
            "duration": 300.0,
            "geometry": {"type": "LineString", "coordinates": [[77.36, 28.62], [77.37, 28.63]]},
        }
    ],
}


def response(payload, status_error=None):
    resp = mock.Mock()
    resp.json.return_value = payload
    if status_error is not None:
        resp.raise_for_status.side_effect = status_error
    return resp


class TestOSRMDirections(unittest.TestCase):
    def setUp(self):
        self.client = OSRMDirections(base_url="http://osrm.test/", profile="driving", timeout=5)
        self.origin = Coordinate(28.62, 77.36)
        self.destination = Coordinate(28.63, 77.37)

    @mock.patch("routewise.directions.requests.get")
    def test_fetch_route(self, get):
        get.return_value = response(OSRM_OK)
        directions = self.client.fetch_route(self.origin, self.destination)
        self.assertEqual(directions.path, [Coordinate(28.62, 77.36), Coordinate(28.63, 77.37)])
        self.assertEqual(directions.distance_km, 2.5)
        self.assertEqual(directions.duration_s, 300.0)
        url = get.call_args[0][0]
        # OSRM expects lon,lat pairs
        self.assertEqual(url, "http://osrm.test/route/v1/driving/77.36,28.62;77.37,28.63")
        self.assertEqual(get.call_args[1]["timeout"], 5)

    @mock.patch("routewise.directions.requests.get")
    def test_http_error(self, get):
        get.return_value = response({}, status_error=requests.HTTPError("503"))
        self.assertIsNone(self.client.fetch_route(self.origin, self.destination))

    @mock.patch("routewise.directions.requests.get")
    def test_connection_error(self, get):
        get.side_effect = requests.ConnectionError("refused")
        self.assertIsNone(self.client.fetch_route(self.origin, self.destination))

    @mock.patch("routewise.directions.requests.get")
    def test_no_route(self, get):
        get.return_value = response({"code": "NoRoute", "routes": []})
        self.assertIsNone(self.client.fetch_route(self.origin, self.destination))

    @mock.patch("routewise.directions.requests.get")
    def test_malformed_payload(self, get):
        get.return_value = response({"code": "Ok", "routes": [{"distance": 1.0}]})
        self.assertIsNone(self.client.fetch_route(self.origin, self.destination))


class TestRequestThrottle(unittest.IsolatedAsyncioTestCase):
    async def test_min_interval_between_starts(self):
        throttle = RequestThrottle(max_concurrency=1, min_interval=0.05)
        loop = asyncio.get_running_loop()
        starts = []

        async def job():
            starts.append(loop.time())

        await asyncio.gather(*(throttle.run(job) for _ in range(3)))
        gaps = [b - a for a, b in zip(starts, starts[1:])]
        self.assertEqual(len(gaps), 2)
        for gap in gaps:
            self.assertGreaterEqual(gap, 0.045)

    async def test_concurrency_bound(self):
        throttle = RequestThrottle(max_concurrency=2, min_interval=0)
        active = 0
        peak = 0

        async def job(i):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return i

        results = await asyncio.gather(*(throttle.run(job, i) for i in range(6)))
        self.assertEqual(results, list(range(6)))
        self.assertEqual(peak, 2)


class FakeDirections:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []

    async def path(self, origin, destination):
        self.calls.append((origin, destination))
        if destination in self.failing:
            return None
        return Directions(path=[origin, destination], distance_km=10.0, duration_s=600.0)


class TestAnnotateTour(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.start = Coordinate(0, 0)
        self.tour = [
            Stop(id="a", address="A", coordinate=Coordinate(0, 1)),
            Stop(id="b", address="B", coordinate=Coordinate(0, 2)),
            Stop(id="c", address="C", coordinate=Coordinate(0, 5)),
        ]
        self.throttle = RequestThrottle(max_concurrency=1, min_interval=0)

    async def test_one_leg_per_stop_in_order(self):
        provider = FakeDirections()
        legs = await annotate_tour(self.start, self.tour, provider, self.throttle)
        self.assertEqual([leg.destination.id for leg in legs], ["a", "b", "c"])
        self.assertEqual([leg.origin for leg in legs], [Coordinate(0, 0), Coordinate(0, 1), Coordinate(0, 2)])
        self.assertTrue(all(not leg.estimated for leg in legs))
        self.assertEqual(len(provider.calls), 3)

    async def test_failed_leg_falls_back_to_straight_line(self):
        provider = FakeDirections(failing={Coordinate(0, 2)})
        legs = await annotate_tour(self.start, self.tour, provider, self.throttle, speed_kmh=60)
        fallback = legs[1]
        self.assertTrue(fallback.estimated)
        self.assertEqual(fallback.path, [Coordinate(0, 1), Coordinate(0, 2)])
        expected = haversine_distance(Coordinate(0, 1), Coordinate(0, 2))
        self.assertAlmostEqual(fallback.distance_km, expected)
        self.assertAlmostEqual(fallback.duration_s, expected / 60 * 3600)
        self.assertFalse(legs[0].estimated)

    async def test_provider_exception_falls_back(self):
        provider = mock.Mock()
        provider.path = mock.AsyncMock(side_effect=RuntimeError("offline"))
        legs = await annotate_tour(self.start, self.tour[:1], provider, self.throttle)
        self.assertEqual(len(legs), 1)
        self.assertTrue(legs[0].estimated)

    async def test_empty_tour(self):
        self.assertEqual(await annotate_tour(self.start, [], FakeDirections(), self.throttle), [])


class TableGeocoder:
    def __init__(self, table):
        self.table = table

    async def resolve(self, address):
        return self.table.get(address)


class TestAnnotateOptimisedTour(unittest.IsolatedAsyncioTestCase):
    async def test_geocoded_tour_gets_one_leg_per_stop(self):
        stops = [Stop(id="a", address="1 Main St"), Stop(id="b", address="2 Main St")]
        geocoder = TableGeocoder({"1 Main St": Coordinate(0, 1), "2 Main St": Coordinate(0, 2)})
        tour = await RouteOptimizer(geocoder).optimize(stops, Coordinate(0, 0))
        provider = FakeDirections()
        legs = await annotate_tour(Coordinate(0, 0), tour, provider, RequestThrottle(1, 0))
        self.assertEqual([leg.destination.id for leg in legs], ["a", "b"])
        self.assertEqual(provider.calls, [(Coordinate(0, 0), Coordinate(0, 1)), (Coordinate(0, 1), Coordinate(0, 2))])


if __name__ == "__main__":
    unittest.main()
