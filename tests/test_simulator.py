from __future__ import annotations

import asyncio
import random

import pytest

from ambutrack.simulator import LocationSimulator, interpolate_path, run_route_simulation


PATH = [(28.61, 77.20), (28.60, 77.205), (28.58, 77.21)]


def fast_simulator(**kwargs):
    kwargs.setdefault("steps", 4)
    return LocationSimulator(step_delay=0.0, waypoint_tick=0.0, jitter_tick=0.0, **kwargs)


def test_interpolate_path_ends_on_every_waypoint():
    positions = list(interpolate_path(PATH, steps=4))

    # first point, then 4 per segment
    assert len(positions) == 1 + 4 * 2
    assert positions[0] == PATH[0]
    assert positions[4] == PATH[1]
    assert positions[-1] == PATH[-1]


def test_interpolate_path_edge_cases():
    assert list(interpolate_path([], steps=3)) == []
    assert list(interpolate_path([PATH[0]], steps=3)) == [PATH[0]]
    with pytest.raises(ValueError):
        list(interpolate_path(PATH, steps=0))


def test_route_simulation_reaches_last_waypoint():
    seen = []
    final = run_route_simulation(PATH, lambda lat, lng: seen.append((lat, lng)), fast_simulator())

    assert final == PATH[-1]
    assert seen[0] == PATH[0]
    assert seen[-1] == PATH[-1]
    assert len(seen) == 9


def test_route_simulation_accepts_async_callback():
    seen = []

    async def on_position(lat, lng):
        seen.append((lat, lng))

    run_route_simulation(PATH, on_position, fast_simulator())
    assert seen[-1] == PATH[-1]


def test_empty_path_is_rejected():
    async def run():
        fast_simulator().start_route("d1", [], lambda lat, lng: None)

    with pytest.raises(ValueError):
        asyncio.run(run())


def test_new_route_cancels_previous_one():
    simulator = LocationSimulator(steps=4, step_delay=0.01, waypoint_tick=0.0)
    first_seen, second_seen = [], []

    async def run():
        first = simulator.start_route("d1", PATH, lambda lat, lng: first_seen.append((lat, lng)))
        await asyncio.sleep(0)
        second = simulator.start_route("d1", list(reversed(PATH)), lambda lat, lng: second_seen.append((lat, lng)))
        result = await second
        await asyncio.gather(first, return_exceptions=True)
        return first, result

    first, result = asyncio.run(run())

    assert first.cancelled()
    assert result == PATH[0]
    assert PATH[-1] not in first_seen
    assert second_seen[-1] == PATH[0]


def test_stop_and_bookkeeping():
    simulator = LocationSimulator(step_delay=1.0, waypoint_tick=1.0)

    async def run():
        task = simulator.start_route("d1", PATH, lambda lat, lng: None)
        await asyncio.sleep(0)
        running = simulator.is_running("d1"), simulator.running()
        stopped = simulator.stop("d1")
        await asyncio.gather(task, return_exceptions=True)
        return running, stopped, simulator.stop("d1")

    (is_running, running), stopped, stopped_again = asyncio.run(run())

    assert is_running
    assert running == ["d1"]
    assert stopped is True
    assert stopped_again is False
    assert not simulator.is_running("d1")
    assert simulator.last_position("d1") == PATH[0]


def test_stop_all():
    simulator = LocationSimulator(step_delay=1.0, waypoint_tick=1.0, jitter_tick=1.0)

    async def run():
        simulator.start_route("d1", PATH, lambda lat, lng: None)
        simulator.start_jitter("d2", 28.6, 77.2, lambda lat, lng: None)
        await asyncio.sleep(0)
        await simulator.stop_all()

    asyncio.run(run())
    assert simulator.running() == []


def test_jitter_stays_within_window():
    simulator = fast_simulator(jitter_degrees=0.001, rng=random.Random(7))
    seen = []

    async def run():
        return await simulator.start_jitter("d1", 28.6, 77.2, lambda lat, lng: seen.append((lat, lng)), max_ticks=5)

    final = asyncio.run(run())

    assert len(seen) == 5
    assert final == seen[-1]
    for (a_lat, a_lng), (b_lat, b_lng) in zip([(28.6, 77.2)] + seen, seen):
        assert abs(b_lat - a_lat) <= 0.0005 + 1e-9
        assert abs(b_lng - a_lng) <= 0.0005 + 1e-9


def test_jitter_replaces_route():
    simulator = LocationSimulator(step_delay=1.0, waypoint_tick=1.0, jitter_tick=0.0)

    async def run():
        route = simulator.start_route("d1", PATH, lambda lat, lng: None)
        await asyncio.sleep(0)
        jitter = simulator.start_jitter("d1", 28.6, 77.2, lambda lat, lng: None, max_ticks=1)
        await jitter
        await asyncio.gather(route, return_exceptions=True)
        return route

    route = asyncio.run(run())
    assert route.cancelled()
