# ambutrack/simulator.py
"""
Location Simulator for ambulance tracking.

Two movement modes are available:

1. **Route mode**: walks a marker along a route polyline. Each
   waypoint-to-waypoint segment is split into equal interpolation steps,
   which gives smooth apparent motion without any physics.

2. **Jitter mode**: used for a driver's own position when no route is known.
   Every tick the position moves by a small random delta, emulating GPS
   drift and slow organic movement.

Each mode runs as an asyncio task. Only one task may drive a given entity at
a time: starting a new one cancels the previous one.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Sequence, Union

from . import config, utils
from .models import Coordinate

logger = logging.getLogger(__name__)

PositionCallback = Callable[[float, float], Union[None, Awaitable[None]]]


def interpolate_path(path: Sequence[Coordinate], steps: int = config.INTERPOLATION_STEPS) -> Iterator[Coordinate]:
    """
    Yield positions along ``path``, ``steps`` equal sub-steps per segment.

    The first waypoint is yielded as-is, then every segment contributes
    ``steps`` positions, the last of which is exactly the segment end.

    Example:
        >>> list(interpolate_path([(0.0, 0.0), (1.0, 1.0)], steps=2))
        [(0.0, 0.0), (0.5, 0.5), (1.0, 1.0)]
    """
    if not path:
        return
    if steps < 1:
        raise ValueError("steps must be at least 1")

    yield path[0]
    for start, end in zip(path, path[1:]):
        for i in range(1, steps):
            yield utils.interpolate(start, end, i / steps)
        yield end


async def _emit(callback: PositionCallback, lat: float, lng: float) -> None:
    result = callback(lat, lng)
    if inspect.isawaitable(result):
        await result


class LocationSimulator:
    """
    Owns the running simulation tasks, keyed by entity id.

    Attributes:
        steps: Interpolation sub-steps per route segment
        step_delay: Seconds between sub-steps
        waypoint_tick: Seconds between consecutive waypoints
        jitter_tick: Seconds between jitter moves
        jitter_degrees: Width of the jitter window in degrees
    """

    def __init__(
        self,
        steps: int = config.INTERPOLATION_STEPS,
        step_delay: float = config.STEP_DELAY_SECONDS,
        waypoint_tick: float = config.WAYPOINT_TICK_SECONDS,
        jitter_tick: float = config.JITTER_TICK_SECONDS,
        jitter_degrees: float = config.JITTER_DEGREES,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.steps = steps
        self.step_delay = step_delay
        self.waypoint_tick = waypoint_tick
        self.jitter_tick = jitter_tick
        self.jitter_degrees = jitter_degrees
        self._rng = rng or random.Random()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._positions: Dict[str, Coordinate] = {}

    # -------------------------------------------------------------------------
    # Task management
    # -------------------------------------------------------------------------

    def _replace(self, entity_id: str, coro) -> asyncio.Task:
        self.stop(entity_id)
        task = asyncio.get_running_loop().create_task(coro, name=f"simulate:{entity_id}")
        self._tasks[entity_id] = task

        def _forget(done: asyncio.Task) -> None:
            if self._tasks.get(entity_id) is done:
                del self._tasks[entity_id]
            if not done.cancelled() and done.exception() is not None:
                logger.error(f"Simulation for {entity_id} failed: {done.exception()!r}")

        task.add_done_callback(_forget)
        return task

    def stop(self, entity_id: str) -> bool:
        """Cancel the simulation for ``entity_id``. Returns True if one was running."""
        task = self._tasks.pop(entity_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"Stopped simulation for {entity_id}")
        return True

    async def stop_all(self) -> None:
        """Cancel every running simulation and wait for them to unwind."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def is_running(self, entity_id: str) -> bool:
        task = self._tasks.get(entity_id)
        return task is not None and not task.done()

    def running(self) -> List[str]:
        return [entity_id for entity_id, task in self._tasks.items() if not task.done()]

    def last_position(self, entity_id: str) -> Optional[Coordinate]:
        """Most recent position emitted for ``entity_id``."""
        return self._positions.get(entity_id)

    # -------------------------------------------------------------------------
    # Route mode
    # -------------------------------------------------------------------------

    def start_route(
        self,
        entity_id: str,
        path: Sequence[Coordinate],
        on_position: PositionCallback
    ) -> asyncio.Task:
        """
        Start moving ``entity_id`` along ``path``, replacing any running simulation.

        Must be called from inside a running event loop.

        Returns:
            The task; it finishes once the final waypoint has been emitted
        """
        if not path:
            raise ValueError("Cannot simulate an empty path")
        logger.info(f"Simulating {entity_id} along {len(path)} waypoints")
        return self._replace(entity_id, self._run_route(entity_id, list(path), on_position))

    async def _run_route(self, entity_id: str, path: List[Coordinate], on_position: PositionCallback) -> Coordinate:
        for index, position in enumerate(interpolate_path(path, self.steps)):
            if index > 0:
                # Coarser pause whenever a new segment begins
                if (index - 1) % self.steps == 0:
                    await asyncio.sleep(self.waypoint_tick)
                await asyncio.sleep(self.step_delay)
            await self._move(entity_id, position, on_position)
        return path[-1]

    async def _move(self, entity_id: str, position: Coordinate, on_position: PositionCallback) -> None:
        self._positions[entity_id] = position
        await _emit(on_position, position[0], position[1])

    # -------------------------------------------------------------------------
    # Jitter mode
    # -------------------------------------------------------------------------

    def start_jitter(
        self,
        entity_id: str,
        lat: float,
        lng: float,
        on_position: PositionCallback,
        max_ticks: Optional[int] = None
    ) -> asyncio.Task:
        """
        Perturb a position every tick and persist it through ``on_position``.

        Runs until stopped, or for ``max_ticks`` ticks if given.
        """
        logger.info(f"Starting GPS jitter for {entity_id}")
        return self._replace(entity_id, self._run_jitter(entity_id, (lat, lng), on_position, max_ticks))

    def jitter(self, position: Coordinate) -> Coordinate:
        """One random step of at most half the jitter window on each axis."""
        return (
            position[0] + (self._rng.random() - 0.5) * self.jitter_degrees,
            position[1] + (self._rng.random() - 0.5) * self.jitter_degrees,
        )

    async def _run_jitter(
        self,
        entity_id: str,
        position: Coordinate,
        on_position: PositionCallback,
        max_ticks: Optional[int]
    ) -> Coordinate:
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            await asyncio.sleep(self.jitter_tick)
            position = self.jitter(position)
            await self._move(entity_id, position, on_position)
            ticks += 1
        return position


def run_route_simulation(
    path: Sequence[Coordinate],
    on_position: Optional[Callable[[float, float], Any]] = None,
    simulator: Optional[LocationSimulator] = None,
    entity_id: str = "simulation"
) -> Coordinate:
    """
    Drive a route simulation to completion outside of a running loop.

    Convenience for scripts and the CLI demo.

    Returns:
        The final position, which is the last waypoint of ``path``
    """
    simulator = simulator or LocationSimulator()
    callback = on_position or (lambda lat, lng: None)

    async def _run() -> Coordinate:
        return await simulator.start_route(entity_id, path, callback)

    return asyncio.run(_run())
