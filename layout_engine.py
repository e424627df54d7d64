"""
Force layout for the hype bubbles.

One generation = (node list, viewport width, viewport height). Each generation is
integrated by a single asyncio task stepping on the injected AnimationClock:
repulsion between every pair, a weak pull toward a drifting center plus a rigid
shift of the cluster after it, then collision projection passes repeated until
no pair overlaps by more than a fraction of a pixel. Energy decays toward a
non-zero floor, so the layout keeps breathing for as long as the view is open.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from animation_clock import AnimationClock
from models import Frame, FrameNode, Node, SimulationState, diff_nodes

logger = logging.getLogger("layout_engine")

GOLDEN_ANGLE = math.pi * (3 - math.sqrt(5))
FILL_RATIO = 0.55


@dataclass(frozen=True)
class LayoutParams:
    repulsion_strength: float = 1.5
    repulsion_distance_min: float = 4.0
    center_strength: float = 0.006
    recenter_rate: float = 0.1         # share of the centroid offset removed per step
    collision_padding: float = 2.0
    collision_iterations: int = 3      # passes always run while anything overlaps
    collision_max_iterations: int = 32
    collision_tolerance: float = 0.05  # px of overlap accepted after the minimum passes
    collision_margin: float = 4.0      # gap under which a pair is checked this step
    velocity_decay: float = 0.4
    energy_decay: float = 0.0228       # ~300 steps from 1 down to the floor
    energy_floor: float = 0.03
    release_energy: float = 0.3
    drift: bool = True
    drift_amplitude: float = 0.04      # fraction of width / height
    drift_speed_x: float = 0.11        # rad/s
    drift_speed_y: float = 0.07
    initial_radius: float = 10.0
    frame_interval: float = 0.016


def radius_bounds(count: int, area: Optional[float] = None) -> Tuple[float, float]:
    """
    Bubble radius range; both ends shrink as the set gets denser.
    With a viewport area, the range is scaled down further so the bubbles cover
    at most FILL_RATIO of it.
    """
    min_r = max(6.0, 22.0 - count * 0.05)
    max_r = max(min_r + 8.0, 90.0 - count * 0.22)
    if area and count:
        # Mean squared radius of a sqrt scale over evenly spread hype
        span = max_r - min_r
        covered = count * math.pi * (min_r ** 2 + 4 * min_r * span / 3 + span ** 2 / 2)
        if covered > FILL_RATIO * area:
            factor = math.sqrt(FILL_RATIO * area / covered)
            min_r, max_r = min_r * factor, max_r * factor
    return min_r, max_r


def radius_scale(nodes: List[Node], area: Optional[float] = None) -> Callable[[float], float]:
    """
    Sqrt scale from [0, max hype] to the radius range for this node count.
    Monotonic in hype; hype <= 0 gets the minimum radius.
    """
    min_r, max_r = radius_bounds(len(nodes), area)
    max_hype = max([node.hype for node in nodes] + [0.0])

    def scale(hype: float) -> float:
        if max_hype <= 0 or not math.isfinite(hype):
            return min_r
        t = min(1.0, max(0.0, hype / max_hype))
        return min_r + (max_r - min_r) * math.sqrt(t)

    return scale


class LayoutEngine:
    def __init__(self, clock: Optional[AnimationClock] = None, params: Optional[LayoutParams] = None, seed: int = 7):
        self.clock = clock or AnimationClock()
        self.params = params or LayoutParams()
        self.rng = np.random.default_rng(seed)

        self.nodes: List[Node] = []
        self.states: Dict[str, SimulationState] = {}  # arena keyed by node id
        self.width = 0.0
        self.height = 0.0

        self.generation = 0
        self.energy = 1.0
        self.step_count = 0
        self._drift_phase = (0.0, 0.0)
        self.overlap = 0.0                            # worst overlap left by the last step
        self._pairs: Tuple[np.ndarray, np.ndarray] = (np.empty(0, dtype=int), np.empty(0, dtype=int))

        self._task: Optional[asyncio.Task] = None
        self._tick_listeners: List[Callable[[Frame], None]] = []

    # ------------------ Generations ------------------

    def start_generation(self, nodes: List[Node], width: float, height: float, autostart: bool = True) -> int:
        """
        Stop the running integrator, then seed a new generation.
        Retained ids keep their position unless the viewport size changed.
        """
        self.stop()

        resized = (float(width), float(height)) != (self.width, self.height)
        if resized:
            self.states.clear()
            diff = diff_nodes([], nodes)
        else:
            diff = diff_nodes(self.nodes, nodes)
            for node_id in diff.exit:
                del self.states[node_id]
            for node_id in diff.update:
                state = self.states[node_id]
                state.vx = state.vy = 0.0
                state.fx = state.fy = None

        self.nodes = list(nodes)
        self.width = float(width)
        self.height = float(height)

        radius = radius_scale(self.nodes, self.width * self.height)
        entering = set(diff.enter)
        for index, node in enumerate(self.nodes):
            if node.id in entering:
                self.states[node.id] = self._seed_state(index)
            self.states[node.id].radius = radius(node.hype)

        n = len(self.nodes)
        self._pairs = np.triu_indices(n, k=1)
        self._drift_phase = tuple(self.rng.uniform(0, 2 * math.pi, size=2))
        self.generation += 1
        self.energy = 1.0
        self.step_count = 0
        self.overlap = 0.0

        logger.info(f"🫧 Generation {self.generation}: {n} nodes "
                    f"(+{len(diff.enter)} ~{len(diff.update)} -{len(diff.exit)}) "
                    f"in {self.width:.0f}x{self.height:.0f}")

        if autostart:
            self.start()
        return self.generation

    def _seed_state(self, index: int) -> SimulationState:
        # Phyllotaxis spiral around the center
        r = self.params.initial_radius * math.sqrt(0.5 + index)
        angle = index * GOLDEN_ANGLE
        return SimulationState(
            x=self.width / 2 + r * math.cos(angle),
            y=self.height / 2 + r * math.sin(angle),
        )

    # ------------------ Runner ------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, integrator not scheduled")
            return
        self._task = loop.create_task(self._run(self.generation))

    def stop(self) -> None:
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            self._task = None

    def dispose(self) -> None:
        self.stop()
        self._tick_listeners.clear()
        self.states.clear()
        self.nodes = []

    def on_tick(self, listener: Callable[[Frame], None]) -> Callable[[], None]:
        self._tick_listeners.append(listener)

        def unsubscribe():
            if listener in self._tick_listeners:
                self._tick_listeners.remove(listener)

        return unsubscribe

    async def _run(self, generation: int) -> None:
        interval = self.params.frame_interval
        try:
            while generation == self.generation:
                frame = self.step()
                for listener in list(self._tick_listeners):
                    listener(frame)
                await self.clock.sleep(interval)
        except asyncio.CancelledError:
            logger.debug(f"Integrator for generation {generation} cancelled")
            raise

    # ------------------ Drag ------------------

    def pin(self, node_id: str, x: float, y: float) -> None:
        state = self.states.get(node_id)
        if state is None:
            return
        state.fx, state.fy = x, y
        state.x, state.y = x, y
        state.vx = state.vy = 0.0

    def release(self, node_id: str) -> None:
        state = self.states.get(node_id)
        if state is None:
            return
        state.fx = state.fy = None
        self.reheat(self.params.release_energy)

    def reheat(self, energy: float) -> None:
        self.energy = max(self.energy, energy)

    # ------------------ Queries ------------------

    def position(self, node_id: str) -> Optional[Tuple[float, float]]:
        state = self.states.get(node_id)
        if state is None:
            return None
        return state.x, state.y

    def node_at(self, x: float, y: float) -> Optional[Node]:
        """Node whose bubble contains the simulation-space point, nearest center first."""
        best = None
        best_dist = math.inf
        for node in self.nodes:
            state = self.states[node.id]
            dist = math.hypot(x - state.x, y - state.y)
            if dist <= state.radius and dist < best_dist:
                best, best_dist = node, dist
        return best

    def frame(self) -> Frame:
        return Frame(
            generation=self.generation,
            step=self.step_count,
            nodes=tuple(
                FrameNode(node=node, x=self.states[node.id].x, y=self.states[node.id].y,
                          radius=self.states[node.id].radius)
                for node in self.nodes
            ),
        )

    def center_target(self) -> Tuple[float, float]:
        cx, cy = self.width / 2, self.height / 2
        p = self.params
        if not p.drift:
            return cx, cy
        t = self.clock.now()
        phase_x, phase_y = self._drift_phase
        return (
            cx + p.drift_amplitude * self.width * math.sin(t * p.drift_speed_x + phase_x),
            cy + p.drift_amplitude * self.height * math.cos(t * p.drift_speed_y + phase_y),
        )

    # ------------------ Integration ------------------

    def step(self) -> Frame:
        p = self.params
        self.energy += (p.energy_floor - self.energy) * p.energy_decay
        self.step_count += 1

        if not self.nodes:
            return self.frame()

        states = [self.states[node.id] for node in self.nodes]
        x = np.array([s.x for s in states])
        y = np.array([s.y for s in states])
        vx = np.array([s.vx for s in states])
        vy = np.array([s.vy for s in states])
        r = np.array([s.radius for s in states])
        pinned = np.array([s.pinned for s in states])
        movable = (~pinned).astype(float)

        x_prev, y_prev = x.copy(), y.copy()

        # Repulsion
        dx = x[:, None] - x[None, :]
        dy = y[:, None] - y[None, :]
        d2 = np.maximum(dx * dx + dy * dy, p.repulsion_distance_min ** 2)
        np.fill_diagonal(d2, np.inf)
        w = p.repulsion_strength * self.energy / d2
        vx += (dx * w).sum(axis=1)
        vy += (dy * w).sum(axis=1)

        # Weak pull toward the (drifting) target keeps the cluster together
        tx, ty = self.center_target()
        pull = p.center_strength * self.energy
        vx += (tx - x) * pull
        vy += (ty - y) * pull

        vx *= 1 - p.velocity_decay
        vy *= 1 - p.velocity_decay
        x += vx * movable
        y += vy * movable

        # Rigid shift of the free nodes toward the target, not counted as velocity
        free = movable > 0
        if free.any():
            shift_x = (tx - x[free].mean()) * p.recenter_rate
            shift_y = (ty - y[free].mean()) * p.recenter_rate
            x += shift_x * movable
            y += shift_y * movable
            x_prev += shift_x * movable
            y_prev += shift_y * movable

        for i, state in enumerate(states):
            if state.pinned:
                x[i], y[i] = state.fx, state.fy

        self.overlap = self._resolve_collisions(x, y, r, movable)

        vx = (x - x_prev) * movable
        vy = (y - y_prev) * movable
        for i, state in enumerate(states):
            state.x, state.y = float(x[i]), float(y[i])
            state.vx, state.vy = float(vx[i]), float(vy[i])

        return self.frame()

    def _resolve_collisions(self, x: np.ndarray, y: np.ndarray, r: np.ndarray, movable: np.ndarray) -> float:
        """
        Push overlapping pairs apart in place; pinned nodes never move.
        Passes repeat until the worst overlap is within collision_tolerance
        (or collision_max_iterations is reached). Returns that worst overlap.
        """
        iu, ju = self._pairs
        if len(iu) == 0:
            return 0.0
        n = len(x)
        p = self.params
        min_dist = r[iu] + r[ju] + p.collision_padding

        # Pairs further apart than the margin cannot meet during this step
        near = np.hypot(x[ju] - x[iu], y[ju] - y[iu]) < min_dist + p.collision_margin
        if not near.any():
            return 0.0
        iu, ju, min_dist = iu[near], ju[near], min_dist[near]

        r2 = r * r
        # Larger bubbles give way less; a pinned bubble does not give way at all
        wi = movable[iu] * r2[ju]
        wj = movable[ju] * r2[iu]
        total = wi + wj
        share_i = np.divide(wi, total, out=np.zeros_like(wi), where=total > 0)
        share_j = np.divide(wj, total, out=np.zeros_like(wj), where=total > 0)

        min_passes = max(2, p.collision_iterations)
        worst = 0.0
        for iteration in range(max(min_passes, p.collision_max_iterations)):
            dx = x[ju] - x[iu]
            dy = y[ju] - y[iu]
            dist = np.hypot(dx, dy)
            overlap = min_dist - dist
            worst = max(0.0, float(overlap.max()))
            if worst == 0.0 or (iteration >= min_passes and worst <= p.collision_tolerance):
                break
            hit = overlap > 0

            coincident = hit & (dist < 1e-9)
            if coincident.any():
                angle = self.rng.uniform(0, 2 * math.pi, size=int(coincident.sum()))
                dx[coincident] = np.cos(angle)
                dy[coincident] = np.sin(angle)
                dist[coincident] = 1.0

            correction = np.where(hit, overlap, 0.0) / np.maximum(dist, 1e-9)
            cx = dx * correction
            cy = dy * correction
            x -= np.bincount(iu, weights=cx * share_i, minlength=n)
            y -= np.bincount(iu, weights=cy * share_i, minlength=n)
            x += np.bincount(ju, weights=cx * share_j, minlength=n)
            y += np.bincount(ju, weights=cy * share_j, minlength=n)

        return worst
