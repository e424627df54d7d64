# Filename: interaction_controller.py

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from animation_clock import AnimationClock
from layout_engine import LayoutEngine
from models import IDENTITY, Node, ViewTransform

logger = logging.getLogger("InteractionController")

ZOOM_IN_FACTOR = 1.25
ZOOM_OUT_FACTOR = 0.8
TRANSITION_SECONDS = 0.25
POPOVER_OFFSET = (14.0, 14.0)

MIN_HEIGHT = 420
MAX_HEIGHT = 900
HEIGHT_RATIO = 0.5


def viewport_size(container_width: float) -> Tuple[float, float]:
    width = max(0.0, float(container_width) - 2)
    height = min(MAX_HEIGHT, max(MIN_HEIGHT, math.floor(container_width * HEIGHT_RATIO)))
    return width, float(height)


def ease_cubic_in_out(t: float) -> float:
    t *= 2
    if t <= 1:
        return t * t * t / 2
    t -= 2
    return (t * t * t + 2) / 2


def fmt_usd(value: float) -> str:
    if value >= 1_000_000_000:
        return f"${value / 1_000_000_000:.2f}B"
    if value >= 1_000_000:
        return f"${value / 1_000_000:.2f}M"
    if value >= 1_000:
        return f"${value / 1_000:.1f}K"
    return f"${value:,.2f}"


def describe_node(node: Node) -> List[str]:
    return [
        f"{node.name} ({node.symbol})",
        f"Hype: {node.hype:.3f}",
        f"Price: ${node.price_usd:,.6f}",
        f"Change: {node.price_change:+.2f}% (1h {node.price_change_h1:+.2f}%)",
        f"Volume: {fmt_usd(node.volume)}",
        f"Txns: {node.txns:,} (1h {node.txns_h1:,})",
        f"Liquidity: {fmt_usd(node.liquidity)}",
        f"Market cap: {fmt_usd(node.market_cap)}",
    ]


@dataclass
class Transition:
    start: ViewTransform
    end: ViewTransform
    started_at: float
    duration: float = TRANSITION_SECONDS

    def value(self, now: float) -> ViewTransform:
        if self.done(now):
            return self.end
        t = ease_cubic_in_out(max(0.0, (now - self.started_at) / self.duration))
        return ViewTransform(
            k=self.start.k + (self.end.k - self.start.k) * t,
            x=self.start.x + (self.end.x - self.start.x) * t,
            y=self.start.y + (self.end.y - self.start.y) * t,
        )

    def done(self, now: float) -> bool:
        return now - self.started_at >= self.duration


class Popover:
    """Hover card anchored near the pointer. One live instance per controller at most."""

    def __init__(self, node: Node, x: float, y: float):
        self.node = node
        self.x = x + POPOVER_OFFSET[0]
        self.y = y + POPOVER_OFFSET[1]
        self.closed = False

    @property
    def lines(self) -> List[str]:
        return describe_node(self.node)

    def move(self, node: Node, x: float, y: float) -> None:
        self.node = node
        self.x = x + POPOVER_OFFSET[0]
        self.y = y + POPOVER_OFFSET[1]

    def close(self) -> None:
        self.closed = True


class InteractionController:
    """
    Owns the viewport transform, selection, hover popover and drag state.
    Screen coordinates come in, simulation coordinates go to the LayoutEngine.
    """

    def __init__(self, engine: LayoutEngine, container_width: float = 1202,
                 clock: Optional[AnimationClock] = None):
        self.engine = engine
        self.clock = clock or engine.clock
        self.width, self.height = viewport_size(container_width)

        self._transform = IDENTITY
        self._transition: Optional[Transition] = None

        self.selected: Optional[Node] = None
        self.hovered: Optional[Node] = None
        self.popover: Optional[Popover] = None
        self.dragging: Optional[str] = None

        self._listeners: Dict[str, List[Callable[[Optional[Node]], None]]] = {
            "selection": [],
            "hover": [],
        }
        self.disposed = False

    # ------------------ Events ------------------

    def on_selection_changed(self, callback: Callable[[Optional[Node]], None]) -> Callable[[], None]:
        return self._subscribe("selection", callback)

    def on_hover_changed(self, callback: Callable[[Optional[Node]], None]) -> Callable[[], None]:
        return self._subscribe("hover", callback)

    def _subscribe(self, kind: str, callback) -> Callable[[], None]:
        self._listeners[kind].append(callback)

        def unsubscribe():
            if callback in self._listeners[kind]:
                self._listeners[kind].remove(callback)

        return unsubscribe

    def _emit(self, kind: str, node: Optional[Node]) -> None:
        for callback in list(self._listeners[kind]):
            try:
                callback(node)
            except Exception as e:
                logger.error(f"[{kind} listener] {e}")

    # ------------------ Viewport ------------------

    @property
    def transform(self) -> ViewTransform:
        if self._transition is not None:
            now = self.clock.now()
            current = self._transition.value(now)
            if self._transition.done(now):
                self._transform = self._transition.end
                self._transition = None
            return current
        return self._transform

    @property
    def animating(self) -> bool:
        return self._transition is not None and not self._transition.done(self.clock.now())

    def _interrupt(self) -> ViewTransform:
        current = self.transform
        self._transform = current
        self._transition = None
        return current

    def _animate_to(self, target: ViewTransform) -> None:
        current = self._interrupt()
        self._transition = Transition(start=current, end=target, started_at=self.clock.now())

    def zoom_in(self) -> None:
        self._animate_to(self._zoom_target(ZOOM_IN_FACTOR))

    def zoom_out(self) -> None:
        self._animate_to(self._zoom_target(ZOOM_OUT_FACTOR))

    def reset_zoom(self) -> None:
        self._animate_to(IDENTITY)

    def _zoom_target(self, factor: float) -> ViewTransform:
        # Chain on the pending target so rapid clicks accumulate
        base = self._transition.end if self._transition is not None else self._transform
        return base.scale_about(factor, self.width / 2, self.height / 2)

    def wheel(self, delta_y: float, sx: float, sy: float, delta_mode: int = 0) -> None:
        unit = 0.05 if delta_mode == 1 else (1.0 if delta_mode else 0.002)
        factor = 2 ** (-delta_y * unit)
        self._transform = self._interrupt().scale_about(factor, sx, sy)

    def pinch(self, factor: float, cx: float, cy: float) -> None:
        if factor <= 0:
            return
        self._transform = self._interrupt().scale_about(factor, cx, cy)

    def pan(self, dx: float, dy: float) -> None:
        self._transform = self._interrupt().translate_by(dx, dy)

    def to_simulation(self, sx: float, sy: float) -> Tuple[float, float]:
        return self.transform.invert(sx, sy)

    def hit(self, sx: float, sy: float) -> Optional[Node]:
        return self.engine.node_at(*self.to_simulation(sx, sy))

    # ------------------ Selection ------------------

    def click(self, sx: float, sy: float) -> Optional[Node]:
        node = self.hit(sx, sy)
        if node is None:
            self.close_details()
        else:
            self.select(node)
        return node

    def select(self, node: Optional[Node]) -> None:
        if node == self.selected:
            return
        self.selected = node
        self._emit("selection", node)

    def close_details(self) -> None:
        self.select(None)

    # ------------------ Hover ------------------

    def pointer_move(self, sx: float, sy: float) -> None:
        if self.dragging is not None:
            self.drag_move(sx, sy)
        node = self.hit(sx, sy)
        if node is None:
            self.pointer_leave()
            return
        if self.popover is None:
            self.popover = Popover(node, sx, sy)
        else:
            self.popover.move(node, sx, sy)
        if node != self.hovered:
            self.hovered = node
            self._emit("hover", node)

    def pointer_leave(self) -> None:
        if self.popover is not None:
            self.popover.close()
            self.popover = None
        if self.hovered is not None:
            self.hovered = None
            self._emit("hover", None)

    # ------------------ Drag ------------------

    def drag_start(self, sx: float, sy: float) -> Optional[Node]:
        node = self.hit(sx, sy)
        if node is None:
            return None
        self.dragging = node.id
        self.engine.pin(node.id, *self.to_simulation(sx, sy))
        return node

    def drag_move(self, sx: float, sy: float) -> None:
        if self.dragging is None:
            return
        self.engine.pin(self.dragging, *self.to_simulation(sx, sy))

    def drag_end(self) -> None:
        if self.dragging is None:
            return
        self.engine.release(self.dragging)
        self.dragging = None

    # ------------------ Lifecycle ------------------

    def set_nodes(self, nodes: List[Node]) -> None:
        """Hand a recomputed node list to the engine and refresh selection/hover against it."""
        by_id = {node.id: node for node in nodes}

        if self.dragging is not None and self.dragging not in by_id:
            self.dragging = None
        if self.selected is not None:
            self.select(by_id.get(self.selected.id))
        if self.hovered is not None:
            fresh = by_id.get(self.hovered.id)
            if fresh is None:
                self.pointer_leave()
            elif fresh != self.hovered:
                self.hovered = fresh
                if self.popover is not None:
                    self.popover.node = fresh
                self._emit("hover", fresh)

        self.engine.start_generation(nodes, self.width, self.height)

    def resize(self, container_width: float) -> bool:
        width, height = viewport_size(container_width)
        if (width, height) == (self.width, self.height):
            return False
        self.width, self.height = width, height
        logger.info(f"Viewport resized to {width:.0f}x{height:.0f}")
        self.engine.start_generation(self.engine.nodes, width, height)
        return True

    def dispose(self) -> None:
        if self.disposed:
            return
        self.drag_end()
        if self.popover is not None:
            self.popover.close()
            self.popover = None
        self.hovered = None
        self.selected = None
        self.engine.dispose()
        for listeners in self._listeners.values():
            listeners.clear()
        self.disposed = True
