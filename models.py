# Filename: models.py

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

MIN_ZOOM = 0.5
MAX_ZOOM = 6.0


@dataclass(frozen=True)
class Node:
    """
    Node is one ranked token of a snapshot, the unit sized and laid out as a bubble.
    It is rebuilt from scratch on every recompute and never mutated afterwards.
    """
    id: str                          # Token mint address, unique within a snapshot
    name: str
    symbol: str
    icon: str                        # Icon URL ("" when unknown)
    url: str                         # DexScreener detail page
    hype: float                      # Weighted composite score, not bounded to [0, 1]
    price_change: float              # Percent, selected timeframe
    price_change_h1: float           # Percent, reference timeframe
    volume: float                    # USD, selected timeframe
    txns: int                        # Buys + sells, selected timeframe
    txns_h1: int
    boost: float
    liquidity: float                 # USD
    price_usd: float
    market_cap: float                # FDV, else market cap


@dataclass
class SimulationState:
    x: float
    y: float
    vx: float = 0.0
    vy: float = 0.0
    fx: Optional[float] = None       # Pinned position while dragged
    fy: Optional[float] = None
    radius: float = 0.0

    @property
    def pinned(self) -> bool:
        return self.fx is not None and self.fy is not None


@dataclass(frozen=True)
class ViewTransform:
    """Scale + translate from simulation space to screen space."""
    k: float = 1.0
    x: float = 0.0
    y: float = 0.0

    def apply(self, px: float, py: float) -> Tuple[float, float]:
        return px * self.k + self.x, py * self.k + self.y

    def invert(self, sx: float, sy: float) -> Tuple[float, float]:
        return (sx - self.x) / self.k, (sy - self.y) / self.k

    def scale_about(self, factor: float, cx: float, cy: float) -> "ViewTransform":
        k = clamp_zoom(self.k * factor)
        # Keep the simulation point under (cx, cy) fixed on screen
        px, py = self.invert(cx, cy)
        return ViewTransform(k=k, x=cx - px * k, y=cy - py * k)

    def translate_by(self, dx: float, dy: float) -> "ViewTransform":
        return ViewTransform(k=self.k, x=self.x + dx, y=self.y + dy)

    def to_svg(self) -> str:
        return f"translate({self.x:.2f},{self.y:.2f}) scale({self.k:.4f})"


IDENTITY = ViewTransform()


def clamp_zoom(k: float) -> float:
    return max(MIN_ZOOM, min(MAX_ZOOM, k))


@dataclass
class MarketSnapshot:
    records: List[Dict[str, Any]] = field(default_factory=list)
    boosts: List[Dict[str, Any]] = field(default_factory=list)
    icons: Dict[str, str] = field(default_factory=dict)
    fetched_at: float = field(default_factory=time.time)


@dataclass
class NodeDiff:
    enter: List[str]
    update: List[str]
    exit: List[str]


def diff_nodes(previous: List[Node], current: List[Node]) -> NodeDiff:
    """Split ids into enter/update/exit sets between two node lists, in list order."""
    previous_ids = {node.id for node in previous}
    current_ids = {node.id for node in current}
    return NodeDiff(
        enter=[node.id for node in current if node.id not in previous_ids],
        update=[node.id for node in current if node.id in previous_ids],
        exit=[node.id for node in previous if node.id not in current_ids],
    )


@dataclass(frozen=True)
class FrameNode:
    node: Node
    x: float
    y: float
    radius: float


@dataclass(frozen=True)
class Frame:
    """Positions of one animation step, handed to tick listeners."""
    generation: int
    step: int
    nodes: Tuple[FrameNode, ...]
