# Filename: dashboard.py

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from animation_clock import AnimationClock
from config import ScoringConfig
from data_sources import DexScreenerSource
from hype_scorer import compute_nodes
from interaction_controller import InteractionController, fmt_usd
from layout_engine import LayoutEngine, LayoutParams
from models import MarketSnapshot, Node
from render_adapter import StyleTemplates, render_svg

logger = logging.getLogger("Dashboard")


class HypeDashboard:
    """
    One view instance: snapshot -> nodes -> layout -> interaction -> SVG.
    The latest completed refresh always wins over slower, older ones.
    """

    def __init__(self, config: Dict[str, Any], source=None, clock: Optional[AnimationClock] = None,
                 params: Optional[LayoutParams] = None):
        self.config = dict(config)
        self.scoring = ScoringConfig.from_config(self.config)
        self.source = source or DexScreenerSource(self.config)
        self.clock = clock or AnimationClock()

        if params is None:
            params = LayoutParams(frame_interval=float(self.config.get("FRAME_INTERVAL_SECONDS", 0.016)))
        self.engine = LayoutEngine(clock=self.clock, params=params, seed=int(self.config.get("LAYOUT_SEED", 7)))
        self.controller = InteractionController(
            self.engine,
            container_width=float(self.config.get("CONTAINER_WIDTH", 1202)),
            clock=self.clock,
        )
        self.templates = StyleTemplates()

        self.snapshot = MarketSnapshot(fetched_at=0.0)
        self.nodes: List[Node] = []
        self.last_error = ""
        self.loading = False

        self._refresh_seq = 0
        self._applied_seq = 0
        self._snapshot_limit = 0                     # RESULT_LIMIT the snapshot was sampled for
        self._refresh_task: Optional[asyncio.Task] = None
        self._reload_task: Optional[asyncio.Task] = None
        self._refresh_listeners: List[Callable[[List[Node]], None]] = []
        self.disposed = False

    # ------------------ Data ------------------

    async def refresh(self) -> bool:
        self._refresh_seq += 1
        seq = self._refresh_seq
        limit = self.scoring.limit
        self.loading = True
        try:
            snapshot = await self.source.load_snapshot(limit)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error(f"[Refresh Error] #{seq}: {error}")
            # A newer snapshot is already on screen, so this failure is not current
            if seq > self._applied_seq:
                self.last_error = error
            return False
        finally:
            if seq == self._refresh_seq:
                self.loading = False

        if self.disposed:
            return False
        if seq < self._applied_seq:
            logger.info(f"Discarding stale refresh #{seq} (already showing #{self._applied_seq})")
            return False

        self._applied_seq = seq
        self.last_error = ""
        self.apply_snapshot(snapshot, limit)
        for listener in list(self._refresh_listeners):
            listener(self.nodes)
        return True

    def on_refresh(self, listener: Callable[[List[Node]], None]) -> None:
        self._refresh_listeners.append(listener)

    def apply_snapshot(self, snapshot: MarketSnapshot, limit: Optional[int] = None) -> List[Node]:
        self.snapshot = snapshot
        self._snapshot_limit = self.scoring.limit if limit is None else limit
        return self.recompute()

    def recompute(self) -> List[Node]:
        self.nodes = compute_nodes(self.snapshot.records, self.snapshot.boosts, self.snapshot.icons, self.scoring)
        self.controller.set_nodes(self.nodes)
        return self.nodes

    def update_config(self, **changes: Any) -> bool:
        """
        Apply config changes (upper-case keys); recompute when the scoring value changed.
        A limit above the one the snapshot was sampled for also reloads the snapshot,
        since the sample holds max(limit * 5, 120) tokens.
        """
        self.config.update(changes)
        scoring = ScoringConfig.from_config(self.config)
        if scoring == self.scoring:
            return False
        self.scoring = scoring
        logger.info(f"Scoring config updated: {scoring}")
        self.recompute()
        if scoring.limit > self._snapshot_limit:
            self._schedule_reload()
        return True

    def _schedule_reload(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, reload left to the next refresh")
            return
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_task.cancel()
        logger.info(f"🔄 Reloading snapshot for limit {self.scoring.limit}")
        self._reload_task = loop.create_task(self.refresh())

    # ------------------ Output ------------------

    def leaderboard(self, size: int = 10) -> List[str]:
        lines = []
        for rank, node in enumerate(self.nodes[:size], start=1):
            lines.append(
                f"{rank:>3}. {node.symbol:<10} hype={node.hype:.3f} "
                f"chg={node.price_change:+.1f}% vol={fmt_usd(node.volume)} liq={fmt_usd(node.liquidity)}"
            )
        return lines

    def render(self) -> str:
        controller = self.controller
        return render_svg(
            self.engine.frame(),
            controller.transform,
            controller.width,
            controller.height,
            selected_id=controller.selected.id if controller.selected else None,
            hovered_id=controller.hovered.id if controller.hovered else None,
            popover=controller.popover,
            templates=self.templates,
        )

    # ------------------ Lifecycle ------------------

    async def run(self, interval: Optional[float] = None) -> None:
        interval = interval or float(self.config.get("REFRESH_INTERVAL_SECONDS", 60))
        while True:
            await self.refresh()
            await asyncio.sleep(interval)

    def start(self, interval: Optional[float] = None) -> asyncio.Task:
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.get_running_loop().create_task(self.run(interval))
        return self._refresh_task

    def dispose(self) -> None:
        for task in (self._refresh_task, self._reload_task):
            if task is not None and not task.done():
                task.cancel()
        self._refresh_task = None
        self._reload_task = None
        self._refresh_listeners.clear()
        self.controller.dispose()
        self.disposed = True
        logger.info("🛑 Dashboard disposed")
