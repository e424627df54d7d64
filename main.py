# Filename: main.py

import asyncio
import logging

from config import load_config
from dashboard import HypeDashboard

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("Main")


def write_snapshot(dashboard: HypeDashboard, path: str) -> None:
    try:
        with open(path, "w") as f:
            f.write(dashboard.render())
    except OSError as e:
        logger.error(f"[Snapshot Error] Could not write {path}: {e}")


async def run(config: dict) -> None:
    dashboard = HypeDashboard(config)
    board_size = int(config.get("LEADERBOARD_SIZE", 10))
    svg_file = config.get("SNAPSHOT_SVG_FILE", "")

    def report(nodes):
        message = "\n".join(dashboard.leaderboard(board_size)) or "(no token passed the filters)"
        logger.info(f"📊 Hype leaderboard ({dashboard.scoring.timeframe}, {len(nodes)} tokens)\n{message}")

    dashboard.on_refresh(report)
    refresher = dashboard.start()

    try:
        while not refresher.done():
            await asyncio.sleep(5)
            if svg_file and dashboard.nodes:
                write_snapshot(dashboard, svg_file)
    finally:
        dashboard.dispose()


def main():
    logger.info("🚀 Starting Trench Board...")
    config = load_config()
    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("❌ Stopped by user.")


if __name__ == "__main__":
    main()
