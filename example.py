"""Example script running the dashboard feeds against an API gateway."""

import asyncio
import logging

from trafficwatch import DashboardSession
from trafficwatch.config import settings
from trafficwatch.monitoring import render_metrics

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

RUN_SECONDS = 60


def on_data(feed: str, data) -> None:
    size = len(data) if isinstance(data, list) else 1
    logger.info(f"[{feed}] received {size} item(s)")


def on_error(feed: str, error: Exception) -> None:
    logger.error(f"[{feed}] {error}")


async def main():
    """Poll every dashboard feed for a minute while watching cluster health."""

    logger.info("=" * 60)
    logger.info(f"Traffic dashboard feeds from {settings.api_gateway_url}")
    logger.info("=" * 60)

    session = DashboardSession()
    session.add_default_feeds(on_data=on_data, on_error=on_error)

    async with session:
        await asyncio.sleep(RUN_SECONDS)
        status = session.get_status()

    logger.info("-" * 60)
    health = status["health"]
    logger.info(f"Transitioning: {health['transitioning']}")
    logger.info(f"Consecutive probe failures: {health['consecutive_failures']}")
    for name, feed in status["feeds"].items():
        logger.info(f"  {name}: polls={feed['polls']} suppressed={feed['suppressed_errors']}")

    logger.info("-" * 60)
    logger.info("Metrics:\n" + render_metrics())


if __name__ == "__main__":
    asyncio.run(main())
