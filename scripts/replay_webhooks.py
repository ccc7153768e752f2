"""Re-run webhook events whose side effects failed.

Run locally (e.g. from cron):
    python -m scripts.replay_webhooks --limit 50
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from staybook.config import settings
from staybook.database import create_engine_from_settings, create_session_factory
from staybook.payments.gateway import StripePaymentGateway
from staybook.payments.reconciler import WebhookReconciler

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("replay_webhooks")


async def replay(limit: int) -> None:
    engine = create_engine_from_settings(settings)
    reconciler = WebhookReconciler(create_session_factory(engine), StripePaymentGateway.from_settings(settings))
    try:
        outcomes = await reconciler.replay_failed(limit=limit)
    finally:
        await engine.dispose()

    for event_id, outcome in outcomes.items():
        logger.info("%s -> %s", event_id, outcome.value)
    logger.info("Replayed %d event(s)", len(outcomes))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()
    asyncio.run(replay(args.limit))
