"""
Outbox Relay Runner - Notification Delivery
===========================================

Drains the notification outbox in a loop: verification emails, publish
confirmations, low-rating alerts and dashboard pushes.

The web server also drains after each request; run this alongside it so
failed deliveries are retried and nothing waits for the next request.

    python run_relay.py            # loop forever
    python run_relay.py --once     # single pass, then exit
"""

import logging
import sys
import time

from reviewtrust.bootstrap import build_relay
from reviewtrust.infrastructure.config import get_settings
from reviewtrust.infrastructure.persistence import Database

logging.basicConfig(
    level=get_settings().log_level,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def run_relay(once: bool = False):
    """Deliver queued notifications until interrupted."""

    print("\n" + "=" * 60)
    print("   Review Trust - Outbox Relay")
    print("=" * 60 + "\n")

    settings = get_settings()
    for issue in settings.validate():
        logger.warning(issue)

    db = Database(str(settings.database_file))
    db.init()
    relay = build_relay(settings, db)

    batch = settings.notifications.relay_batch_size
    poll = settings.notifications.relay_poll_seconds

    totals = {"sent": 0, "failed": 0, "dead": 0}
    try:
        while True:
            report = relay.drain(batch)
            totals["sent"] += report.sent
            totals["failed"] += report.failed
            totals["dead"] += report.dead

            if once:
                break
            # A full batch means more is probably waiting
            if report.processed < batch:
                time.sleep(poll)
    except KeyboardInterrupt:
        print("\nStopping relay...")

    print(f"\nDone: {totals['sent']} sent, {totals['failed']} failed, {totals['dead']} dead")


if __name__ == "__main__":
    run_relay(once="--once" in sys.argv)
