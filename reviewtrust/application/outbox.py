"""
Notification Outbox - Queued Email and Push Delivery
====================================================

ARCHITECTURAL DECISION:
- The request path never talks to an email or push provider directly; it
  enqueues an outbound message and returns
- OutboxRelay drains the queue, delivering through the Notifier and
  RealtimeChannel ports
- A failed delivery is recorded on the message and retried on a later
  drain; after max_attempts the message is marked dead

USAGE:
    outbox = NotificationOutbox(db)
    outbox.enqueue(VERIFICATION_EMAIL, {...})

    relay = OutboxRelay(db, notifier, realtime)
    report = relay.drain()
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict

from ..domain.models import Clock, utcnow
from .ports import Notifier, OutboxStore, RealtimeChannel

logger = logging.getLogger(__name__)

VERIFICATION_EMAIL = "verification_email"
PUBLISHED_CONFIRMATION = "published_confirmation"
LOW_RATING_EMAIL = "low_rating_email"
LOW_RATING_PUSH = "low_rating_push"
NEW_REVIEW_PUSH = "new_review_push"

MESSAGE_KINDS = (
    VERIFICATION_EMAIL,
    PUBLISHED_CONFIRMATION,
    LOW_RATING_EMAIL,
    LOW_RATING_PUSH,
    NEW_REVIEW_PUSH,
)


class UnknownMessageKind(Exception):
    """Raised when an outbox message kind has no delivery handler."""
    pass


class NotificationOutbox:
    """Enqueue side of the outbox, used by the pipeline."""

    def __init__(self, store: OutboxStore, clock: Clock = utcnow):
        self._store = store
        self._clock = clock

    def enqueue(self, kind: str, payload: dict) -> int:
        if kind not in MESSAGE_KINDS:
            raise UnknownMessageKind(kind)
        message_id = self._store.enqueue(kind, payload, self._clock())
        logger.debug(f"Queued {kind} message #{message_id}")
        return message_id


@dataclass
class DrainReport:
    """Outcome of one relay pass."""
    sent: int = 0
    failed: int = 0
    dead: int = 0

    @property
    def processed(self) -> int:
        return self.sent + self.failed + self.dead


class OutboxRelay:
    """Delivers queued messages through the notification ports."""

    def __init__(self, store: OutboxStore, notifier: Notifier, realtime: RealtimeChannel,
                 max_attempts: int = 5, clock: Clock = utcnow):
        self._store = store
        self._notifier = notifier
        self._realtime = realtime
        self._max_attempts = max_attempts
        self._clock = clock

        self._handlers: Dict[str, Callable[[dict], None]] = {
            VERIFICATION_EMAIL: self._send_verification_email,
            PUBLISHED_CONFIRMATION: self._send_published_confirmation,
            LOW_RATING_EMAIL: self._send_low_rating_email,
            LOW_RATING_PUSH: self._publish_low_rating,
            NEW_REVIEW_PUSH: self._publish_new_review,
        }

    def drain(self, limit: int = 50) -> DrainReport:
        """Deliver up to `limit` pending messages. Never raises for delivery errors."""
        report = DrainReport()
        messages = self._store.claim_pending(limit, self._clock())

        for message in messages:
            message_id = message["id"]
            kind = message["kind"]
            try:
                handler = self._handlers.get(kind)
                if handler is None:
                    raise UnknownMessageKind(kind)
                handler(message["payload"])
            except Exception as e:
                attempts = message["attempts"] + 1
                dead = attempts >= self._max_attempts
                self._store.mark_failed(message_id, str(e)[:500], self._clock(), dead=dead)
                if dead:
                    report.dead += 1
                    logger.error(f"Outbox message #{message_id} ({kind}) dead after {attempts} attempts: {e}")
                else:
                    report.failed += 1
                    logger.warning(f"Outbox message #{message_id} ({kind}) failed, attempt {attempts}: {e}")
                continue

            self._store.mark_sent(message_id, self._clock())
            report.sent += 1

        if report.processed:
            logger.info(f"Outbox drain: {report.sent} sent, {report.failed} failed, {report.dead} dead")
        return report

    # ── Handlers ───────────────────────────────────────────────────

    def _send_verification_email(self, payload: dict) -> None:
        self._notifier.send_verification_email(
            email=payload["email"],
            name=payload["name"],
            token=payload["token"],
            business_name=payload["businessName"],
            submission_id=payload["submissionId"],
        )

    def _send_published_confirmation(self, payload: dict) -> None:
        self._notifier.send_published_confirmation(
            email=payload["email"],
            name=payload["name"],
            business_name=payload["businessName"],
            business_slug=payload.get("businessSlug", ""),
            submission_id=payload["submissionId"],
        )

    def _send_low_rating_email(self, payload: dict) -> None:
        self._notifier.send_low_rating_alert(
            owner_email=payload["ownerEmail"],
            business_name=payload["businessName"],
            average_rating=payload["averageRating"],
            review_count=payload["reviewCount"],
            summary=payload["summary"],
        )

    def _publish_low_rating(self, payload: dict) -> None:
        self._realtime.publish_low_rating_alert(payload["businessId"], payload["alert"])

    def _publish_new_review(self, payload: dict) -> None:
        self._realtime.publish_new_review_notification(payload["businessId"], payload["review"])
