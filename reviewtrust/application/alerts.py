"""
Alert Dispatcher
================

Decides whether a newly published review should raise a low-rating alert
and, if so, queues the owner email and the dashboard push. Both are
fire-and-forget: a failure is logged and never undoes the publish.
"""

import logging
from typing import Optional

from ..domain.models import AlertEvent, BusinessProfile, Clock, RatingSnapshot, Submission, utcnow
from .outbox import LOW_RATING_EMAIL, LOW_RATING_PUSH, NotificationOutbox

logger = logging.getLogger(__name__)


class AlertDispatcher:

    def __init__(self, outbox: NotificationOutbox, average_threshold: float = 4.0,
                 max_triggering_rating: int = 3, snippet_length: int = 160,
                 clock: Clock = utcnow):
        self._outbox = outbox
        self._average_threshold = average_threshold
        self._max_triggering_rating = max_triggering_rating
        self._snippet_length = snippet_length
        self._clock = clock

    def evaluate(self, prior: RatingSnapshot, new: RatingSnapshot,
                 submission: Submission) -> Optional[AlertEvent]:
        """
        Alert iff the new average is below the threshold AND the triggering
        review is itself a low rating. A high rating never alerts, even when
        the average is already low.
        """
        if new.count == 0:
            return None
        if new.average >= self._average_threshold:
            return None
        if submission.rating > self._max_triggering_rating:
            return None

        return AlertEvent(
            business_id=new.business_id,
            prior_average=prior.average,
            new_average=new.average,
            review_count=new.count,
            submission_id=submission.id,
            rating=submission.rating,
            snippet=submission.snippet(self._snippet_length),
            reviewer_name=submission.reviewer_name or "Anonymous",
            timestamp=self._clock(),
        )

    def dispatch(self, event: AlertEvent, business: Optional[BusinessProfile]) -> None:
        """Queue the alert on both channels. Errors are logged per channel."""
        payload = event.to_payload()
        logger.info(
            f"Low rating alert for business {event.business_id}: "
            f"{event.prior_average:.2f} -> {event.new_average:.2f}"
        )

        if business is not None and business.owner_email:
            try:
                self._outbox.enqueue(LOW_RATING_EMAIL, {
                    "ownerEmail": business.owner_email,
                    "businessName": business.name,
                    "averageRating": round(event.new_average, 2),
                    "reviewCount": event.review_count,
                    "summary": payload["submission"],
                })
            except Exception as e:
                logger.exception(f"Failed to queue low rating email for business {event.business_id}: {e}")
        else:
            logger.warning(f"No owner email for business {event.business_id}, skipping alert email")

        try:
            self._outbox.enqueue(LOW_RATING_PUSH, {
                "businessId": event.business_id,
                "alert": payload,
            })
        except Exception as e:
            logger.exception(f"Failed to queue low rating push for business {event.business_id}: {e}")
