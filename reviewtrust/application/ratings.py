"""
Rating Aggregator
=================

Owns BusinessRatingSnapshot. Every recompute re-derives the aggregate from
the full published set, so concurrent recomputes for one business converge
on the same value (last writer wins).
"""

import logging
from typing import Tuple

from ..domain.models import Clock, RatingSnapshot, utcnow
from .ports import RatingSnapshotStore, SubmissionStore

logger = logging.getLogger(__name__)


class RatingAggregator:

    def __init__(self, submissions: SubmissionStore, snapshots: RatingSnapshotStore,
                 clock: Clock = utcnow):
        self._submissions = submissions
        self._snapshots = snapshots
        self._clock = clock

    def current(self, business_id: str) -> RatingSnapshot:
        """Stored snapshot, or an empty one for a business never recomputed."""
        return self._snapshots.get_snapshot(business_id) or RatingSnapshot(business_id=business_id)

    def recompute(self, business_id: str) -> Tuple[RatingSnapshot, RatingSnapshot]:
        """
        Recompute and store the snapshot.

        Returns:
            (prior, new) snapshots.
        """
        prior = self.current(business_id)
        average, count = self._submissions.published_stats(business_id)

        snapshot = RatingSnapshot(
            business_id=business_id,
            average=float(average) if count else 0.0,
            count=int(count),
            recomputed_at=self._clock(),
        )
        self._snapshots.upsert_snapshot(snapshot)

        logger.info(
            f"Business {business_id} rating: {snapshot.average:.2f} ({snapshot.count} reviews), "
            f"was {prior.average:.2f} ({prior.count})"
        )
        return prior, snapshot
