"""
Duplicate Guard - Cooldown and Rate Limit Checks
================================================

Runs before anything is written. A hit rejects the request at the door:
no submission record is created for duplicates or rate-limit breaches.
"""

import logging
from datetime import timedelta

from ..domain.errors import DuplicateSubmission, RateLimited
from ..domain.models import Clock, Fingerprint, RecentActivity, utcnow
from .ports import SubmissionStore

logger = logging.getLogger(__name__)


class DuplicateGuard:
    """
    USAGE:
        guard = DuplicateGuard(store)
        guard.check(fingerprint, business_id)   # raises on a hit
        activity = guard.recent_activity(fingerprint)
    """

    def __init__(self, store: SubmissionStore, cooldown_hours: int = 24,
                 ip_limit: int = 3, rate_window_hours: int = 24, clock: Clock = utcnow):
        self._store = store
        self._cooldown = timedelta(hours=cooldown_hours)
        self._ip_limit = ip_limit
        self._rate_window = timedelta(hours=rate_window_hours)
        self._clock = clock

    def cooldown_since(self):
        return self._clock() - self._cooldown

    def rate_since(self):
        return self._clock() - self._rate_window

    @property
    def ip_limit(self) -> int:
        return self._ip_limit

    def is_duplicate(self, email: str, business_id: str, ip: str, device_key: str) -> bool:
        """True if the same email, IP or device reviewed this business within the cooldown."""
        matches = self._store.find_recent_by_fingerprint(
            business_id=business_id,
            since=self.cooldown_since(),
            email=email,
            ip=ip,
            device_key=device_key,
        )
        return len(matches) > 0

    def is_rate_limited(self, ip: str) -> bool:
        """True if this IP already hit the submission limit, across all businesses."""
        return self._store.count_by_ip(ip, self.rate_since()) >= self._ip_limit

    def check(self, fingerprint: Fingerprint, business_id: str) -> None:
        """
        Raises:
            DuplicateSubmission: repeat review inside the cooldown window.
            RateLimited: too many submissions from this IP.
        """
        if self.is_duplicate(fingerprint.email, business_id, fingerprint.ip, fingerprint.device_key):
            logger.warning(f"Duplicate submission for business {business_id} from {fingerprint.ip}")
            raise DuplicateSubmission()

        if self.is_rate_limited(fingerprint.ip):
            logger.warning(f"Rate limit hit for {fingerprint.ip}")
            raise RateLimited()

    def recent_activity(self, fingerprint: Fingerprint) -> RecentActivity:
        since = self.rate_since()
        return RecentActivity(
            same_device=self._store.count_by_device(fingerprint.device_key, since),
            same_ip=self._store.count_by_ip(fingerprint.ip, since),
        )
