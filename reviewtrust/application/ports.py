"""
Ports - Abstract Interfaces for Stores and Notification Channels
================================================================

The pipeline talks to persistence and delivery only through these ABCs.
Implement them to plug in a different backend; the SQLite Database in
infrastructure/persistence implements all four store ports.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from ..domain.models import (
    BusinessProfile,
    RatingSnapshot,
    Submission,
    SubmissionState,
)


class SubmissionStore(ABC):
    """Persistence for anonymous submissions."""

    @abstractmethod
    def create(self, submission: Submission, cooldown_since: Optional[datetime] = None,
               ip_limit: Optional[int] = None, rate_since: Optional[datetime] = None) -> bool:
        """
        Insert a submission.

        When cooldown_since is given, the insert is skipped (returns False)
        if a pending/published submission for the same business and the
        same email, IP or device was created after that instant. When
        ip_limit is given, raises RateLimited if the IP already has that
        many submissions since rate_since. Checks and insert are atomic.
        """
        ...

    @abstractmethod
    def get(self, submission_id: str) -> Optional[Submission]:
        ...

    @abstractmethod
    def find_by_token(self, token: str) -> Optional[Submission]:
        ...

    @abstractmethod
    def find_recent_by_fingerprint(self, business_id: str, since: datetime, email: str,
                                   ip: str, device_key: str) -> List[Submission]:
        """Pending/published submissions for the business matching any identity field."""
        ...

    @abstractmethod
    def count_by_ip(self, ip: str, since: datetime) -> int:
        ...

    @abstractmethod
    def count_by_device(self, device_key: str, since: datetime) -> int:
        ...

    @abstractmethod
    def update_state(self, submission_id: str, state: SubmissionState) -> bool:
        ...

    @abstractmethod
    def update_verification(self, submission_id: str, token: Optional[str],
                            expires_at: Optional[datetime], resend_count: Optional[int] = None) -> bool:
        ...

    @abstractmethod
    def redeem_token(self, token: str, now: datetime) -> Optional[Submission]:
        """
        Atomically consume a token: only a pending, unverified, non-spam
        submission whose token expires after `now` is published. Returns the
        updated submission, or None if nothing matched.
        """
        ...

    @abstractmethod
    def published_stats(self, business_id: str) -> Tuple[float, int]:
        """(average rating, count) over published submissions."""
        ...

    @abstractmethod
    def list_by_state(self, state: SubmissionState, limit: int = 20, offset: int = 0,
                      unexpired_at: Optional[datetime] = None) -> List[Submission]:
        ...


class RatingSnapshotStore(ABC):
    """Persistence for business rating aggregates."""

    @abstractmethod
    def get_snapshot(self, business_id: str) -> Optional[RatingSnapshot]:
        ...

    @abstractmethod
    def upsert_snapshot(self, snapshot: RatingSnapshot) -> None:
        ...


class BusinessDirectory(ABC):
    """Read access to the external business directory."""

    @abstractmethod
    def get_business(self, business_id: str) -> Optional[BusinessProfile]:
        ...


class OutboxStore(ABC):
    """Durable queue of outbound notifications."""

    @abstractmethod
    def enqueue(self, kind: str, payload: dict, now: datetime) -> int:
        ...

    @abstractmethod
    def claim_pending(self, limit: int, now: datetime) -> List[dict]:
        """Move up to `limit` pending messages to sending and return them."""
        ...

    @abstractmethod
    def mark_sent(self, message_id: int, now: datetime) -> None:
        ...

    @abstractmethod
    def mark_failed(self, message_id: int, error: str, now: datetime, dead: bool) -> None:
        ...


class Notifier(ABC):
    """
    Email delivery channel.
    Implementations raise on delivery failure; the outbox relay records it.
    """

    @abstractmethod
    def send_verification_email(self, email: str, name: str, token: str,
                                business_name: str, submission_id: str) -> None:
        ...

    @abstractmethod
    def send_published_confirmation(self, email: str, name: str, business_name: str,
                                    business_slug: str, submission_id: str) -> None:
        ...

    @abstractmethod
    def send_low_rating_alert(self, owner_email: str, business_name: str,
                              average_rating: float, review_count: int, summary: dict) -> None:
        ...


class RealtimeChannel(ABC):
    """Realtime push channel toward business dashboards."""

    @abstractmethod
    def publish_low_rating_alert(self, business_id: str, payload: dict) -> None:
        ...

    @abstractmethod
    def publish_new_review_notification(self, business_id: str, payload: dict) -> None:
        ...
