"""
Domain Models - Anonymous Review Submissions
=============================================

Plain dataclasses for everything the pipeline passes around. Only the
Submission has a lifecycle; the rest are values.
"""

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

# Injectable time source, always timezone-aware UTC
Clock = Callable[[], datetime]

IMAGE_PATTERN = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)
VIDEO_PATTERN = re.compile(r"\.(mp4|mov|avi|webm)$", re.IGNORECASE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class SubmissionState(Enum):
    """Lifecycle state of an anonymous submission."""
    PENDING = "pending"
    PUBLISHED = "published"
    FLAGGED = "flagged"
    REJECTED = "rejected"
    REMOVED = "removed"


# States that count against the duplicate cooldown
ACTIVE_STATES = (SubmissionState.PENDING, SubmissionState.PUBLISHED)


class TokenState(Enum):
    """Verification token state derived from the submission fields."""
    NONE = "none"
    ISSUED = "issued"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


@dataclass
class ReviewRequest:
    """Raw inbound anonymous review, as handed over by the HTTP layer."""
    business_id: str
    rating: object
    body: str
    reviewer_name: str
    reviewer_email: str
    title: Optional[str] = None
    media: List[str] = field(default_factory=list)
    ip_address: str = "unknown"
    user_agent: str = ""
    device_fingerprint: Optional[str] = None


@dataclass(frozen=True)
class ReviewDraft:
    """Validated and normalised review content, ready for scoring."""
    business_id: str
    rating: int
    body: str
    reviewer_name: str
    reviewer_email: str
    title: Optional[str] = None
    images: tuple = ()
    videos: tuple = ()


@dataclass(frozen=True)
class Fingerprint:
    """Identity surrogate for an anonymous submitter."""
    email: str
    ip: str
    device_key: str
    user_agent: str = ""


@dataclass(frozen=True)
class RecentActivity:
    """Counts from the submission history, fed to the spam scorer."""
    same_device: int = 0
    same_ip: int = 0

    @property
    def submission_attempts(self) -> int:
        """This submission plus prior ones from the same device."""
        return self.same_device + 1


@dataclass(frozen=True)
class SpamVerdict:
    """Result of the spam heuristic."""
    score: int = 0
    is_spam: bool = False
    reasons: tuple = ()


@dataclass
class Submission:
    """Anonymous review candidate."""
    id: str
    business_id: str
    rating: int
    body: str
    reviewer_name: str
    reviewer_email: str
    created_at: datetime
    title: Optional[str] = None
    images: List[str] = field(default_factory=list)
    videos: List[str] = field(default_factory=list)

    # Provenance
    ip_address: str = ""
    device_key: str = ""
    user_agent: str = ""
    submission_attempts: int = 1

    state: SubmissionState = SubmissionState.PENDING

    # Verification
    token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    verified: bool = False
    verified_at: Optional[datetime] = None
    resend_count: int = 0

    # Spam
    spam_score: int = 0
    is_spam: bool = False
    spam_reasons: List[str] = field(default_factory=list)

    @classmethod
    def from_draft(cls, draft: ReviewDraft, fingerprint: Fingerprint,
                   activity: RecentActivity, verdict: SpamVerdict,
                   created_at: datetime) -> "Submission":
        return cls(
            id=new_id(),
            business_id=draft.business_id,
            rating=draft.rating,
            body=draft.body,
            reviewer_name=draft.reviewer_name,
            reviewer_email=draft.reviewer_email,
            created_at=created_at,
            title=draft.title,
            images=list(draft.images),
            videos=list(draft.videos),
            ip_address=fingerprint.ip,
            device_key=fingerprint.device_key,
            user_agent=fingerprint.user_agent,
            submission_attempts=activity.submission_attempts,
            state=SubmissionState.FLAGGED if verdict.is_spam else SubmissionState.PENDING,
            spam_score=verdict.score,
            is_spam=verdict.is_spam,
            spam_reasons=list(verdict.reasons),
        )

    @property
    def media(self) -> List[str]:
        return [*self.images, *self.videos]

    @property
    def is_published(self) -> bool:
        return self.state == SubmissionState.PUBLISHED

    @property
    def needs_verification(self) -> bool:
        return self.state == SubmissionState.PENDING and not self.verified

    def token_state(self, now: datetime) -> TokenState:
        if self.verified:
            return TokenState.REDEEMED
        if not self.token:
            return TokenState.NONE
        if self.token_expires_at is None or self.token_expires_at <= now:
            return TokenState.EXPIRED
        return TokenState.ISSUED

    def snippet(self, length: int = 160) -> str:
        text = " ".join(self.body.split())
        if len(text) <= length:
            return text
        return text[:length - 1].rstrip() + "…"


@dataclass(frozen=True)
class BusinessProfile:
    """Read model of a business from the external directory."""
    id: str
    name: str
    owner_email: str = ""
    slug: str = ""


@dataclass(frozen=True)
class RatingSnapshot:
    """Verified-review aggregate for one business."""
    business_id: str
    average: float = 0.0
    count: int = 0
    recomputed_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return self.count == 0


@dataclass(frozen=True)
class AlertEvent:
    """Low-rating alert. Emitted, never stored by the pipeline."""
    business_id: str
    prior_average: float
    new_average: float
    review_count: int
    submission_id: str
    rating: int
    snippet: str
    reviewer_name: str
    timestamp: datetime

    def to_payload(self) -> dict:
        return {
            "businessId": self.business_id,
            "priorAverage": round(self.prior_average, 2),
            "newAverage": round(self.new_average, 2),
            "reviewCount": self.review_count,
            "submission": {
                "id": self.submission_id,
                "rating": self.rating,
                "snippet": self.snippet,
                "reviewerName": self.reviewer_name,
            },
            "timestamp": self.timestamp.isoformat(),
        }
