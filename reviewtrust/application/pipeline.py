"""
Pipeline Orchestrator
=====================

Sequences the trust components for the two entry points:

    submit: validate -> business lookup -> fingerprint -> duplicate/rate
            checks -> spam score -> token -> persist -> queue verification email
    verify: redeem token -> recompute rating -> evaluate alert -> queue
            confirmation and push notifications

Rejections raised before the insert leave no record behind. Everything
after a successful write (emails, pushes, rating recompute) is a secondary
effect: failures are logged and never fail the request.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..domain.errors import BusinessNotFound, DuplicateSubmission
from ..domain.fingerprint import build_fingerprint
from ..domain.models import (
    BusinessProfile,
    Clock,
    RatingSnapshot,
    ReviewRequest,
    Submission,
    SubmissionState,
    utcnow,
)
from ..domain.spam import SpamPolicy, score_submission
from ..domain.validation import validate_request
from .alerts import AlertDispatcher
from .duplicate_guard import DuplicateGuard
from .outbox import NEW_REVIEW_PUSH, PUBLISHED_CONFIRMATION, VERIFICATION_EMAIL, NotificationOutbox
from .ports import BusinessDirectory, SubmissionStore
from .ratings import RatingAggregator
from .tokens import TokenManager

logger = logging.getLogger(__name__)


@dataclass
class SubmitResult:
    submission_id: str
    state: SubmissionState
    verification_required: bool
    reviewer_email: str
    email_queued: bool = False

    @property
    def flagged(self) -> bool:
        return self.state == SubmissionState.FLAGGED


@dataclass
class VerifyResult:
    submission_id: str
    business_id: str
    business_name: Optional[str]
    reviewer_name: str
    alert_emitted: bool = False


@dataclass
class ResendResult:
    submission_id: str
    email: str


class ReviewPipeline:
    """
    USAGE:
        pipeline = build_pipeline(settings, database)
        result = pipeline.submit(ReviewRequest(...))
        pipeline.verify(token_from_email)
    """

    def __init__(
        self,
        submissions: SubmissionStore,
        businesses: BusinessDirectory,
        guard: DuplicateGuard,
        tokens: TokenManager,
        ratings: RatingAggregator,
        alerts: AlertDispatcher,
        outbox: NotificationOutbox,
        spam_policy: SpamPolicy = SpamPolicy(),
        clock: Clock = utcnow,
    ):
        self._submissions = submissions
        self._businesses = businesses
        self._guard = guard
        self._tokens = tokens
        self._ratings = ratings
        self._alerts = alerts
        self._outbox = outbox
        self._spam_policy = spam_policy
        self._clock = clock

    # ── Submit ─────────────────────────────────────────────────────

    def submit(self, request: ReviewRequest) -> SubmitResult:
        """
        Accept an anonymous review.

        Raises:
            ValidationError, BusinessNotFound, DuplicateSubmission,
            RateLimited, StoreUnavailable
        """
        draft = validate_request(request)

        business = self._businesses.get_business(draft.business_id)
        if business is None:
            raise BusinessNotFound()

        fingerprint = build_fingerprint(
            draft.reviewer_email,
            request.ip_address,
            request.user_agent,
            request.device_fingerprint,
        )

        self._guard.check(fingerprint, draft.business_id)

        activity = self._guard.recent_activity(fingerprint)
        verdict = score_submission(draft, activity, self._spam_policy)

        submission = Submission.from_draft(draft, fingerprint, activity, verdict, self._clock())
        if not verdict.is_spam:
            self._tokens.issue(submission, persist=False)

        created = self._submissions.create(
            submission,
            cooldown_since=self._guard.cooldown_since(),
            ip_limit=self._guard.ip_limit,
            rate_since=self._guard.rate_since(),
        )
        if not created:
            # Lost a race with a concurrent submit from the same email, IP or device
            logger.warning(f"Concurrent duplicate for business {draft.business_id} rejected at insert")
            raise DuplicateSubmission()

        if verdict.is_spam:
            logger.info(
                f"Submission {submission.id} flagged for moderation "
                f"(score={verdict.score}, reasons={list(verdict.reasons)})"
            )
            return SubmitResult(
                submission_id=submission.id,
                state=SubmissionState.FLAGGED,
                verification_required=False,
                reviewer_email=submission.reviewer_email,
            )

        logger.info(f"Submission {submission.id} pending verification for business {business.id}")
        email_queued = self._queue_verification_email(submission, business)

        return SubmitResult(
            submission_id=submission.id,
            state=SubmissionState.PENDING,
            verification_required=True,
            reviewer_email=submission.reviewer_email,
            email_queued=email_queued,
        )

    def _queue_verification_email(self, submission: Submission, business: BusinessProfile) -> bool:
        try:
            self._outbox.enqueue(VERIFICATION_EMAIL, {
                "email": submission.reviewer_email,
                "name": submission.reviewer_name,
                "token": submission.token,
                "businessName": business.name,
                "submissionId": submission.id,
            })
            return True
        except Exception as e:
            # Submission exists and stays resendable
            logger.exception(f"Failed to queue verification email for submission {submission.id}: {e}")
            return False

    # ── Verify ─────────────────────────────────────────────────────

    def verify(self, token: str) -> VerifyResult:
        """
        Redeem a verification token and publish the submission.

        Raises:
            InvalidOrExpiredToken
        """
        submission = self._tokens.redeem(token)
        business = self._lookup_business(submission.business_id)

        alert_emitted = False
        try:
            prior, new = self._ratings.recompute(submission.business_id)
        except Exception as e:
            logger.exception(f"Rating recompute failed for business {submission.business_id}: {e}")
        else:
            event = self._alerts.evaluate(prior, new, submission)
            if event is not None:
                self._alerts.dispatch(event, business)
                alert_emitted = True

        self._queue_publish_notifications(submission, business)

        return VerifyResult(
            submission_id=submission.id,
            business_id=submission.business_id,
            business_name=business.name if business else None,
            reviewer_name=submission.reviewer_name,
            alert_emitted=alert_emitted,
        )

    def _lookup_business(self, business_id: str) -> Optional[BusinessProfile]:
        try:
            return self._businesses.get_business(business_id)
        except Exception as e:
            logger.exception(f"Business lookup failed for {business_id}: {e}")
            return None

    def _queue_publish_notifications(self, submission: Submission, business: Optional[BusinessProfile]) -> None:
        if business is not None:
            try:
                self._outbox.enqueue(PUBLISHED_CONFIRMATION, {
                    "email": submission.reviewer_email,
                    "name": submission.reviewer_name,
                    "businessName": business.name,
                    "businessSlug": business.slug,
                    "submissionId": submission.id,
                })
            except Exception as e:
                logger.exception(f"Failed to queue confirmation for submission {submission.id}: {e}")

        try:
            self._outbox.enqueue(NEW_REVIEW_PUSH, {
                "businessId": submission.business_id,
                "review": {
                    "id": submission.id,
                    "rating": submission.rating,
                    "title": submission.title,
                    "snippet": submission.snippet(),
                    "reviewerName": submission.reviewer_name,
                },
            })
        except Exception as e:
            logger.exception(f"Failed to queue new review push for submission {submission.id}: {e}")

    # ── Resend ─────────────────────────────────────────────────────

    def resend_verification(self, submission_id: str) -> ResendResult:
        """
        Issue a fresh token and queue a new verification email.

        Raises:
            SubmissionNotFound, NotEligibleForResend, StoreUnavailable
        """
        submission, token = self._tokens.reissue(submission_id)
        business = self._lookup_business(submission.business_id)

        self._outbox.enqueue(VERIFICATION_EMAIL, {
            "email": submission.reviewer_email,
            "name": submission.reviewer_name,
            "token": token,
            "businessName": business.name if business else "",
            "submissionId": submission.id,
        })
        return ResendResult(submission_id=submission.id, email=submission.reviewer_email)

    # ── Queries ────────────────────────────────────────────────────

    def pending_verification(self, limit: int = 20, offset: int = 0) -> List[Submission]:
        """Pending submissions whose token has not expired yet."""
        return self._submissions.list_by_state(
            SubmissionState.PENDING, limit=limit, offset=offset, unexpired_at=self._clock()
        )

    def flagged(self, limit: int = 20, offset: int = 0) -> List[Submission]:
        """Moderation queue for the external admin collaborator."""
        return self._submissions.list_by_state(SubmissionState.FLAGGED, limit=limit, offset=offset)

    def rating(self, business_id: str) -> RatingSnapshot:
        return self._ratings.current(business_id)
