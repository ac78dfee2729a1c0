"""
Verification Token Manager
==========================

Issues, redeems and reissues the single-use email verification token of a
submission.

Token state per submission:
    none -> issued -> redeemed (success) | expired (failure)

Only one token field exists per submission, so a reissue invalidates the
previous token. Redemption is a single conditional update in the store,
which is what makes concurrent redeems of one token succeed exactly once.
"""

import logging
import secrets
from datetime import timedelta
from typing import Tuple

from ..domain.errors import InvalidOrExpiredToken, NotEligibleForResend, SubmissionNotFound
from ..domain.models import Clock, Submission, SubmissionState, utcnow
from .ports import SubmissionStore

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


class TokenManager:

    def __init__(self, store: SubmissionStore, ttl_hours: int = 24,
                 max_resends: int = 5, clock: Clock = utcnow):
        self._store = store
        self._ttl = timedelta(hours=ttl_hours)
        self._max_resends = max_resends
        self._clock = clock

    def issue(self, submission: Submission, persist: bool = True) -> str:
        """
        Generate a token with a fresh expiry and attach it to the submission.

        Args:
            persist: write through to the store. Pass False for a submission
            not inserted yet, so token and record land in a single write.
        """
        token = generate_token()
        expires_at = self._clock() + self._ttl
        if persist:
            self._store.update_verification(submission.id, token, expires_at)
        submission.token = token
        submission.token_expires_at = expires_at
        logger.debug(f"Issued verification token for submission {submission.id}")
        return token

    def redeem(self, token: str) -> Submission:
        """
        Consume a token and publish its submission.

        Raises:
            InvalidOrExpiredToken: unknown, already used, expired, or the
            submission is not eligible (flagged, removed).
        """
        if not token or not token.strip():
            raise InvalidOrExpiredToken()

        submission = self._store.redeem_token(token.strip(), self._clock())
        if submission is None:
            logger.info("Token redemption refused (unknown, used, expired or ineligible)")
            raise InvalidOrExpiredToken()

        logger.info(f"Submission {submission.id} verified and published")
        return submission

    def reissue(self, submission_id: str) -> Tuple[Submission, str]:
        """
        Replace the token of a submission still awaiting verification.

        Raises:
            SubmissionNotFound: unknown id.
            NotEligibleForResend: already verified, flagged, removed, or the
            resend cap was reached.
        """
        submission = self._store.get(submission_id)
        if submission is None:
            raise SubmissionNotFound()

        if submission.verified or submission.state == SubmissionState.PUBLISHED:
            raise NotEligibleForResend("This review has already been verified")
        if submission.is_spam or submission.state != SubmissionState.PENDING:
            raise NotEligibleForResend("This review is not awaiting email verification")
        if submission.resend_count >= self._max_resends:
            raise NotEligibleForResend("Verification email resend limit reached")

        token = generate_token()
        expires_at = self._clock() + self._ttl
        resend_count = submission.resend_count + 1
        if not self._store.update_verification(submission.id, token, expires_at, resend_count=resend_count):
            # Verified or moderated between the read above and this write
            raise NotEligibleForResend("This review is not awaiting email verification")

        submission.token = token
        submission.token_expires_at = expires_at
        submission.resend_count = resend_count
        logger.info(f"Reissued verification token for submission {submission.id} (resend #{resend_count})")
        return submission, token
