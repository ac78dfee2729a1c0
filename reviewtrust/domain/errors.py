"""
Error Taxonomy
==============

Every error the pipeline raises toward a caller derives from ReviewTrustError.
Each class carries the HTTP-equivalent status and a stable code, so the web
layer maps the whole hierarchy with a single handler.
"""


class ReviewTrustError(Exception):
    """Base exception for pipeline errors."""
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class ValidationError(ReviewTrustError):
    """Submission failed validation."""
    status_code = 400
    code = "validation_error"


class BusinessNotFound(ReviewTrustError):
    """Business not found."""
    status_code = 404
    code = "business_not_found"


class DuplicateSubmission(ReviewTrustError):
    """A review from this email or location already exists for this business. Please wait 24 hours between reviews."""
    status_code = 409
    code = "duplicate_submission"


class RateLimited(ReviewTrustError):
    """Too many reviews from this location. Please try again later."""
    status_code = 429
    code = "rate_limited"


class InvalidOrExpiredToken(ReviewTrustError):
    """Invalid or expired verification token."""
    status_code = 404
    code = "invalid_or_expired_token"


class SubmissionNotFound(ReviewTrustError):
    """Submission not found."""
    status_code = 404
    code = "submission_not_found"


class NotEligibleForResend(ReviewTrustError):
    """This review is not awaiting email verification."""
    status_code = 409
    code = "not_eligible_for_resend"


class StoreUnavailable(ReviewTrustError):
    """Review storage is temporarily unavailable."""
    status_code = 503
    code = "store_unavailable"
