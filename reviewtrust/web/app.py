"""
FastAPI Web Application - Anonymous Review API
==============================================

HTTP surface of the review trust pipeline: anonymous submission, email
verification, resend, moderation listings and the rating snapshot.
Notification delivery runs in background tasks after each response.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .. import __version__
from ..application.outbox import OutboxRelay
from ..application.pipeline import ReviewPipeline
from ..bootstrap import build_pipeline, build_relay
from ..domain.errors import InvalidOrExpiredToken, ReviewTrustError
from ..domain.fingerprint import DEVICE_FINGERPRINT_HEADER, client_ip
from ..domain.models import ReviewRequest, Submission
from ..infrastructure.config import get_settings
from ..infrastructure.persistence import Database

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

# ── Globals ────────────────────────────────────────────────────────
db: Optional[Database] = None
pipeline: Optional[ReviewPipeline] = None
relay: Optional[OutboxRelay] = None
admin_api_key: Optional[str] = None
relay_batch_size = 50

MAX_PAGE_SIZE = 100


# ── Lifespan ───────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    global db, pipeline, relay, admin_api_key, relay_batch_size
    settings = get_settings()

    for issue in settings.validate():
        logger.warning(issue)

    if db is None:
        db = Database(str(settings.database_file))
        db.init()
    if pipeline is None:
        pipeline = build_pipeline(settings, db)
    if relay is None:
        relay = build_relay(settings, db)
    if admin_api_key is None:
        admin_api_key = settings.admin_api_key
    relay_batch_size = settings.notifications.relay_batch_size

    logger.info(f"Review pipeline ready (database: {db.db_path})")
    yield


app = FastAPI(
    title="Review Trust",
    description="Anonymous review submission, verification and rating alerts",
    version=__version__,
    lifespan=lifespan,
)


# ── Request Models ─────────────────────────────────────────────────
class AnonymousReviewIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    business_id: Optional[str] = Field(default=None, alias="businessId")
    business: Optional[str] = None
    rating: Any = None
    title: Optional[str] = None
    content: Optional[str] = None
    reviewer_name: Optional[str] = Field(default=None, alias="reviewerName")
    reviewer_email: Optional[str] = Field(default=None, alias="reviewerEmail")
    media: List[str] = []
    images: List[str] = []
    videos: List[str] = []

    def to_request(self, ip_address: str, user_agent: str, device_fingerprint: Optional[str]) -> ReviewRequest:
        return ReviewRequest(
            business_id=self.business_id or self.business or "",
            rating=self.rating,
            body=self.content or "",
            reviewer_name=self.reviewer_name or "",
            reviewer_email=self.reviewer_email or "",
            title=self.title,
            media=[*self.media, *self.images, *self.videos],
            ip_address=ip_address,
            user_agent=user_agent,
            device_fingerprint=device_fingerprint,
        )


class ResendIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    submission_id: str = Field(alias="submissionId")


# ── Error Handling ─────────────────────────────────────────────────
@app.exception_handler(ReviewTrustError)
async def review_trust_error_handler(request: Request, exc: ReviewTrustError):
    body = {"success": False, "code": exc.code, "message": exc.message}
    if isinstance(exc, InvalidOrExpiredToken):
        body["canResend"] = True
    return JSONResponse(status_code=exc.status_code, content=body)


# ── Helpers ────────────────────────────────────────────────────────
def drain_outbox():
    """Deliver queued notifications. Runs after the response is sent."""
    if relay is None:
        return
    try:
        relay.drain(relay_batch_size)
    except Exception as e:
        logger.exception(f"Outbox drain failed: {e}")


def _require_admin(request: Request):
    if not admin_api_key:
        raise HTTPException(status_code=403, detail="Moderation endpoints are disabled")
    if request.headers.get("x-admin-key") != admin_api_key:
        raise HTTPException(status_code=401, detail="Invalid admin key")


def _page(limit: int, offset: int):
    return max(1, min(limit, MAX_PAGE_SIZE)), max(0, offset)


def _submission_summary(s: Submission) -> dict:
    return {
        "id": s.id,
        "businessId": s.business_id,
        "rating": s.rating,
        "title": s.title,
        "content": s.body,
        "media": s.media,
        "reviewerName": s.reviewer_name,
        "reviewerEmail": s.reviewer_email,
        "status": s.state.value,
        "spamScore": s.spam_score,
        "spamReasons": list(s.spam_reasons),
        "submissionAttempts": s.submission_attempts,
        "resendCount": s.resend_count,
        "tokenExpiresAt": s.token_expires_at.isoformat() if s.token_expires_at else None,
        "createdAt": s.created_at.isoformat() if s.created_at else None,
    }


# ── Routes ─────────────────────────────────────────────────────────
@app.post("/api/review/anonymous", status_code=202)
def submit_anonymous_review(payload: AnonymousReviewIn, request: Request, background_tasks: BackgroundTasks):
    review = payload.to_request(
        ip_address=client_ip(request.headers, request.client.host if request.client else None),
        user_agent=request.headers.get("user-agent", ""),
        device_fingerprint=request.headers.get(DEVICE_FINGERPRINT_HEADER),
    )
    result = pipeline.submit(review)

    if result.flagged:
        return {
            "success": True,
            "message": "Review submitted and is pending moderation.",
            "data": {
                "submissionId": result.submission_id,
                "verificationRequired": False,
                "status": "pending_moderation",
            },
        }

    background_tasks.add_task(drain_outbox)

    data = {
        "submissionId": result.submission_id,
        "verificationRequired": True,
        "status": "pending_verification",
        "reviewerEmail": result.reviewer_email,
    }
    message = "Review submitted! Please check your email to verify and publish your review."
    if not result.email_queued:
        data["emailIssue"] = True
        message = "Review submitted, but we could not send the verification email. Please request a new one."

    return {"success": True, "message": message, "data": data}


@app.get("/api/review/verify/{token}")
def verify_review(token: str, background_tasks: BackgroundTasks):
    result = pipeline.verify(token)
    background_tasks.add_task(drain_outbox)
    return {
        "success": True,
        "message": "Your review has been verified and published.",
        "data": {
            "submissionId": result.submission_id,
            "businessId": result.business_id,
            "businessName": result.business_name,
            "reviewerName": result.reviewer_name,
        },
    }


@app.post("/api/review/resend-email-verification")
def resend_email_verification(payload: ResendIn, background_tasks: BackgroundTasks):
    result = pipeline.resend_verification(payload.submission_id)
    background_tasks.add_task(drain_outbox)
    return {
        "success": True,
        "message": "Verification email sent.",
        "data": {"email": result.email},
    }


@app.get("/api/review/pending-verification")
def list_pending_verification(request: Request, limit: int = 20, offset: int = 0):
    _require_admin(request)
    limit, offset = _page(limit, offset)
    submissions = pipeline.pending_verification(limit=limit, offset=offset)
    return {
        "success": True,
        "data": [_submission_summary(s) for s in submissions],
        "pagination": {"limit": limit, "offset": offset, "count": len(submissions)},
    }


@app.get("/api/review/flagged")
def list_flagged(request: Request, limit: int = 20, offset: int = 0):
    _require_admin(request)
    limit, offset = _page(limit, offset)
    submissions = pipeline.flagged(limit=limit, offset=offset)
    return {
        "success": True,
        "data": [_submission_summary(s) for s in submissions],
        "pagination": {"limit": limit, "offset": offset, "count": len(submissions)},
    }


@app.get("/api/business/{business_id}/rating")
def business_rating(business_id: str):
    snapshot = pipeline.rating(business_id)
    return {
        "success": True,
        "data": {
            "businessId": snapshot.business_id,
            "averageRating": round(snapshot.average, 2),
            "reviewCount": snapshot.count,
            "recomputedAt": snapshot.recomputed_at.isoformat() if snapshot.recomputed_at else None,
        },
    }


@app.get("/health")
def health():
    return {"status": "ok", "version": __version__, "stats": db.get_stats() if db else {}}
