"""End-to-end tests for submit, verify and resend."""

import pytest

from reviewtrust.application.outbox import (
    NEW_REVIEW_PUSH,
    PUBLISHED_CONFIRMATION,
    VERIFICATION_EMAIL,
    NotificationOutbox,
)
from reviewtrust.domain.errors import BusinessNotFound, StoreUnavailable, ValidationError
from reviewtrust.domain.models import SubmissionState

from .conftest import BUSINESS_ID, SPAM


def test_submit_creates_pending_submission_and_queues_email(pipeline, make_review, db, relay, notifier):
    result = pipeline.submit(make_review(reviewer_email="  Ann@Example.com "))

    assert result.state == SubmissionState.PENDING
    assert result.verification_required
    assert result.email_queued
    assert result.reviewer_email == "ann@example.com"

    stored = db.get(result.submission_id)
    assert stored.business_id == BUSINESS_ID
    assert stored.ip_address == "10.0.0.1"
    assert stored.submission_attempts == 1
    assert [m["kind"] for m in db.list_outbox()] == [VERIFICATION_EMAIL]

    relay.drain()
    sent = notifier.of_kind("verification")[0]
    assert sent["email"] == "ann@example.com"
    assert sent["token"] == stored.token
    assert sent["business_name"] == "Mama's Kitchen"


def test_rejections_leave_no_record(pipeline, make_review, db):
    with pytest.raises(ValidationError):
        pipeline.submit(make_review(reviewer_email="nope"))
    with pytest.raises(BusinessNotFound):
        pipeline.submit(make_review(business_id="biz-unknown"))

    assert db.get_stats()[SubmissionState.PENDING.value] == 0
    assert db.list_outbox() == []


def test_flagged_submission_is_held_without_email(pipeline, make_review, db):
    result = pipeline.submit(make_review(**SPAM))

    assert result.flagged
    assert not result.verification_required
    assert db.list_outbox() == []

    flagged = pipeline.flagged()
    assert [s.id for s in flagged] == [result.submission_id]
    assert "contains_link" in flagged[0].spam_reasons
    assert flagged[0].spam_score >= 70


def test_verify_publishes_and_notifies(pipeline, make_review, db, relay, notifier, realtime):
    result = pipeline.submit(make_review(rating=5))
    relay.drain()

    verified = pipeline.verify(db.get(result.submission_id).token)

    assert verified.submission_id == result.submission_id
    assert verified.business_name == "Mama's Kitchen"
    assert not verified.alert_emitted
    assert db.get(result.submission_id).is_published
    assert pipeline.rating(BUSINESS_ID).count == 1

    kinds = [m["kind"] for m in db.list_outbox("pending")]
    assert kinds == [PUBLISHED_CONFIRMATION, NEW_REVIEW_PUSH]

    relay.drain()
    assert notifier.of_kind("published")[0]["submission_id"] == result.submission_id
    assert realtime.events[-1][0] == "new_review"


def test_email_queue_failure_keeps_submission_resendable(pipeline, make_review, db, monkeypatch):
    def boom(self, kind, payload):
        raise StoreUnavailable()

    monkeypatch.setattr(NotificationOutbox, "enqueue", boom)
    result = pipeline.submit(make_review())
    monkeypatch.undo()

    assert not result.email_queued
    assert db.get(result.submission_id).needs_verification
    assert db.list_outbox() == []

    resent = pipeline.resend_verification(result.submission_id)
    assert resent.email == result.reviewer_email
    messages = db.list_outbox()
    assert [m["kind"] for m in messages] == [VERIFICATION_EMAIL]
    assert messages[0]["payload"]["token"] == db.get(result.submission_id).token


def test_recompute_failure_does_not_undo_publish(pipeline, make_review, db, monkeypatch):
    result = pipeline.submit(make_review())

    def broken(snapshot):
        raise StoreUnavailable("disk full")

    monkeypatch.setattr(db, "upsert_snapshot", broken)
    verified = pipeline.verify(db.get(result.submission_id).token)

    assert verified.submission_id == result.submission_id
    assert db.get(result.submission_id).state == SubmissionState.PUBLISHED


def test_pending_verification_lists_only_unexpired(pipeline, make_review, clock):
    stale = pipeline.submit(make_review())
    clock.advance(hours=12)
    fresh = pipeline.submit(make_review())
    clock.advance(hours=13)

    assert [s.id for s in pipeline.pending_verification()] == [fresh.submission_id]
    assert stale.submission_id not in [s.id for s in pipeline.pending_verification()]


def test_listing_pagination(pipeline, make_review, clock):
    ids = []
    for _ in range(3):
        ids.append(pipeline.submit(make_review()).submission_id)
        clock.advance(minutes=1)

    first_page = pipeline.pending_verification(limit=2)
    second_page = pipeline.pending_verification(limit=2, offset=2)
    assert [s.id for s in first_page] == [ids[2], ids[1]]
    assert [s.id for s in second_page] == [ids[0]]
