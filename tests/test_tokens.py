"""Tests for verification token issue, redemption and reissue."""

import threading
from datetime import timedelta

import pytest

from reviewtrust.application.tokens import TokenManager
from reviewtrust.domain.errors import InvalidOrExpiredToken, NotEligibleForResend, SubmissionNotFound
from reviewtrust.domain.models import SubmissionState, TokenState

from .conftest import SPAM


@pytest.fixture
def tokens(db, clock):
    return TokenManager(db, ttl_hours=24, max_resends=5, clock=clock)


def test_token_is_single_use(pipeline, make_review, db):
    result = pipeline.submit(make_review())
    token = db.get(result.submission_id).token

    pipeline.verify(token)
    with pytest.raises(InvalidOrExpiredToken):
        pipeline.verify(token)

    stored = db.get(result.submission_id)
    assert stored.state == SubmissionState.PUBLISHED
    assert stored.verified
    assert stored.token is None
    assert db.find_by_token(token) is None


def test_token_is_long_random_hex(pipeline, make_review, db):
    first = db.get(pipeline.submit(make_review()).submission_id).token
    second = db.get(pipeline.submit(make_review()).submission_id).token
    assert len(first) == 64
    assert first != second
    int(first, 16)


def test_concurrent_redeem_succeeds_exactly_once(pipeline, make_review, db, tokens):
    result = pipeline.submit(make_review())
    token = db.get(result.submission_id).token

    barrier = threading.Barrier(8)
    outcomes = []
    lock = threading.Lock()

    def redeem():
        barrier.wait()
        try:
            tokens.redeem(token)
            outcome = "ok"
        except InvalidOrExpiredToken:
            outcome = "rejected"
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=redeem) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("rejected") == 7


def test_expiry_is_exclusive(pipeline, make_review, db, tokens, clock):
    on_time = db.get(pipeline.submit(make_review()).submission_id)
    too_late = db.get(pipeline.submit(make_review()).submission_id)

    clock.advance(hours=24)
    assert clock() == too_late.token_expires_at
    with pytest.raises(InvalidOrExpiredToken):
        tokens.redeem(too_late.token)

    clock.now = on_time.token_expires_at - timedelta(microseconds=1)
    assert tokens.redeem(on_time.token).id == on_time.id


def test_unknown_and_blank_tokens_rejected(tokens):
    for token in ("", "   ", "deadbeef"):
        with pytest.raises(InvalidOrExpiredToken):
            tokens.redeem(token)


def test_flagged_submission_gets_no_token_and_cannot_be_redeemed(pipeline, make_review, db, tokens, clock):
    result = pipeline.submit(make_review(**SPAM))
    stored = db.get(result.submission_id)
    assert stored.state == SubmissionState.FLAGGED
    assert stored.token is None

    db.update_verification(stored.id, "forced-token", clock() + timedelta(hours=1))
    with pytest.raises(InvalidOrExpiredToken):
        tokens.redeem("forced-token")
    assert db.get(stored.id).state == SubmissionState.FLAGGED


def test_reissue_invalidates_previous_token(pipeline, make_review, db, tokens):
    result = pipeline.submit(make_review())
    old_token = db.get(result.submission_id).token

    submission, new_token = tokens.reissue(result.submission_id)
    assert new_token != old_token
    assert submission.resend_count == 1

    with pytest.raises(InvalidOrExpiredToken):
        tokens.redeem(old_token)
    assert tokens.redeem(new_token).id == result.submission_id


def test_reissue_after_expiry_is_allowed(pipeline, make_review, db, tokens, clock):
    result = pipeline.submit(make_review())
    clock.advance(hours=30)

    _, token = tokens.reissue(result.submission_id)
    assert db.get(result.submission_id).token_expires_at == clock() + timedelta(hours=24)
    assert tokens.redeem(token).is_published


def test_reissue_rejects_submission_verified_after_it_was_read(pipeline, make_review, db, tokens, monkeypatch):
    result = pipeline.submit(make_review())
    stale = db.get(result.submission_id)
    tokens.redeem(stale.token)

    # Resend read the record just before the verification landed
    monkeypatch.setattr(db, "get", lambda submission_id: stale)

    with pytest.raises(NotEligibleForResend):
        tokens.reissue(result.submission_id)

    monkeypatch.undo()
    stored = db.get(result.submission_id)
    assert stored.is_published
    assert stored.resend_count == 0


def test_reissue_eligibility(pipeline, make_review, db, tokens):
    with pytest.raises(SubmissionNotFound):
        tokens.reissue("missing")

    flagged = pipeline.submit(make_review(**SPAM))
    with pytest.raises(NotEligibleForResend):
        tokens.reissue(flagged.submission_id)

    published = pipeline.submit(make_review())
    pipeline.verify(db.get(published.submission_id).token)
    with pytest.raises(NotEligibleForResend) as exc:
        tokens.reissue(published.submission_id)
    assert "already been verified" in exc.value.message


def test_resend_cap(pipeline, make_review, tokens):
    result = pipeline.submit(make_review())
    for _ in range(5):
        tokens.reissue(result.submission_id)

    with pytest.raises(NotEligibleForResend):
        tokens.reissue(result.submission_id)


def test_token_state_follows_submission(pipeline, make_review, db, clock):
    result = pipeline.submit(make_review())
    stored = db.get(result.submission_id)
    assert stored.token_state(clock()) == TokenState.ISSUED
    assert stored.token_state(clock() + timedelta(hours=24)) == TokenState.EXPIRED

    pipeline.verify(stored.token)
    assert db.get(result.submission_id).token_state(clock()) == TokenState.REDEEMED
