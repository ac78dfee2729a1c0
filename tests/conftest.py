import itertools
from datetime import datetime, timedelta, timezone

import pytest

from reviewtrust.application.ports import Notifier, RealtimeChannel
from reviewtrust.bootstrap import build_pipeline, build_relay
from reviewtrust.domain.models import ReviewRequest
from reviewtrust.infrastructure.config import Settings
from reviewtrust.infrastructure.persistence import Database

BUSINESS_ID = "biz-mamas-kitchen"
OTHER_BUSINESS_ID = "biz-corner-cafe"

# Scores 80 with the default policy
SPAM = dict(
    rating=5,
    body="AMAZING BEST PERFECT DEAL!!!!! VISIT HTTP://SPAM.EXAMPLE WWW.CHEAP.EXAMPLE",
    reviewer_name="Buyer123",
)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier(Notifier):

    def __init__(self):
        self.sent = []

    def send_verification_email(self, email, name, token, business_name, submission_id):
        self.sent.append({"kind": "verification", "email": email, "name": name, "token": token,
                          "business_name": business_name, "submission_id": submission_id})

    def send_published_confirmation(self, email, name, business_name, business_slug, submission_id):
        self.sent.append({"kind": "published", "email": email, "name": name,
                          "business_name": business_name, "submission_id": submission_id})

    def send_low_rating_alert(self, owner_email, business_name, average_rating, review_count, summary):
        self.sent.append({"kind": "low_rating", "email": owner_email, "business_name": business_name,
                          "average_rating": average_rating, "review_count": review_count,
                          "summary": summary})

    def of_kind(self, kind):
        return [m for m in self.sent if m["kind"] == kind]


class RecordingRealtime(RealtimeChannel):

    def __init__(self):
        self.events = []

    def publish_low_rating_alert(self, business_id, payload):
        self.events.append(("low_rating_alert", business_id, payload))

    def publish_new_review_notification(self, business_id, payload):
        self.events.append(("new_review", business_id, payload))


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / "reviews.db"))
    database.init()
    database.add_business("Mama's Kitchen", owner_email="owner@mamas.example",
                          slug="mamas-kitchen", business_id=BUSINESS_ID)
    database.add_business("Corner Cafe", owner_email="",
                          slug="corner-cafe", business_id=OTHER_BUSINESS_ID)
    return database


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def realtime():
    return RecordingRealtime()


@pytest.fixture
def pipeline(settings, db, clock):
    return build_pipeline(settings, db, clock=clock)


@pytest.fixture
def relay(settings, db, notifier, realtime, clock):
    return build_relay(settings, db, notifier=notifier, realtime=realtime, clock=clock)


@pytest.fixture
def make_review():
    """Factory for clean review requests; each call gets its own email and IP."""
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        fields = dict(
            business_id=BUSINESS_ID,
            rating=4,
            body="The food was fresh and the staff were friendly. Would come back again.",
            reviewer_name="Jane Doe",
            reviewer_email=f"reviewer{n}@example.com",
            title="Lovely dinner",
            ip_address=f"10.0.0.{n}",
            user_agent="pytest-agent/1.0",
        )
        fields.update(overrides)
        return ReviewRequest(**fields)

    return _make


@pytest.fixture
def publish(pipeline, relay, notifier, make_review):
    """Submit and verify a review, returning the submission id."""

    def _publish(**overrides):
        result = pipeline.submit(make_review(**overrides))
        relay.drain()
        token = [m for m in notifier.of_kind("verification")
                 if m["submission_id"] == result.submission_id][-1]["token"]
        pipeline.verify(token)
        return result.submission_id

    return _publish
