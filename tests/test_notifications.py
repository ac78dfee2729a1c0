"""Tests for the HTTP email and realtime providers."""

import pytest
import requests

from reviewtrust.bootstrap import build_notifier, build_realtime
from reviewtrust.infrastructure.config import NotificationSettings, Settings
from reviewtrust.infrastructure.notifications import (
    EmailDeliveryError,
    HttpEmailNotifier,
    HttpRealtimeChannel,
    LoggingNotifier,
    LoggingRealtimeChannel,
    RealtimeDeliveryError,
)


class FakeResponse:

    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeSession:

    def __init__(self, status_code=200, error=None):
        self.calls = []
        self.status_code = status_code
        self.error = error

    def post(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.error:
            raise self.error
        return FakeResponse(self.status_code)


def _notifier(session):
    return HttpEmailNotifier("https://mail.example/send", "secret", "reviews@example.com",
                             "https://reviews.example/", timeout=5, session=session)


def test_verification_email_contains_link():
    session = FakeSession()
    _notifier(session).send_verification_email("ann@example.com", "Ann", "tok123", "Mama's Kitchen", "sub-1")

    call = session.calls[0]
    assert call["url"] == "https://mail.example/send"
    assert call["headers"]["Authorization"] == "Bearer secret"
    assert call["timeout"] == 5
    assert call["json"]["to"] == "ann@example.com"
    assert "Mama's Kitchen" in call["json"]["subject"]
    assert "https://reviews.example/verify-review?token=tok123&reviewId=sub-1" in call["json"]["text"]


def test_low_rating_email_summarizes_review():
    session = FakeSession()
    summary = {"id": "sub-1", "rating": 1, "snippet": "Cold food", "reviewerName": "Ann"}
    _notifier(session).send_low_rating_alert("owner@example.com", "Mama's Kitchen", 3.4, 5, summary)

    text = session.calls[0]["json"]["text"]
    assert "3.4 stars" in text
    assert "Cold food" in text


@pytest.mark.parametrize("session", [
    FakeSession(status_code=502),
    FakeSession(error=requests.Timeout()),
    FakeSession(error=requests.ConnectionError("refused")),
])
def test_email_failures_raise(session):
    with pytest.raises(EmailDeliveryError):
        _notifier(session).send_published_confirmation("ann@example.com", "Ann", "Mama's Kitchen",
                                                       "mamas-kitchen", "sub-1")


def test_realtime_posts_to_business_room():
    session = FakeSession()
    channel = HttpRealtimeChannel("https://push.example", "key", session=session)

    channel.publish_low_rating_alert("biz-1", {"businessId": "biz-1", "newAverage": 3.4})

    call = session.calls[0]
    assert call["url"] == "https://push.example/emit"
    assert call["json"]["room"] == "business:biz-1"
    assert call["json"]["event"] == "notification"
    assert call["json"]["data"]["type"] == "low_rating_alert"
    assert "3.4" in call["json"]["data"]["message"]


def test_realtime_failure_raises():
    channel = HttpRealtimeChannel("https://push.example", session=FakeSession(status_code=500))
    with pytest.raises(RealtimeDeliveryError):
        channel.publish_new_review_notification("biz-1", {"id": "sub-1", "rating": 4})


def test_logging_providers_selected_without_endpoints():
    settings = Settings(notifications=NotificationSettings(email_api_url="", realtime_url=""))
    assert isinstance(build_notifier(settings), LoggingNotifier)
    assert isinstance(build_realtime(settings), LoggingRealtimeChannel)

    settings = Settings(notifications=NotificationSettings(email_api_url="https://mail.example",
                                                           realtime_url="https://push.example"))
    assert isinstance(build_notifier(settings), HttpEmailNotifier)
    assert isinstance(build_realtime(settings), HttpRealtimeChannel)


def test_logging_providers_do_not_raise():
    LoggingNotifier("http://localhost").send_verification_email("a@example.com", "A", "t", "Biz", "s")
    LoggingRealtimeChannel().publish_new_review_notification("biz-1", {"rating": 4})


def test_templated_notifier_requires_delivery_method():
    from reviewtrust.infrastructure.notifications.email_provider import _TemplatedNotifier

    with pytest.raises(TypeError):
        _TemplatedNotifier("http://localhost")

    class Incomplete(_TemplatedNotifier):
        pass

    with pytest.raises(TypeError):
        Incomplete("http://localhost")

    class Captured(_TemplatedNotifier):
        def __init__(self, client_url):
            super().__init__(client_url)
            self.messages = []

        def _deliver(self, to, subject, body):
            self.messages.append((to, subject, body))

    notifier = Captured("http://localhost/")
    notifier.send_verification_email("a@example.com", "A", "tok", "Biz", "sub-1")
    assert notifier.messages[0][0] == "a@example.com"
    assert "http://localhost/" in notifier.messages[0][2]
