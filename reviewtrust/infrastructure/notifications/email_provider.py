"""
Email Providers - Notifier implementations
==========================================

USAGE:
    # HTTP email API (production)
    notifier = HttpEmailNotifier(api_url, api_key, sender, client_url)

    # Development: messages are written to the log only
    notifier = LoggingNotifier(client_url)

Delivery errors propagate to the caller. The outbox relay records them and
retries the message on a later drain.
"""

import logging
from abc import abstractmethod
from typing import Optional

import requests

from ...application.ports import Notifier
from . import templates

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when the email API rejects a message."""
    pass


class _TemplatedNotifier(Notifier):
    """Renders the reviewer and owner emails; subclasses deliver them."""

    def __init__(self, client_url: str):
        self._client_url = client_url.rstrip("/")

    @abstractmethod
    def _deliver(self, to: str, subject: str, body: str) -> None:
        """Send one rendered message."""
        pass

    def send_verification_email(self, email: str, name: str, token: str,
                                business_name: str, submission_id: str) -> None:
        verify_url = templates.VERIFY_URL.format(
            client_url=self._client_url, token=token, submission_id=submission_id
        )
        self._deliver(
            email,
            templates.VERIFY_SUBJECT.format(business_name=business_name),
            templates.VERIFY_BODY.format(name=name, business_name=business_name, verify_url=verify_url),
        )

    def send_published_confirmation(self, email: str, name: str, business_name: str,
                                    business_slug: str, submission_id: str) -> None:
        business_url = templates.BUSINESS_URL.format(
            client_url=self._client_url, slug=business_slug or ""
        )
        self._deliver(
            email,
            templates.PUBLISHED_SUBJECT.format(business_name=business_name),
            templates.PUBLISHED_BODY.format(name=name, business_name=business_name, business_url=business_url),
        )

    def send_low_rating_alert(self, owner_email: str, business_name: str, average_rating: float,
                              review_count: int, summary: dict) -> None:
        self._deliver(
            owner_email,
            templates.LOW_RATING_SUBJECT.format(business_name=business_name),
            templates.LOW_RATING_BODY.format(
                business_name=business_name,
                average_rating=float(average_rating),
                review_count=review_count,
                rating=summary.get("rating", "?"),
                reviewer_name=summary.get("reviewerName") or "Anonymous",
                snippet=summary.get("snippet", ""),
            ),
        )


class HttpEmailNotifier(_TemplatedNotifier):
    """Sends email through a JSON HTTP API with bearer authentication."""

    def __init__(self, api_url: str, api_key: str, sender: str, client_url: str,
                 timeout: int = 10, session: Optional[requests.Session] = None):
        super().__init__(client_url)
        self._api_url = api_url
        self._api_key = api_key
        self._sender = sender
        self._timeout = timeout
        self._session = session or requests.Session()

    def _deliver(self, to: str, subject: str, body: str) -> None:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "from": self._sender,
            "to": to,
            "subject": subject,
            "text": body,
        }

        try:
            response = self._session.post(
                self._api_url,
                headers=headers,
                json=payload,
                timeout=self._timeout
            )
            response.raise_for_status()
        except requests.Timeout as e:
            raise EmailDeliveryError(f"Email API timeout sending to {to}") from e
        except requests.RequestException as e:
            raise EmailDeliveryError(f"Email API error sending to {to}: {e}") from e

        logger.info(f"Email sent to {to}: {subject}")


class LoggingNotifier(_TemplatedNotifier):
    """Writes emails to the log instead of sending them."""

    def _deliver(self, to: str, subject: str, body: str) -> None:
        logger.info(f"[email] to={to} subject={subject!r}\n{body}")
