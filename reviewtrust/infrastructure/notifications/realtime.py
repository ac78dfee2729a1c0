"""
Realtime Channel - Business dashboard pushes
============================================

Pushes go to the `business:{id}` room of a realtime gateway as
`notification` events. The gateway itself (socket fan-out, auth) lives
outside this service.
"""

import logging
from typing import Optional

import requests

from ...application.ports import RealtimeChannel
from . import templates

logger = logging.getLogger(__name__)

NOTIFICATION_EVENT = "notification"


class RealtimeDeliveryError(Exception):
    """Raised when the realtime gateway rejects a push."""
    pass


def business_room(business_id: str) -> str:
    return f"business:{business_id}"


def low_rating_notification(business_id: str, payload: dict) -> dict:
    return {
        "type": "low_rating_alert",
        "title": templates.LOW_RATING_TITLE,
        "message": templates.LOW_RATING_MESSAGE.format(average=float(payload.get("newAverage", 0.0))),
        "priority": "high",
        "data": payload,
    }


def new_review_notification(business_id: str, payload: dict) -> dict:
    return {
        "type": "new_review",
        "title": templates.NEW_REVIEW_TITLE,
        "message": templates.NEW_REVIEW_MESSAGE.format(
            reviewer_name=payload.get("reviewerName") or "Anonymous",
            rating=payload.get("rating", "?"),
        ),
        "data": dict(payload, businessId=business_id),
    }


class HttpRealtimeChannel(RealtimeChannel):
    """Posts room events to a realtime gateway over HTTP."""

    def __init__(self, gateway_url: str, api_key: str = "", timeout: int = 10,
                 session: Optional[requests.Session] = None):
        self._gateway_url = gateway_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._session = session or requests.Session()

    def _emit(self, business_id: str, notification: dict) -> None:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            response = self._session.post(
                f"{self._gateway_url}/emit",
                headers=headers,
                json={
                    "room": business_room(business_id),
                    "event": NOTIFICATION_EVENT,
                    "data": notification,
                },
                timeout=self._timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise RealtimeDeliveryError(f"Realtime push to business {business_id} failed: {e}") from e

        logger.info(f"Pushed {notification['type']} to business {business_id}")

    def publish_low_rating_alert(self, business_id: str, payload: dict) -> None:
        self._emit(business_id, low_rating_notification(business_id, payload))

    def publish_new_review_notification(self, business_id: str, payload: dict) -> None:
        self._emit(business_id, new_review_notification(business_id, payload))


class LoggingRealtimeChannel(RealtimeChannel):
    """Writes pushes to the log instead of a gateway."""

    def publish_low_rating_alert(self, business_id: str, payload: dict) -> None:
        notification = low_rating_notification(business_id, payload)
        logger.info(f"[push] {business_room(business_id)} {notification['message']}")

    def publish_new_review_notification(self, business_id: str, payload: dict) -> None:
        notification = new_review_notification(business_id, payload)
        logger.info(f"[push] {business_room(business_id)} {notification['message']}")
