from .email_provider import EmailDeliveryError, HttpEmailNotifier, LoggingNotifier
from .realtime import HttpRealtimeChannel, LoggingRealtimeChannel, RealtimeDeliveryError

__all__ = [
    "EmailDeliveryError",
    "HttpEmailNotifier",
    "LoggingNotifier",
    "HttpRealtimeChannel",
    "LoggingRealtimeChannel",
    "RealtimeDeliveryError",
]
