"""
Composition root - wires settings, storage and providers into the pipeline.

USAGE:
    settings = get_settings()
    db = Database(str(settings.database_file))
    db.init()

    pipeline = build_pipeline(settings, db)
    relay = build_relay(settings, db)
"""

import logging
from typing import Optional

from .application.alerts import AlertDispatcher
from .application.duplicate_guard import DuplicateGuard
from .application.outbox import NotificationOutbox, OutboxRelay
from .application.pipeline import ReviewPipeline
from .application.ports import Notifier, RealtimeChannel
from .application.ratings import RatingAggregator
from .application.tokens import TokenManager
from .domain.models import Clock, utcnow
from .infrastructure.config import Settings
from .infrastructure.notifications import (
    HttpEmailNotifier,
    HttpRealtimeChannel,
    LoggingNotifier,
    LoggingRealtimeChannel,
)
from .infrastructure.persistence import Database

logger = logging.getLogger(__name__)


def build_pipeline(settings: Settings, db: Database, clock: Clock = utcnow) -> ReviewPipeline:
    pipeline_cfg = settings.pipeline
    alert_cfg = settings.alerts

    outbox = NotificationOutbox(db, clock=clock)
    return ReviewPipeline(
        submissions=db,
        businesses=db,
        guard=DuplicateGuard(
            db,
            cooldown_hours=pipeline_cfg.duplicate_cooldown_hours,
            ip_limit=pipeline_cfg.ip_submission_limit,
            rate_window_hours=pipeline_cfg.rate_limit_window_hours,
            clock=clock,
        ),
        tokens=TokenManager(
            db,
            ttl_hours=pipeline_cfg.token_ttl_hours,
            max_resends=pipeline_cfg.max_verification_resends,
            clock=clock,
        ),
        ratings=RatingAggregator(db, db, clock=clock),
        alerts=AlertDispatcher(
            outbox,
            average_threshold=alert_cfg.average_threshold,
            max_triggering_rating=alert_cfg.max_triggering_rating,
            snippet_length=alert_cfg.snippet_length,
            clock=clock,
        ),
        outbox=outbox,
        spam_policy=settings.spam,
        clock=clock,
    )


def build_notifier(settings: Settings) -> Notifier:
    cfg = settings.notifications
    if cfg.email_api_url:
        return HttpEmailNotifier(
            api_url=cfg.email_api_url,
            api_key=cfg.email_api_key,
            sender=cfg.email_sender,
            client_url=cfg.client_url,
            timeout=cfg.timeout_seconds,
        )
    logger.info("No email API configured, using logging notifier")
    return LoggingNotifier(cfg.client_url)


def build_realtime(settings: Settings) -> RealtimeChannel:
    cfg = settings.notifications
    if cfg.realtime_url:
        return HttpRealtimeChannel(cfg.realtime_url, cfg.realtime_api_key, timeout=cfg.timeout_seconds)
    logger.info("No realtime gateway configured, using logging channel")
    return LoggingRealtimeChannel()


def build_relay(settings: Settings, db: Database, notifier: Optional[Notifier] = None,
                realtime: Optional[RealtimeChannel] = None, clock: Clock = utcnow) -> OutboxRelay:
    return OutboxRelay(
        db,
        notifier or build_notifier(settings),
        realtime or build_realtime(settings),
        max_attempts=settings.notifications.max_attempts,
        clock=clock,
    )
