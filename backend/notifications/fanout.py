"""
Notification fan-out.

Delivers one message to many users: a durable ``Notification`` row each,
then a Web Push to every subscription each user owns. Recipients are
independent; one failing never stops or fails the others.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from django.db import DatabaseError

from realtime.notifications import notify_user_event

from .models import Notification, PushSubscription
from .push import (
    DeliveryOutcome,
    PushConfigurationError,
    PushPayload,
    prune_gone,
    send_many,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationMessage:
    """
    One message for many users.

    ``body`` is stored in-app; ``push_body`` (shorter) goes to the lock
    screen and falls back to ``body``.
    """
    title: str
    body: str
    push_body: Optional[str] = None
    type: str = "info"
    tag: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    icon: Optional[str] = None

    def push_payload(self) -> PushPayload:
        return PushPayload(
            title=self.title,
            body=self.push_body or self.body,
            icon=self.icon,
            tag=self.tag,
            data=dict(self.data),
        )


@dataclass
class FanoutResult:
    sent: int
    total: int
    outcomes: Dict[Any, List[DeliveryOutcome]] = field(default_factory=dict)


def _user_id(recipient):
    return getattr(recipient, "pk", recipient)


def _record_notification(user_id, message: NotificationMessage) -> Optional[Notification]:
    try:
        notification = Notification.objects.create(
            user_id=user_id,
            title=message.title,
            message=message.body,
            type=message.type,
            data=message.data or None,
        )
    except DatabaseError:
        logger.exception("Failed to store notification for user %s", user_id)
        return None

    notify_user_event(user_id, "notification_created", {
        "notification_id": notification.id,
        "title": notification.title,
        "message": notification.message,
        "notification_type": notification.type,
    })
    return notification


def notify_users(recipients: Iterable, message: NotificationMessage, max_workers: Optional[int] = None) -> FanoutResult:
    """
    Notify every recipient (users or user ids).

    A recipient counts as sent when at least one of its subscriptions
    accepted the push. ``total`` is the number of distinct recipients.
    """
    user_ids = list(dict.fromkeys(_user_id(r) for r in recipients if r is not None))
    if not user_ids:
        return FanoutResult(sent=0, total=0)

    for user_id in user_ids:
        _record_notification(user_id, message)

    try:
        subscriptions = list(PushSubscription.objects.filter(user_id__in=user_ids))
    except DatabaseError:
        logger.exception("Failed to load push subscriptions for %s users", len(user_ids))
        return FanoutResult(sent=0, total=len(user_ids))

    try:
        by_subscription = send_many(subscriptions, message.push_payload(), max_workers=max_workers)
    except PushConfigurationError as exc:
        logger.warning("Skipping push fan-out: %s", exc)
        by_subscription = {}

    try:
        prune_gone(by_subscription)
    except DatabaseError:
        logger.exception("Failed to prune expired push subscriptions")

    outcomes: Dict[Any, List[DeliveryOutcome]] = defaultdict(list)
    for subscription in subscriptions:
        if subscription.pk in by_subscription:
            outcomes[subscription.user_id].append(by_subscription[subscription.pk])

    sent = sum(
        1 for user_id in user_ids
        if DeliveryOutcome.DELIVERED in outcomes.get(user_id, ())
    )
    logger.info("Fan-out '%s': push delivered to %s/%s users", message.title, sent, len(user_ids))
    return FanoutResult(sent=sent, total=len(user_ids), outcomes=dict(outcomes))
