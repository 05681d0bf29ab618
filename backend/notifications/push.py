"""
Web Push delivery.

Sends VAPID-signed pushes through pywebpush to the subscriptions stored in
``PushSubscription`` and keeps that table clean: an endpoint the push
service reports as gone (HTTP 404/410) is deleted, any other failure leaves
the row in place for the next attempt.

Database work (lookup, pruning) runs on the calling thread. Only the HTTP
sends go through the worker pool.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Union

import requests
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db.models import QuerySet
from pywebpush import WebPushException, webpush

from .models import PushSubscription

logger = logging.getLogger(__name__)

GONE_STATUS_CODES = (404, 410)


class PushConfigurationError(Exception):
    """Raised when VAPID keys are not configured."""
    pass


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    RECIPIENT_GONE = "recipient_gone"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass
class PushPayload:
    """What the service worker receives and shows."""
    title: str
    body: str
    icon: Optional[str] = None
    tag: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        payload = {"title": self.title, "body": self.body}
        if self.icon:
            payload["icon"] = self.icon
        if self.tag:
            payload["tag"] = self.tag
        if self.data:
            payload["data"] = self.data
        return payload

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "PushPayload":
        return cls(
            title=raw["title"],
            body=raw["body"],
            icon=raw.get("icon"),
            tag=raw.get("tag"),
            data=dict(raw.get("data") or {}),
        )


@dataclass
class PushResult:
    sent: int
    total: int


PayloadLike = Union[PushPayload, Mapping[str, Any]]


def _as_payload_dict(payload: PayloadLike) -> Dict[str, Any]:
    if isinstance(payload, PushPayload):
        return payload.as_dict()
    return dict(payload)


def _vapid_settings():
    private_key = getattr(settings, "VAPID_PRIVATE_KEY", "")
    public_key = getattr(settings, "VAPID_PUBLIC_KEY", "")
    if not private_key or not public_key:
        raise PushConfigurationError("VAPID keys not configured")
    return private_key, settings.VAPID_CLAIMS_SUBJECT


def resolve_subscriptions(
    order_id=None,
    user_id=None,
    store_id=None,
    user_type: Optional[str] = None,
) -> QuerySet:
    """
    Subscriptions addressed by one scope. The first scope given wins:
    order, then user, then store + role, then store. No scope, no rows.
    """
    queryset = PushSubscription.objects.all()
    if order_id:
        return queryset.filter(order_id=order_id)
    if user_id:
        return queryset.filter(user_id=user_id)
    if store_id and user_type:
        return queryset.filter(store_id=store_id, user_type=user_type)
    if store_id:
        return queryset.filter(store_id=store_id)
    return queryset.none()


def send_web_push(subscription_info: Dict[str, Any], payload: PayloadLike) -> DeliveryOutcome:
    """
    Make one authenticated push request.

    Args:
        subscription_info: ``{"endpoint": ..., "keys": {"p256dh": ..., "auth": ...}}``
        payload: PushPayload or an equivalent dict

    Returns:
        DeliveryOutcome of the attempt. Only configuration problems raise.
    """
    private_key, subject = _vapid_settings()
    endpoint = subscription_info.get("endpoint", "")

    try:
        webpush(
            subscription_info=subscription_info,
            data=json.dumps(_as_payload_dict(payload), cls=DjangoJSONEncoder),
            vapid_private_key=private_key,
            # pywebpush writes aud/exp into the claims dict
            vapid_claims={"sub": subject},
            timeout=settings.PUSH_REQUEST_TIMEOUT,
            ttl=settings.PUSH_TTL_SECONDS,
        )
    except WebPushException as exc:
        status_code = getattr(exc.response, "status_code", None)
        if status_code in GONE_STATUS_CODES:
            logger.info("Push endpoint gone (%s): %s", status_code, endpoint[:80])
            return DeliveryOutcome.RECIPIENT_GONE
        logger.warning("Push to %s failed (%s): %s", endpoint[:80], status_code, exc)
        return DeliveryOutcome.TRANSIENT_FAILURE
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Push to %s failed: %s", endpoint[:80], exc)
        return DeliveryOutcome.TRANSIENT_FAILURE

    logger.debug("Push delivered to %s", endpoint[:80])
    return DeliveryOutcome.DELIVERED


def deliver(subscription: PushSubscription, payload: PayloadLike) -> DeliveryOutcome:
    """Send to one stored subscription and delete it if the endpoint is gone."""
    outcome = send_web_push(subscription.as_subscription_info(), payload)
    if outcome is DeliveryOutcome.RECIPIENT_GONE:
        subscription.delete()
        logger.info("Deleted expired push subscription %s", subscription.endpoint[:80])
    return outcome


def send_many(
    subscriptions: Iterable[PushSubscription],
    payload: PayloadLike,
    max_workers: Optional[int] = None,
) -> Dict[int, DeliveryOutcome]:
    """
    Send one payload to many subscriptions on a bounded thread pool.

    Returns the outcome per subscription id. A send that raises is logged and
    counted as a transient failure; it never cancels the other sends.
    """
    subscriptions = list(subscriptions)
    if not subscriptions:
        return {}

    # Fail once, before any thread starts
    _vapid_settings()

    payload_dict = _as_payload_dict(payload)
    limit = max_workers or settings.NOTIFICATION_FANOUT_MAX_WORKERS
    workers = max(1, min(limit, len(subscriptions)))

    outcomes: Dict[int, DeliveryOutcome] = {}
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="webpush") as pool:
        futures = {
            pool.submit(send_web_push, subscription.as_subscription_info(), payload_dict): subscription
            for subscription in subscriptions
        }
        for future in as_completed(futures):
            subscription = futures[future]
            try:
                outcomes[subscription.pk] = future.result()
            except Exception:
                logger.exception("Push to subscription %s raised", subscription.pk)
                outcomes[subscription.pk] = DeliveryOutcome.TRANSIENT_FAILURE

    return outcomes


def prune_gone(outcomes: Mapping[int, DeliveryOutcome]) -> int:
    """Delete every subscription whose endpoint was reported gone."""
    gone_ids = [pk for pk, outcome in outcomes.items() if outcome is DeliveryOutcome.RECIPIENT_GONE]
    if not gone_ids:
        return 0

    deleted, _ = PushSubscription.objects.filter(pk__in=gone_ids).delete()
    logger.info("Pruned %s expired push subscriptions", deleted)
    return deleted


def send_push(
    *,
    payload: PayloadLike,
    order_id=None,
    user_id=None,
    store_id=None,
    user_type: Optional[str] = None,
) -> PushResult:
    """
    Push ``payload`` to every subscription in the requested scope.

    ``total`` counts the subscriptions found, ``sent`` those delivered.
    """
    subscriptions = list(resolve_subscriptions(
        order_id=order_id,
        user_id=user_id,
        store_id=store_id,
        user_type=user_type,
    ))
    if not subscriptions:
        logger.info(
            "No push subscriptions for order=%s user=%s store=%s type=%s",
            order_id, user_id, store_id, user_type,
        )
        return PushResult(sent=0, total=0)

    outcomes = send_many(subscriptions, payload)
    prune_gone(outcomes)

    sent = sum(1 for outcome in outcomes.values() if outcome is DeliveryOutcome.DELIVERED)
    logger.info("Push sent to %s/%s subscriptions", sent, len(subscriptions))
    return PushResult(sent=sent, total=len(subscriptions))
