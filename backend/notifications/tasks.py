import logging

from celery import shared_task

from .push import PushConfigurationError, PushPayload, send_push

logger = logging.getLogger(__name__)


@shared_task
def send_push_task(payload, order_id=None, user_id=None, store_id=None, user_type=None):
    """Background variant of the send endpoint. Returns ``{sent, total}``."""
    try:
        result = send_push(
            payload=PushPayload.from_dict(payload),
            order_id=order_id,
            user_id=user_id,
            store_id=store_id,
            user_type=user_type,
        )
    except PushConfigurationError as exc:
        logger.error("send_push_task skipped: %s", exc)
        return {"sent": 0, "total": 0}
    return {"sent": result.sent, "total": result.total}
