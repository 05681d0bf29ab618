"""WebSocket authentication middleware for JWT and Cookie-based auth."""

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

User = get_user_model()
logger = logging.getLogger(__name__)


@database_sync_to_async
def get_user_for_token(raw_token):
    try:
        access = AccessToken(raw_token)
        return User.objects.get(id=access["user_id"], is_active=True)
    except (TokenError, KeyError, User.DoesNotExist) as e:
        logger.debug("JWT auth failed: %s", e)
        return AnonymousUser()


def _token_from_scope(scope):
    params = parse_qs(scope.get("query_string", b"").decode())
    token_list = params.get("token")
    if token_list:
        return token_list[0]

    for name, value in scope.get("headers", []):
        if name == b"authorization":
            auth_type, _, token = value.decode().partition(" ")
            if auth_type.lower() == "bearer" and token:
                return token.strip()
    return None


class JWTOrCookieAuthMiddleware(BaseMiddleware):
    """
    Authenticate WebSocket connections using either:
    1. JWT in querystring (?token=...) or an ``Authorization: Bearer`` header
    2. Session cookies, resolved by the AuthMiddlewareStack wrapping this one

    A token that fails to validate yields an anonymous user even when a
    session exists.
    """

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        token = _token_from_scope(scope)

        if token:
            scope["user"] = await get_user_for_token(token)
        elif "user" not in scope:
            scope["user"] = AnonymousUser()

        return await super().__call__(scope, receive, send)
