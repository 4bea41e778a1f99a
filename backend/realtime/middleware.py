"""WebSocket authentication: JWT in the query string, session cookie otherwise."""

import logging
from urllib.parse import parse_qs

from channels.auth import AuthMiddlewareStack
from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)


@database_sync_to_async
def get_user_for_token(raw_token: str):
    """User named by a valid access token, AnonymousUser otherwise."""
    try:
        access = AccessToken(raw_token)
    except TokenError as exc:
        logger.debug("WebSocket JWT rejected: %s", exc)
        return AnonymousUser()

    User = get_user_model()
    try:
        return User.objects.get(pk=access["user_id"], is_active=True)
    except (KeyError, User.DoesNotExist):
        return AnonymousUser()


class JWTAuthMiddleware(BaseMiddleware):
    """
    Mobile clients connect with ``?token=<access token>``. Without a token the
    user resolved by the session middleware underneath (browsers) is kept.
    """

    async def __call__(self, scope, receive, send):
        params = parse_qs(scope.get("query_string", b"").decode())
        tokens = params.get("token")
        if tokens:
            scope["user"] = await get_user_for_token(tokens[0])
        elif "user" not in scope:
            scope["user"] = AnonymousUser()
        return await super().__call__(scope, receive, send)


def JWTAuthMiddlewareStack(inner):
    return AuthMiddlewareStack(JWTAuthMiddleware(inner))
