"""
JWT Auth Middleware — parses the Bearer token and sets the caller identity.

Sets on ``flask.g``:
    current_user_id      int | None
    current_global_role  str | None

Routes that need an identity use ``require_auth``; an absent or invalid
token yields 401 there. The middleware itself never blocks a request.
"""

import functools
import logging

import jwt as pyjwt
from flask import g, request

from workhub.core.exceptions import UnauthorizedError
from workhub.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user_id = None
        g.current_global_role = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
            g.current_user_id = int(payload["sub"])
            g.current_global_role = payload.get("global_role", "user")
        except pyjwt.ExpiredSignatureError:
            logger.debug("Expired access token on %s", path)
        except (pyjwt.InvalidTokenError, KeyError, ValueError):
            logger.debug("Invalid access token on %s", path)


def require_auth(fn):
    """Reject the request with 401 unless the middleware set an identity."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "current_user_id", None) is None:
            raise UnauthorizedError()
        return fn(*args, **kwargs)

    return wrapper