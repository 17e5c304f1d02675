"""
Rate limiting configuration.

Applies per-blueprint limits using Flask-Limiter. The Limiter instance is
created in workhub/__init__.py with no default limits; this module applies
limits to the endpoints worth protecting.

Usage:
    from workhub.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

DEFAULT_INVITE_LIMIT = "30/minute"


def rate_limit_key():
    """Authenticated callers are limited per user, anonymous ones per IP."""
    user_id = getattr(g, "current_user_id", None)
    if user_id:
        return f"user:{user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Invite issue / preview / accept / decline: INVITE_RATE_LIMIT
          (token guessing and invite spam)
        - Health check: exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        logger.info("Rate limiter disabled (TESTING=True)")
        return

    invite_limit = app.config.get("INVITE_RATE_LIMIT", DEFAULT_INVITE_LIMIT)
    bp = app.blueprints.get("invite_bp")
    if bp:
        limiter.limit(invite_limit, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    logger.info("Rate limiter configured — invites: %s", invite_limit)
