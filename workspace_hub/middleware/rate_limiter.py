"""
Rate limiting configuration.

Applies per-blueprint limits using Flask-Limiter. The Limiter instance is
created in workspace_hub/__init__.py with no default limits; this module
attaches the workspace limit once the blueprints are registered.

Usage:
    from workspace_hub.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE_LIMIT = "120/minute"


def init_rate_limits(app, limiter):
    """Apply the workspace API limit (per remote IP).

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    limit = app.config.get("WORKSPACE_RATE_LIMIT", DEFAULT_WORKSPACE_LIMIT)
    bp = app.blueprints.get("workspace")
    if bp:
        limiter.limit(limit)(bp)

    app.logger.info("Rate limiter configured: workspace=%s", limit)
