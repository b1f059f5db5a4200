"""
ARQ background task: delete user sessions whose expiry has passed.

Scheduled to run periodically (every hour). Expired sessions are already
rejected on lookup; this only keeps the table small.
"""

from __future__ import annotations

import structlog

from app.core.config import get_settings
from app.core.database import create_engine, create_session_factory
from app.core.deps import build_services
from app.core.errors import Err
from app.stores import memory_stores, sql_stores

log = structlog.get_logger()


async def startup(ctx: dict) -> None:
    """Build the service container once per worker process."""
    settings = get_settings()
    if settings.database_url == "memory":
        stores = memory_stores()
    else:
        ctx["engine"] = create_engine(settings.database_url)
        stores = sql_stores(create_session_factory(ctx["engine"]))
    ctx["services"] = build_services(settings, stores)


async def shutdown(ctx: dict) -> None:
    engine = ctx.pop("engine", None)
    if engine is not None:
        await engine.dispose()


async def cleanup_expired_sessions(ctx: dict) -> int:
    """Sweep expired sessions.

    Returns the number of sessions deleted, 0 when the sweep failed.
    """
    result = await ctx["services"].sessions.cleanup_expired_sessions()
    if isinstance(result, Err):
        log.error("session_cleanup.failed", error=result.type.value)
        return 0

    if result.value:
        log.info("session_cleanup.batch_deleted", count=result.value)
    return result.value


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [cleanup_expired_sessions]
    on_startup = startup
    on_shutdown = shutdown
    cron_jobs = [
        {
            "coroutine": cleanup_expired_sessions,
            "hour": None,  # every hour
            "minute": 0,
        },
    ]
