"""Worker: purge old low-severity audit entries."""
from __future__ import annotations

from datetime import datetime, timedelta

from webhook_common.db.pool import get_pool

from webhook_engine.domain.enums import AuditLevel
from webhook_engine.repositories.audit import AuditLogRepository
from webhook_engine.settings import settings

PURGEABLE_LEVELS = (AuditLevel.DEBUG, AuditLevel.INFO)


async def audit_log_purge(now: datetime) -> str | None:
    """Delete debug/info entries older than ``audit_log_retention_days``."""
    pool = await get_pool()
    cutoff = now - timedelta(days=settings.audit_log_retention_days)
    purged = await AuditLogRepository(pool).purge(levels=PURGEABLE_LEVELS, created_before=cutoff)
    return f"purged={purged}" if purged else None
