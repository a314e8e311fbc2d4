"""Lightweight helper for recording activity log entries.

Usage:
    await log_activity(
        db, actor, company_id=collection.company_id,
        action="weighed", entity_type="picker", entity_id=picker.id,
        summary="Picker #4 trip 2: 18.5 kg",
    )

The row is added to the current session and committed with the
enclosing transaction — no extra flush is performed, so a rolled-back
payout leaves no audit entry behind.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from farmvault.context import Actor
from farmvault.models.activity_log import ActivityLog


async def log_activity(
    db: AsyncSession,
    actor: Actor,
    *,
    company_id: str,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> None:
    """Append an activity log entry to the current DB session."""
    entry = ActivityLog(
        company_id=company_id,
        user_id=actor.id,
        user_name=actor.name,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        summary=summary,
        details=details,
    )
    db.add(entry)
