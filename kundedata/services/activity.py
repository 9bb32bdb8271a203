"""Activity log: append-only audit records written in the caller's transaction."""

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kundedata.storage.models import ActivityLog


async def log_activity(
    db: AsyncSession,
    action: str,
    resource: str,
    resource_id: Optional[Any] = None,
    user_id: Optional[int] = None,
    organization_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> ActivityLog:
    """Add an ActivityLog row to the session (flushed, not committed).

    Args:
        db: Session whose transaction the record joins
        action: Dotted action name, e.g. ``submission.created``
        resource: Resource kind, e.g. ``submission``
        resource_id: Primary key of the resource
        user_id: Acting user, None for system actions
        organization_id: Tenant the action belongs to
        details: Free-form JSON context
    """
    entry = ActivityLog(
        action=action,
        resource=resource,
        resource_id=str(resource_id) if resource_id is not None else None,
        user_id=user_id,
        organization_id=organization_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(entry)
    await db.flush()
    return entry
