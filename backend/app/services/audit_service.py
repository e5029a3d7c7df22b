import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditEvent


async def log_event(
    db: AsyncSession,
    category: str,
    action: str,
    organization_id: uuid.UUID | None = None,
    actor_id: uuid.UUID | None = None,
    session_id: uuid.UUID | None = None,
    path_id: uuid.UUID | None = None,
    step_id: uuid.UUID | None = None,
    correlation_id: str | None = None,
    payload: dict | None = None,
) -> AuditEvent:
    """Append an audit event. Events are insert-only."""
    event = AuditEvent(
        organization_id=organization_id,
        actor_id=actor_id,
        category=category,
        action=action,
        session_id=session_id,
        path_id=path_id,
        step_id=step_id,
        correlation_id=correlation_id,
        payload=payload,
    )
    db.add(event)
    await db.flush()
    return event


async def list_session_events(db: AsyncSession, session_id: uuid.UUID) -> list[AuditEvent]:
    result = await db.execute(
        select(AuditEvent)
        .where(AuditEvent.session_id == session_id, AuditEvent.category == "onboarding")
        .order_by(AuditEvent.timestamp.desc())
    )
    return list(result.scalars().all())
