"""Analytics sink for onboarding events.

Recording is fire-and-forget: callers wrap ``record`` so a failing sink never
affects onboarding state.
"""

import abc
import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.audit_service import log_event

logger = structlog.get_logger()


class AnalyticsNotifier(abc.ABC):
    @abc.abstractmethod
    async def record(
        self,
        event: str,
        payload: dict,
        *,
        user_id: str | None = None,
        organization_id: str | None = None,
        session_id: str | None = None,
        path_id: str | None = None,
        step_id: str | None = None,
    ) -> None: ...


class NullNotifier(AnalyticsNotifier):
    async def record(self, event: str, payload: dict, **ids) -> None:
        logger.debug("onboarding.analytics_dropped", analytics_event=event)


def _as_uuid(value: str | None) -> uuid.UUID | None:
    return uuid.UUID(value) if value else None


class AuditLogNotifier(AnalyticsNotifier):
    """Appends events to audit_events under the ``onboarding`` category.

    Writes go through a savepoint so a failed insert does not poison the
    surrounding request transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        event: str,
        payload: dict,
        *,
        user_id: str | None = None,
        organization_id: str | None = None,
        session_id: str | None = None,
        path_id: str | None = None,
        step_id: str | None = None,
    ) -> None:
        correlation_id = structlog.contextvars.get_contextvars().get("correlation_id")
        async with self.db.begin_nested():
            await log_event(
                db=self.db,
                category="onboarding",
                action=event,
                organization_id=_as_uuid(organization_id),
                actor_id=_as_uuid(user_id),
                session_id=_as_uuid(session_id),
                path_id=_as_uuid(path_id),
                step_id=_as_uuid(step_id),
                correlation_id=correlation_id,
                payload=payload,
            )
