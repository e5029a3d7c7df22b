from pydantic import BaseModel


class AuditEventResponse(BaseModel):
    id: int
    timestamp: str
    category: str
    action: str
    organization_id: str | None = None
    actor_id: str | None = None
    session_id: str | None = None
    path_id: str | None = None
    step_id: str | None = None
    correlation_id: str | None = None
    payload: dict | None = None


class AuditTrailResponse(BaseModel):
    events: list[AuditEventResponse]


class HealthResponse(BaseModel):
    status: str
    database: str
    redis: str
