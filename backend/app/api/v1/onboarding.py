import uuid
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import CurrentIdentity, get_current_identity
from app.core.exceptions import DatabaseError, NotFoundError, OnboardingError, ValidationError
from app.schemas.common import AuditEventResponse, AuditTrailResponse
from app.schemas.onboarding import (
    AlternativePathResponse,
    AlternativesRequest,
    BackupResponse,
    BadgeResponse,
    BlockerResponse,
    CertificateResponse,
    CompletionReportResponse,
    NextStepResponse,
    OverallProgressResponse,
    PathAdjustmentResponse,
    PathSummaryResponse,
    ProgressReportResponse,
    SessionResponse,
    StartOnboardingRequest,
    StepProgressRequest,
    StepProgressResponse,
    StepResponse,
    SwitchPathRequest,
    SyncResponse,
)
from app.services import audit_service
from app.services.onboarding.types import OnboardingContext, OnboardingSession, PathIssue
from app.services.onboarding_service import OnboardingService, build_onboarding_service

logger = structlog.get_logger()

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


async def get_onboarding_service(db: Annotated[AsyncSession, Depends(get_db)]) -> OnboardingService:
    return build_onboarding_service(db)


Identity = Annotated[CurrentIdentity, Depends(get_current_identity)]
Service = Annotated[OnboardingService, Depends(get_onboarding_service)]
Db = Annotated[AsyncSession, Depends(get_db)]


def _http_error(exc: OnboardingError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ValidationError):
        detail = {"message": str(exc), "issues": exc.issues} if exc.issues else str(exc)
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    if isinstance(exc, DatabaseError):
        logger.error("onboarding.request_failed", operation=exc.operation, error=str(exc))
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


async def _owned_session(service: OnboardingService, session_id: uuid.UUID, identity: CurrentIdentity) -> OnboardingSession:
    try:
        session = await service.get_onboarding_session(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    # Other users' sessions are reported as missing
    if session.user_id != identity.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Onboarding session not found")
    return session


@router.post("/sessions", status_code=status.HTTP_201_CREATED, response_model=SessionResponse)
async def start_onboarding(body: StartOnboardingRequest, identity: Identity, service: Service, db: Db):
    context = OnboardingContext(
        user_id=identity.user_id,
        organization_id=identity.organization_id,
        user_role=body.user_role or identity.role,
        subscription_tier=body.subscription_tier or identity.tier,
        pace_preference=body.pace_preference,
        learning_style=body.learning_style,
    )
    try:
        session = await service.initialize_onboarding(identity.user_id, context)
    except OnboardingError as exc:
        raise _http_error(exc)
    await db.commit()
    return SessionResponse.model_validate(session)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: uuid.UUID, identity: Identity, service: Service):
    session = await _owned_session(service, session_id, identity)
    return SessionResponse.model_validate(session)


@router.get("/sessions/{session_id}/next-step", response_model=NextStepResponse)
async def get_next_step(session_id: uuid.UUID, identity: Identity, service: Service):
    await _owned_session(service, session_id, identity)
    try:
        step = await service.get_next_step(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    return NextStepResponse(step=StepResponse.model_validate(step) if step else None, finished=step is None)


@router.post("/sessions/{session_id}/steps/{step_id}/progress", response_model=StepProgressResponse)
async def update_step_progress(
    session_id: uuid.UUID,
    step_id: uuid.UUID,
    body: StepProgressRequest,
    identity: Identity,
    service: Service,
    db: Db,
):
    await _owned_session(service, session_id, identity)
    try:
        progress = await service.update_onboarding_progress(
            str(session_id), str(step_id), body.model_dump(exclude_none=True)
        )
    except OnboardingError as exc:
        raise _http_error(exc)
    await db.commit()
    return StepProgressResponse.model_validate(progress)


@router.get("/sessions/{session_id}/progress", response_model=OverallProgressResponse)
async def get_progress(session_id: uuid.UUID, identity: Identity, service: Service):
    await _owned_session(service, session_id, identity)
    try:
        progress = await service.get_progress(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    return OverallProgressResponse.model_validate(progress)


@router.get("/sessions/{session_id}/blockers", response_model=list[BlockerResponse])
async def get_blockers(session_id: uuid.UUID, identity: Identity, service: Service):
    await _owned_session(service, session_id, identity)
    try:
        blockers = await service.identify_blockers(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    return [BlockerResponse.model_validate(b) for b in blockers]


@router.get("/sessions/{session_id}/validation", response_model=CompletionReportResponse)
async def validate_session(session_id: uuid.UUID, identity: Identity, service: Service):
    await _owned_session(service, session_id, identity)
    try:
        report = await service.validate_completion(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    return CompletionReportResponse.model_validate(report)


@router.post("/sessions/{session_id}/complete", response_model=SessionResponse)
async def complete_session(session_id: uuid.UUID, identity: Identity, service: Service, db: Db):
    await _owned_session(service, session_id, identity)
    try:
        session = await service.complete_onboarding_session(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    await db.commit()
    return SessionResponse.model_validate(session)


@router.post("/sessions/{session_id}/pause", response_model=SessionResponse)
async def pause_session(session_id: uuid.UUID, identity: Identity, service: Service, db: Db):
    await _owned_session(service, session_id, identity)
    try:
        session = await service.pause_onboarding_session(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    await db.commit()
    return SessionResponse.model_validate(session)


@router.post("/sessions/{session_id}/resume", response_model=SessionResponse)
async def resume_session(session_id: uuid.UUID, identity: Identity, service: Service, db: Db):
    await _owned_session(service, session_id, identity)
    try:
        session = await service.resume_onboarding_session(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    await db.commit()
    return SessionResponse.model_validate(session)


@router.post("/sessions/{session_id}/adapt", response_model=PathAdjustmentResponse)
async def adapt_session(session_id: uuid.UUID, identity: Identity, service: Service, db: Db):
    """Evaluate recent behavior and record an advisory adjustment."""
    await _owned_session(service, session_id, identity)
    try:
        adjustment = await service.adapt_onboarding_path(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    await db.commit()
    return PathAdjustmentResponse.model_validate(adjustment)


@router.get("/sessions/{session_id}/adjustments", response_model=list[PathAdjustmentResponse])
async def list_adjustments(session_id: uuid.UUID, identity: Identity, service: Service):
    """Adjustments recorded for the session, oldest first."""
    await _owned_session(service, session_id, identity)
    try:
        adjustments = await service.list_path_adjustments(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    return [PathAdjustmentResponse.model_validate(a) for a in adjustments]


@router.get("/sessions/{session_id}/report", response_model=ProgressReportResponse)
async def get_progress_report(session_id: uuid.UUID, identity: Identity, service: Service):
    await _owned_session(service, session_id, identity)
    try:
        report = await service.get_progress_report(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    return ProgressReportResponse.model_validate(report)


@router.get("/sessions/{session_id}/badges", response_model=list[BadgeResponse])
async def get_badges(session_id: uuid.UUID, identity: Identity, service: Service):
    await _owned_session(service, session_id, identity)
    try:
        badges = await service.get_available_badges(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    return [BadgeResponse.model_validate(b) for b in badges]


@router.post("/sessions/{session_id}/certificate", response_model=CertificateResponse)
async def issue_certificate(session_id: uuid.UUID, identity: Identity, service: Service, db: Db):
    await _owned_session(service, session_id, identity)
    try:
        certificate = await service.generate_completion_certificate(str(session_id))
    except OnboardingError as exc:
        raise _http_error(exc)
    await db.commit()
    return CertificateResponse.model_validate(certificate)


@router.post("/sessions/{session_id}/alternatives", response_model=list[AlternativePathResponse])
async def suggest_alternatives(
    session_id: uuid.UUID, body: AlternativesRequest, identity: Identity, service: Service
):
    await _owned_session(service, session_id, identity)
    issues = [PathIssue(type=i.type, severity=i.severity, description=i.description) for i in body.issues]
    try:
        alternatives = await service.suggest_alternative_paths(str(session_id), issues)
    except OnboardingError as exc:
        raise _http_error(exc)
    return [AlternativePathResponse.model_validate(a) for a in alternatives]


@router.post("/sessions/{session_id}/switch", response_model=SessionResponse)
async def switch_path(session_id: uuid.UUID, body: SwitchPathRequest, identity: Identity, service: Service, db: Db):
    await _owned_session(service, session_id, identity)
    try:
        session = await service.switch_to_alternative_path(str(session_id), body.path_id)
    except OnboardingError as exc:
        raise _http_error(exc)
    await db.commit()
    return SessionResponse.model_validate(session)


@router.get("/sessions/{session_id}/backup", response_model=BackupResponse)
async def get_backup(session_id: uuid.UUID, identity: Identity, service: Service):
    await _owned_session(service, session_id, identity)
    restored = await service.restore_progress(str(session_id))
    return BackupResponse.model_validate(restored)


@router.post("/sessions/{session_id}/backup/sync", response_model=SyncResponse)
async def sync_backup(session_id: uuid.UUID, identity: Identity, service: Service):
    await _owned_session(service, session_id, identity)
    result = await service.synchronize_progress(str(session_id))
    return SyncResponse.model_validate(result)


@router.get("/sessions/{session_id}/events", response_model=AuditTrailResponse)
async def get_session_events(session_id: uuid.UUID, identity: Identity, service: Service, db: Db):
    """Analytics trail recorded for the session, newest first."""
    await _owned_session(service, session_id, identity)
    events = await audit_service.list_session_events(db, session_id)
    return AuditTrailResponse(
        events=[
            AuditEventResponse(
                id=e.id,
                timestamp=e.timestamp.isoformat() if e.timestamp else "",
                category=e.category,
                action=e.action,
                organization_id=str(e.organization_id) if e.organization_id else None,
                actor_id=str(e.actor_id) if e.actor_id else None,
                session_id=str(e.session_id) if e.session_id else None,
                path_id=str(e.path_id) if e.path_id else None,
                step_id=str(e.step_id) if e.step_id else None,
                correlation_id=e.correlation_id,
                payload=e.payload,
            )
            for e in events
        ]
    )


@router.get("/paths/search", response_model=list[PathSummaryResponse])
async def search_paths(
    identity: Identity,
    service: Service,
    q: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(20, ge=1, le=100),
):
    try:
        paths = await service.search_paths(q, limit)
    except OnboardingError as exc:
        raise _http_error(exc)
    return [
        PathSummaryResponse(
            id=p.id,
            name=p.name,
            description=p.description,
            target_role=p.target_role,
            subscription_tier=p.subscription_tier,
            estimated_duration=p.estimated_duration,
            learning_objectives=p.learning_objectives,
            step_count=len(p.steps),
        )
        for p in paths
    ]
