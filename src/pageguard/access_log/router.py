"""Access log API router (admin only)."""

from fastapi import APIRouter, Depends, Query

from pageguard.access_log.models import AccessAction, AccessLogModel
from pageguard.access_log.schemas import AccessLogResponse, SuspiciousIp
from pageguard.common.security import require_api_key

router = APIRouter()


def _get_service():
    from pageguard.deps import get_access_log_service
    return get_access_log_service()


def _get_db():
    from pageguard.deps import get_db
    return get_db()


def _to_response(e: AccessLogModel) -> AccessLogResponse:
    return AccessLogResponse(
        id=e.id,
        doc_id=e.doc_id,
        session_id=e.session_id,
        ip=e.ip,
        user_agent=e.user_agent,
        action=e.action,
        metadata=e.metadata_,
        created_at=e.created_at,
    )


@router.get("/access-logs/suspicious", response_model=list[SuspiciousIp])
async def suspicious_activity(
    since_minutes: int = Query(60, ge=1, le=60 * 24 * 30, alias="sinceMinutes"),
    min_invalid_attempts: int = Query(5, ge=1, alias="minInvalidAttempts"),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        rows = await svc.get_suspicious_activity(
            session,
            since_minutes=since_minutes,
            min_invalid_attempts=min_invalid_attempts,
        )
        return [SuspiciousIp(**row) for row in rows]


@router.get("/access-logs/sessions/{session_id}", response_model=list[AccessLogResponse])
async def session_logs(session_id: str, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        entries = await svc.get_logs_by_session(session, session_id)
        return [_to_response(e) for e in entries]


@router.get("/access-logs/{doc_id}", response_model=list[AccessLogResponse])
async def document_logs(
    doc_id: str,
    action: AccessAction | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        entries = await svc.get_logs(
            session, doc_id, action=action, limit=limit, offset=offset,
        )
        return [_to_response(e) for e in entries]
