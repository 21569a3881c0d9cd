"""Access log service: append and query security-relevant events."""

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pageguard.access_log.models import AccessAction, AccessLogModel


class AccessLogService:
    """Append-only record of who did what to which document."""

    # ── Write ──

    async def log(
        self,
        session: AsyncSession,
        doc_id: str,
        action: AccessAction,
        session_id: str | None = None,
        ip: str | None = None,
        user_agent: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AccessLogModel:
        entry = AccessLogModel(
            doc_id=doc_id,
            action=AccessAction(action).value,
            session_id=session_id or None,
            ip=ip or None,
            user_agent=user_agent or None,
            metadata_=metadata or None,
        )
        session.add(entry)
        await session.flush()
        return entry

    # ── Read ──

    async def get_logs(
        self,
        session: AsyncSession,
        doc_id: str,
        action: AccessAction | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AccessLogModel]:
        """Paginated log for one document, newest first."""
        query = select(AccessLogModel).where(AccessLogModel.doc_id == doc_id)
        if action:
            query = query.where(AccessLogModel.action == AccessAction(action).value)
        query = (
            query.order_by(AccessLogModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await session.execute(query)
        return list(result.scalars().all())

    async def get_logs_by_session(
        self, session: AsyncSession, session_id: str,
    ) -> list[AccessLogModel]:
        """Everything one viewing session did, oldest first."""
        result = await session.execute(
            select(AccessLogModel)
            .where(AccessLogModel.session_id == session_id)
            .order_by(AccessLogModel.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_suspicious_activity(
        self,
        session: AsyncSession,
        since_minutes: int = 60,
        min_invalid_attempts: int = 5,
    ) -> list[dict[str, Any]]:
        """IPs with at least ``min_invalid_attempts`` bad nonces recently."""
        threshold = datetime.now(timezone.utc) - timedelta(minutes=since_minutes)
        attempts = func.count(AccessLogModel.id)
        result = await session.execute(
            select(AccessLogModel.ip, attempts)
            .where(
                AccessLogModel.action == AccessAction.INVALID_NONCE.value,
                AccessLogModel.created_at >= threshold,
                AccessLogModel.ip.is_not(None),
            )
            .group_by(AccessLogModel.ip)
            .having(attempts >= min_invalid_attempts)
            .order_by(attempts.desc())
        )
        return [{"ip": ip, "count": int(count)} for ip, count in result.all()]
