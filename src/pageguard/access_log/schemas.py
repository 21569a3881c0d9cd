"""Pydantic schemas for access log API responses."""

from datetime import datetime
from typing import Any, Optional

from pageguard.common.schemas import CamelModel


class AccessLogResponse(CamelModel):
    id: str
    doc_id: str
    session_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    action: str
    metadata: Optional[dict[str, Any]] = None
    created_at: datetime


class SuspiciousIp(CamelModel):
    ip: str
    count: int
