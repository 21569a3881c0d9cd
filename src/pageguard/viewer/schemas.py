"""Pydantic schemas for the viewer endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from pageguard.access_log.models import AccessAction
from pageguard.common.schemas import CamelModel


class MintRequest(CamelModel):
    doc_id: str = Field(..., min_length=1, max_length=255)
    password: Optional[str] = None


class MintResponse(CamelModel):
    nonce: str
    session_id: str
    issued_at: datetime


class DocumentInfoResponse(CamelModel):
    doc_id: str
    title: str
    page_count: int
    session_id: Optional[str] = None


class ClientEventRequest(CamelModel):
    action: AccessAction
    metadata: dict[str, Any] = Field(default_factory=dict)
