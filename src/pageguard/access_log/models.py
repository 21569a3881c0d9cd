"""SQLAlchemy model for the append-only access log."""

import enum
from typing import Any, Optional

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from pageguard.common.models import Base, TimestampMixin, generate_uuid


class AccessAction(str, enum.Enum):
    # emitted by the delivery protocol
    NONCE_MINT = "nonce_mint"
    PAGE_REQUEST = "page_request"
    INVALID_NONCE = "invalid_nonce"
    RATE_LIMITED = "rate_limited"
    AUTH_FAIL = "auth_fail"
    # reported by the viewer client
    FULLSCREEN_EXIT = "fullscreen_exit"
    CAPTURE_DETECTED = "capture_detected"
    VIEW = "view"
    PRINT_ATTEMPT = "print_attempt"
    DOWNLOAD_ATTEMPT = "download_attempt"


CLIENT_ACTIONS = frozenset({
    AccessAction.FULLSCREEN_EXIT,
    AccessAction.CAPTURE_DETECTED,
    AccessAction.VIEW,
    AccessAction.PRINT_ATTEMPT,
    AccessAction.DOWNLOAD_ATTEMPT,
})


class AccessLogModel(Base, TimestampMixin):
    __tablename__ = "access_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    doc_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    metadata_: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)
