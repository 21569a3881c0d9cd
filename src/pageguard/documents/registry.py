"""Document registry: read-only snapshots for the delivery protocol.

Document CRUD belongs to the surrounding application.  This module offers
the single lookup the viewer needs plus the handful of writes used by the
CLI (registering an encrypted file, caching a computed page count,
activating/deactivating, changing the password).
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pageguard.common.exceptions import DocumentNotFoundError
from pageguard.documents.crypto import hash_password
from pageguard.documents.models import DocumentModel

IMAGE_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", "image/bmp"})

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"


@dataclass(frozen=True)
class WatermarkPolicy:
    show_ip: bool = True
    show_timestamp: bool = True
    show_session_id: bool = True
    custom_text: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "WatermarkPolicy":
        if not raw:
            return cls()
        # accept both the stored snake_case and the admin UI's camelCase
        def pick(snake: str, camel: str, default):
            return raw.get(snake, raw.get(camel, default))

        return cls(
            show_ip=bool(pick("show_ip", "showIp", True)),
            show_timestamp=bool(pick("show_timestamp", "showTimestamp", True)),
            show_session_id=bool(pick("show_session_id", "showSessionId", True)),
            custom_text=pick("custom_text", "customText", None) or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "show_ip": self.show_ip,
            "show_timestamp": self.show_timestamp,
            "show_session_id": self.show_session_id,
            "custom_text": self.custom_text,
        }


@dataclass(frozen=True)
class DocumentMetadata:
    """Immutable per-request view of a registry row."""

    doc_id: str
    title: str
    content_type: str
    encrypted_path: str
    page_count: Optional[int]
    status: str
    watermark_policy: WatermarkPolicy = field(default_factory=WatermarkPolicy)
    password_hash: Optional[str] = None
    tenant_id: str = "default"

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def is_image(self) -> bool:
        return self.content_type in IMAGE_CONTENT_TYPES

    @property
    def requires_password(self) -> bool:
        return bool(self.password_hash)

    @classmethod
    def from_model(cls, model: DocumentModel) -> "DocumentMetadata":
        return cls(
            doc_id=model.doc_id,
            title=model.title,
            content_type=model.content_type,
            encrypted_path=model.encrypted_path,
            page_count=model.page_count,
            status=model.status,
            watermark_policy=WatermarkPolicy.from_dict(model.watermark_policy),
            password_hash=model.password_hash,
            tenant_id=model.tenant_id,
        )


# ── Password changes ──


@dataclass(frozen=True)
class KeepPassword:
    pass


@dataclass(frozen=True)
class ClearPassword:
    pass


@dataclass(frozen=True)
class SetPassword:
    password: str

    def __post_init__(self):
        if not self.password:
            raise ValueError("SetPassword needs a non-empty password; use ClearPassword to remove one")


PasswordChange = Union[KeepPassword, ClearPassword, SetPassword]


class DocumentRegistry:
    """Lookup and minimal maintenance of registered documents."""

    async def get_document(
        self, session: AsyncSession, doc_id: str,
    ) -> DocumentMetadata | None:
        model = await self._get_model(session, doc_id)
        if model is None:
            return None
        return DocumentMetadata.from_model(model)

    async def create_document(
        self,
        session: AsyncSession,
        doc_id: str,
        title: str,
        encrypted_path: str,
        content_type: str = "application/pdf",
        page_count: int | None = None,
        watermark_policy: WatermarkPolicy | None = None,
        password: str | None = None,
        tenant_id: str = "default",
        created_by: str = "system",
    ) -> DocumentMetadata:
        model = DocumentModel(
            doc_id=doc_id,
            title=title,
            encrypted_path=encrypted_path,
            content_type=content_type,
            page_count=page_count,
            watermark_policy=(watermark_policy or WatermarkPolicy()).to_dict(),
            password_hash=hash_password(password) if password else None,
            status=STATUS_ACTIVE,
            tenant_id=tenant_id,
            created_by=created_by,
        )
        session.add(model)
        await session.flush()
        return DocumentMetadata.from_model(model)

    async def set_page_count(
        self, session: AsyncSession, doc_id: str, page_count: int,
    ) -> None:
        model = await self._require_model(session, doc_id)
        model.page_count = page_count
        await session.flush()

    async def set_status(
        self, session: AsyncSession, doc_id: str, status: str,
    ) -> DocumentMetadata:
        if status not in (STATUS_ACTIVE, STATUS_INACTIVE):
            raise ValueError(f"Unknown document status: {status!r}")
        model = await self._require_model(session, doc_id)
        model.status = status
        await session.flush()
        return DocumentMetadata.from_model(model)

    async def change_password(
        self, session: AsyncSession, doc_id: str, change: PasswordChange,
    ) -> DocumentMetadata:
        model = await self._require_model(session, doc_id)
        if isinstance(change, SetPassword):
            model.password_hash = hash_password(change.password)
        elif isinstance(change, ClearPassword):
            model.password_hash = None
        await session.flush()
        return DocumentMetadata.from_model(model)

    # ── Internal helpers ──

    @staticmethod
    async def _get_model(session: AsyncSession, doc_id: str) -> DocumentModel | None:
        result = await session.execute(
            select(DocumentModel).where(DocumentModel.doc_id == doc_id)
        )
        return result.scalar_one_or_none()

    async def _require_model(self, session: AsyncSession, doc_id: str) -> DocumentModel:
        model = await self._get_model(session, doc_id)
        if model is None:
            raise DocumentNotFoundError()
        return model
