"""Viewer service: the page release state machine.

A viewer mints a nonce for a document, exchanges it for page 1 (which
consumes it and opens the session), then fetches the remaining pages with
the same, now spent, nonce:

    UNAUTHENTICATED -> NONCE_PENDING (password) -> NONCE_ISSUED
        -> SESSION_ACTIVE (page 1) -> PAGE_SERVING (pages 2..N)

Each durable fact (a log entry, the consumption of a nonce) is committed in
its own short transaction.  A failed render therefore never rolls back the
consume that preceded it, and a rejected request still leaves its log entry.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from cryptography.exceptions import InvalidTag

from pageguard.access_log.models import CLIENT_ACTIONS, AccessAction
from pageguard.access_log.service import AccessLogService
from pageguard.common.config import PageGuardSettings
from pageguard.common.database import DatabaseManager
from pageguard.common.exceptions import (
    DocumentNotFoundError,
    DocumentUnavailableError,
    InvalidEventError,
    InvalidNonceError,
    InvalidPageError,
    InvalidPasswordError,
    NonceRequiredError,
    PageNotFoundError,
    PageSequenceError,
    PasswordRequiredError,
    RateLimitedError,
    RenderError,
)
from pageguard.common.security import ClientInfo
from pageguard.documents import renderer, storage
from pageguard.documents.cache import DocumentCache
from pageguard.documents.crypto import decrypt_buffer, verify_password
from pageguard.documents.registry import DocumentMetadata, DocumentRegistry
from pageguard.nonces.service import NonceGrant, NonceService
from pageguard.ratelimit.limiter import RateLimitConfig, RateLimitResult, RateLimitStore
from pageguard.watermark.compositor import compose, watermark_info_for

logger = logging.getLogger(__name__)

ENDPOINT_MINT = "mint"
ENDPOINT_INFO = "info"
ENDPOINT_PAGES = "pages"
ENDPOINT_EVENTS = "events"

NONCE_LOG_PREFIX = 8


@dataclass(frozen=True)
class MintResult:
    grant: NonceGrant
    rate_limit: RateLimitResult


@dataclass(frozen=True)
class DocumentInfo:
    doc_id: str
    title: str
    page_count: int
    session_id: Optional[str]


@dataclass(frozen=True)
class PageRelease:
    image: bytes
    page: int
    total_pages: int
    session_id: str
    content_type: str = "image/png"


class ViewerService:
    """Gatekeeper between a viewer's nonce and watermarked page images."""

    def __init__(
        self,
        settings: PageGuardSettings,
        db: DatabaseManager,
        rate_limiter: RateLimitStore,
        nonce_service: NonceService | None = None,
        access_log: AccessLogService | None = None,
        registry: DocumentRegistry | None = None,
        cache: DocumentCache | None = None,
    ):
        self.settings = settings
        self.db = db
        self.rate_limiter = rate_limiter
        self.nonces = nonce_service or NonceService()
        self.access_log = access_log or AccessLogService()
        self.registry = registry or DocumentRegistry()
        self.cache = cache or DocumentCache(
            max_entries=settings.cache_max_entries,
            ttl_seconds=settings.cache_ttl_seconds,
        )

    @property
    def rate_limit_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            max_requests=self.settings.rate_limit_max,
            window_ms=self.settings.rate_limit_window_ms,
        )

    # ── Minting ──

    async def mint(
        self, doc_id: str, client: ClientInfo, password: str | None = None,
    ) -> MintResult:
        """Issue a fresh nonce, checking the document password if it has one."""
        limit = await self._enforce_rate_limit(doc_id, client, ENDPOINT_MINT)

        document = await self._get_active_document(doc_id)

        if document.requires_password:
            if not password:
                raise PasswordRequiredError()
            valid = await asyncio.to_thread(
                verify_password, password, document.password_hash,
            )
            if not valid:
                await self._log(doc_id, AccessAction.AUTH_FAIL, client)
                raise InvalidPasswordError()

        async with self.db.get_session() as session:
            grant = await self.nonces.mint(session, doc_id)
            await self.access_log.log(
                session, doc_id, AccessAction.NONCE_MINT,
                session_id=grant.session_id,
                ip=client.ip,
                user_agent=client.user_agent,
            )
        return MintResult(grant=grant, rate_limit=limit)

    # ── Document info ──

    async def document_info(
        self, doc_id: str, nonce: str | None, client: ClientInfo,
    ) -> DocumentInfo:
        """Describe a document to the holder of a still-unused nonce."""
        await self._enforce_rate_limit(doc_id, client, ENDPOINT_INFO)

        if not nonce:
            await self._log(
                doc_id, AccessAction.INVALID_NONCE, client,
                metadata={"reason": "missing"},
            )
            raise NonceRequiredError()

        async with self.db.get_session() as session:
            valid = await self.nonces.is_valid(session, doc_id, nonce)
            record = await self.nonces.get_info(session, nonce) if valid else None

        if record is None:
            await self._log(
                doc_id, AccessAction.INVALID_NONCE, client,
                metadata={"nonce": nonce[:NONCE_LOG_PREFIX]},
            )
            raise InvalidNonceError()

        document = await self._get_active_document(doc_id)

        try:
            page_count = await self._total_pages(document)
        except DocumentUnavailableError:
            logger.exception(
                "Could not compute page count for %s", doc_id, extra={"doc_id": doc_id},
            )
            page_count = 0

        return DocumentInfo(
            doc_id=document.doc_id,
            title=document.title,
            page_count=page_count,
            session_id=record.session_id,
        )

    # ── Page release ──

    async def release_page(
        self, doc_id: str, page: int, nonce: str | None, client: ClientInfo,
    ) -> PageRelease:
        """Run the full page-release algorithm for one request."""
        if page < 1:
            raise InvalidPageError()

        await self._enforce_rate_limit(doc_id, client, ENDPOINT_PAGES)

        if not nonce:
            await self._log(
                doc_id, AccessAction.INVALID_NONCE, client,
                metadata={"reason": "missing"},
            )
            raise NonceRequiredError()

        session_id = await self._authorize_page(doc_id, page, nonce, client)

        document = await self._get_active_document(doc_id)

        total_pages = await self._total_pages(document)
        if page > total_pages:
            raise PageNotFoundError(page, total_pages)

        image = await self._render(document, page)

        timestamp = datetime.now(timezone.utc).isoformat()
        info = watermark_info_for(
            document.watermark_policy, client.ip, timestamp, session_id,
        )
        try:
            image = await asyncio.to_thread(compose, image, info)
        except Exception as exc:
            logger.exception(
                "Watermarking failed for %s page %d", doc_id, page,
                extra={"doc_id": doc_id, "page": page, "session_id": session_id},
            )
            raise RenderError() from exc

        await self._log(
            doc_id, AccessAction.PAGE_REQUEST, client,
            session_id=session_id,
            metadata={"page": page},
        )
        return PageRelease(
            image=image, page=page, total_pages=total_pages, session_id=session_id,
        )

    async def _authorize_page(
        self, doc_id: str, page: int, nonce: str, client: ClientInfo,
    ) -> str:
        """Page 1 consumes the nonce; later pages ride on the consumed record."""
        if page == 1:
            async with self.db.get_session() as session:
                session_id = await self.nonces.consume(session, doc_id, nonce)
            if session_id is None:
                await self._log(
                    doc_id, AccessAction.INVALID_NONCE, client,
                    metadata={"nonce": nonce[:NONCE_LOG_PREFIX], "page": page},
                )
                raise InvalidNonceError()
            return session_id

        async with self.db.get_session() as session:
            record = await self.nonces.get_info(session, nonce)

        if record is None or record.doc_id != doc_id:
            await self._log(
                doc_id, AccessAction.INVALID_NONCE, client,
                metadata={"reason": "not_found", "page": page},
            )
            raise InvalidNonceError()

        if not record.used:
            logger.info(
                "Page %d of %s requested before page 1 (session %s)",
                page, doc_id, record.session_id[:NONCE_LOG_PREFIX],
                extra={"doc_id": doc_id, "page": page},
            )
            raise PageSequenceError()

        return record.session_id

    # ── Client events ──

    async def record_client_event(
        self,
        doc_id: str,
        nonce: str | None,
        action: AccessAction,
        client: ClientInfo,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Log a viewer-side observation (fullscreen exit, print attempt...)."""
        await self._enforce_rate_limit(doc_id, client, ENDPOINT_EVENTS)

        if action not in CLIENT_ACTIONS:
            raise InvalidEventError()
        if not nonce:
            raise NonceRequiredError()

        async with self.db.get_session() as session:
            record = await self.nonces.get_info(session, nonce)
        if record is None or record.doc_id != doc_id:
            await self._log(
                doc_id, AccessAction.INVALID_NONCE, client,
                metadata={"reason": "not_found", "event": action.value},
            )
            raise InvalidNonceError()

        await self._log(
            doc_id, action, client,
            session_id=record.session_id,
            metadata=metadata,
        )

    # ── Internal helpers ──

    async def _enforce_rate_limit(
        self, doc_id: str, client: ClientInfo, endpoint: str,
    ) -> RateLimitResult:
        result = self.rate_limiter.check(client.ip, endpoint, self.rate_limit_config)
        if not result.allowed:
            await self._log(
                doc_id, AccessAction.RATE_LIMITED, client,
                metadata={"endpoint": endpoint},
            )
            raise RateLimitedError(reset_at=result.reset_at)
        return result

    async def _log(
        self,
        doc_id: str,
        action: AccessAction,
        client: ClientInfo,
        session_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        async with self.db.get_session() as session:
            await self.access_log.log(
                session, doc_id, action,
                session_id=session_id,
                ip=client.ip,
                user_agent=client.user_agent,
                metadata=metadata,
            )

    async def _get_active_document(self, doc_id: str) -> DocumentMetadata:
        async with self.db.get_session() as session:
            document = await self.registry.get_document(session, doc_id)
        if document is None or not document.is_active:
            raise DocumentNotFoundError()
        return document

    async def _total_pages(self, document: DocumentMetadata) -> int:
        if document.is_image:
            return 1
        if document.page_count:
            return document.page_count

        data = await self._load_plaintext(document)
        try:
            count = await asyncio.to_thread(renderer.get_page_count, data)
        except Exception as exc:
            raise DocumentUnavailableError("Document could not be parsed") from exc

        async with self.db.get_session() as session:
            await self.registry.set_page_count(session, document.doc_id, count)
        return count

    async def _load_plaintext(self, document: DocumentMetadata) -> bytes:
        async def loader() -> bytes:
            try:
                encrypted = await asyncio.to_thread(
                    storage.read_encrypted,
                    self.settings.storage_dir,
                    document.encrypted_path,
                )
            except (FileNotFoundError, ValueError) as exc:
                raise DocumentUnavailableError("Document file not found") from exc
            try:
                return await asyncio.to_thread(
                    decrypt_buffer, encrypted, self.settings.master_key,
                )
            except (InvalidTag, ValueError) as exc:
                logger.error(
                    "Decryption failed for %s", document.doc_id,
                    extra={"doc_id": document.doc_id},
                )
                raise DocumentUnavailableError("Document could not be decrypted") from exc

        return await self.cache.get_or_load(document.doc_id, loader)

    async def _render(self, document: DocumentMetadata, page: int) -> bytes:
        data = await self._load_plaintext(document)
        try:
            if document.is_image:
                return await asyncio.to_thread(renderer.normalize_image, data)
            return await asyncio.to_thread(
                renderer.render_page, data, page, self.settings.render_scale,
            )
        except Exception as exc:
            logger.exception(
                "Rendering failed for %s page %d", document.doc_id, page,
                extra={"doc_id": document.doc_id, "page": page},
            )
            raise RenderError() from exc
