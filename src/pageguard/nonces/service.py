"""Nonce service: mint, check, consume and expire viewing nonces."""

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Union

from sqlalchemy import and_, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pageguard.nonces.models import NonceModel

NONCE_BYTES = 24


def generate_nonce() -> str:
    """48 hex chars of CSPRNG output."""
    return secrets.token_hex(NONCE_BYTES)


def generate_session_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Unused:
    """Minted, not yet exchanged for page 1."""
    session_id: str


@dataclass(frozen=True)
class Consumed:
    """Exchanged for page 1; the session is live."""
    session_id: str


NonceState = Union[Unused, Consumed]


@dataclass(frozen=True)
class NonceRecord:
    id: str
    doc_id: str
    nonce: str
    state: NonceState
    created_at: datetime

    @property
    def session_id(self) -> str:
        return self.state.session_id

    @property
    def used(self) -> bool:
        return isinstance(self.state, Consumed)

    @classmethod
    def from_model(cls, model: NonceModel) -> "NonceRecord":
        state_cls = Consumed if model.used else Unused
        return cls(
            id=model.id,
            doc_id=model.doc_id,
            nonce=model.nonce,
            state=state_cls(model.session_id),
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class NonceGrant:
    nonce: str
    session_id: str
    doc_id: str
    issued_at: datetime


class NonceService:
    """Single-use tokens binding a viewer to one document session."""

    async def mint(self, session: AsyncSession, doc_id: str) -> NonceGrant:
        """Create a fresh, unused nonce for a document."""
        issued_at = datetime.now(timezone.utc)
        record = NonceModel(
            doc_id=doc_id,
            nonce=generate_nonce(),
            session_id=generate_session_id(),
            used=False,
            created_at=issued_at,
        )
        session.add(record)
        await session.flush()
        return NonceGrant(
            nonce=record.nonce,
            session_id=record.session_id,
            doc_id=doc_id,
            issued_at=issued_at,
        )

    async def is_valid(self, session: AsyncSession, doc_id: str, nonce: str) -> bool:
        """True iff an unused record matches both document and nonce."""
        result = await session.execute(
            select(NonceModel.id).where(
                and_(
                    NonceModel.doc_id == doc_id,
                    NonceModel.nonce == nonce,
                    NonceModel.used.is_(False),
                )
            )
        )
        return result.first() is not None

    async def consume(self, session: AsyncSession, doc_id: str, nonce: str) -> str | None:
        """Mark a nonce used and return its session id.

        The check and the flip are one conditional UPDATE, so of several
        concurrent callers exactly one sees a changed row.  Returns None when
        the nonce is unknown, already used, or minted for another document.
        """
        result = await session.execute(
            update(NonceModel)
            .where(
                and_(
                    NonceModel.doc_id == doc_id,
                    NonceModel.nonce == nonce,
                    NonceModel.used.is_(False),
                )
            )
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        # session_id never changes after mint, so reading it back is safe
        session_id = await session.scalar(
            select(NonceModel.session_id).where(NonceModel.nonce == nonce)
        )
        return session_id

    async def get_info(self, session: AsyncSession, nonce: str) -> NonceRecord | None:
        """Look a nonce up by value alone, without consuming it."""
        result = await session.execute(
            select(NonceModel)
            .where(NonceModel.nonce == nonce)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return NonceRecord.from_model(model)

    async def cleanup_old(self, session: AsyncSession, older_than_days: int = 7) -> int:
        """Delete nonces created more than ``older_than_days`` ago."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        result = await session.execute(
            delete(NonceModel)
            .where(NonceModel.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
