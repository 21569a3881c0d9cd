"""SQLAlchemy model for single-use viewing nonces."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from pageguard.common.models import Base, TimestampMixin, generate_uuid


class NonceModel(Base, TimestampMixin):
    __tablename__ = "nonces"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    doc_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    nonce: Mapped[str] = mapped_column(String(96), unique=True, nullable=False, index=True)
    session_id: Mapped[str] = mapped_column(String(36), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
