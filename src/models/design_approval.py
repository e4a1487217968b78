from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import (
    Base,
    JSONType,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
    str_enum,
    utcnow,
)
from src.models.enums import DesignApprovalStatus, ItemKind

_PENDING_SELLER_ACTION_SQL = "status IN ('pending', 'under_review', 'resubmitted')"


class DesignApproval(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A buyer-submitted design awaiting (or holding) seller sign-off for one scope."""

    __tablename__ = "design_approvals"

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listing_items.id", ondelete="CASCADE"), nullable=False
    )
    item_kind: Mapped[ItemKind] = mapped_column(str_enum(ItemKind, "itemkind"), nullable=False)
    scope_key: Mapped[str] = mapped_column(String(64), nullable=False)
    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    files: Mapped[list[dict]] = mapped_column(JSONType, nullable=False)
    status: Mapped[DesignApprovalStatus] = mapped_column(
        str_enum(DesignApprovalStatus, "designapprovalstatus"),
        nullable=False,
        default=DesignApprovalStatus.PENDING,
    )
    seller_notes: Mapped[str | None] = mapped_column(Text)
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    copied_from_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("design_approvals.id", ondelete="SET NULL")
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_design_approvals_conversation_id", "conversation_id"),
        Index("ix_design_approvals_scope", "conversation_id", "item_id", "scope_key"),
        Index("ix_design_approvals_buyer_status", "buyer_id", "status"),
        # At most one design per triple may wait on the seller
        Index(
            "uq_design_approvals_pending_scope",
            "conversation_id",
            "item_id",
            "scope_key",
            unique=True,
            postgresql_where=text(_PENDING_SELLER_ACTION_SQL),
            sqlite_where=text(_PENDING_SELLER_ACTION_SQL),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<DesignApproval id={self.id} scope={self.scope_key} status={self.status}>"
        )


class DesignSubmission(UUIDPrimaryKeyMixin, Base):
    """Immutable file set submitted for a design approval. No updated_at column."""

    __tablename__ = "design_submissions"

    design_approval_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("design_approvals.id", ondelete="CASCADE"), nullable=False
    )
    revision: Mapped[int] = mapped_column(Integer, nullable=False)
    files: Mapped[list[dict]] = mapped_column(JSONType, nullable=False)
    submitted_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        Index(
            "uq_design_submissions_revision",
            "design_approval_id",
            "revision",
            unique=True,
        ),
    )
