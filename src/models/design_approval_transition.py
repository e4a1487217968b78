from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, UTCDateTime, UUIDPrimaryKeyMixin, str_enum, utcnow
from src.models.enums import ActorRole, DesignApprovalAction, DesignApprovalStatus


class DesignApprovalTransition(UUIDPrimaryKeyMixin, Base):
    """Immutable audit log for design approval state transitions. No updated_at column."""

    __tablename__ = "design_approval_transitions"

    design_approval_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("design_approvals.id", ondelete="CASCADE"),
        nullable=False,
    )
    # NULL for the initial submit
    from_status: Mapped[DesignApprovalStatus | None] = mapped_column(
        str_enum(DesignApprovalStatus, "designapprovalstatus")
    )
    to_status: Mapped[DesignApprovalStatus] = mapped_column(
        str_enum(DesignApprovalStatus, "designapprovalstatus"), nullable=False
    )
    action: Mapped[DesignApprovalAction] = mapped_column(
        str_enum(DesignApprovalAction, "designapprovalaction"), nullable=False
    )
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    actor_role: Mapped[ActorRole] = mapped_column(
        str_enum(ActorRole, "actorrole"), nullable=False
    )
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_design_approval_transitions_design_approval_id", "design_approval_id"),
    )
