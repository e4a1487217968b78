from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, UTCDateTime, UUIDPrimaryKeyMixin, str_enum, utcnow
from src.models.enums import ActorRole, QuoteAction, QuoteStatus


class QuoteTransition(UUIDPrimaryKeyMixin, Base):
    """Immutable audit log for quote state transitions. No updated_at column."""

    __tablename__ = "quote_transitions"

    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quotes.id", ondelete="CASCADE"),
        nullable=False,
    )
    from_status: Mapped[QuoteStatus | None] = mapped_column(str_enum(QuoteStatus, "quotestatus"))
    to_status: Mapped[QuoteStatus] = mapped_column(
        str_enum(QuoteStatus, "quotestatus"), nullable=False
    )
    action: Mapped[QuoteAction] = mapped_column(
        str_enum(QuoteAction, "quoteaction"), nullable=False
    )
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    actor_role: Mapped[ActorRole] = mapped_column(
        str_enum(ActorRole, "actorrole"), nullable=False
    )
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )

    __table_args__ = (Index("ix_quote_transitions_quote_id", "quote_id"),)
