from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
    str_enum,
)
from src.models.enums import ItemKind, QuoteStatus

_OPEN_QUOTE_SQL = "status IN ('requested', 'sent')"


class Quote(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Custom price offer for one scope of an item within a conversation."""

    __tablename__ = "quotes"

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
    # NULL only while the buyer's request waits for the seller
    quoted_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[QuoteStatus] = mapped_column(
        str_enum(QuoteStatus, "quotestatus"), nullable=False, default=QuoteStatus.SENT
    )
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    notes: Mapped[str | None] = mapped_column(Text)
    request_notes: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    linked_design_approval_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("design_approvals.id", ondelete="SET NULL")
    )
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    responded_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="quantity_positive"),
        CheckConstraint(
            "quoted_price IS NULL OR quoted_price > 0", name="quoted_price_positive"
        ),
        Index("ix_quotes_conversation_id", "conversation_id"),
        Index("ix_quotes_scope", "conversation_id", "item_id", "scope_key"),
        Index("ix_quotes_buyer_status", "buyer_id", "status"),
        # At most one open (requested or sent) quote per triple
        Index(
            "uq_quotes_open_scope",
            "conversation_id",
            "item_id",
            "scope_key",
            unique=True,
            postgresql_where=text(_OPEN_QUOTE_SQL),
            sqlite_where=text(_OPEN_QUOTE_SQL),
        ),
    )

    def __repr__(self) -> str:
        return f"<Quote id={self.id} scope={self.scope_key} status={self.status}>"
