from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, str_enum
from src.models.enums import ItemKind


class Conversation(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Buyer/seller thread about a single listing item (read-only here)."""

    __tablename__ = "conversations"

    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listing_items.id", ondelete="CASCADE"), nullable=False
    )
    item_kind: Mapped[ItemKind] = mapped_column(str_enum(ItemKind, "itemkind"), nullable=False)

    __table_args__ = (
        Index("ix_conversations_buyer_id", "buyer_id"),
        Index("ix_conversations_seller_id", "seller_id"),
    )
