"""Read models for listing data owned by the catalog service.

The workflow engine never writes these tables; they mirror the flags and
prices it needs to evaluate eligibility.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, str_enum
from src.models.enums import ItemKind


class ListingItem(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A product or service as published by a seller."""

    __tablename__ = "listing_items"

    kind: Mapped[ItemKind] = mapped_column(str_enum(ItemKind, "itemkind"), nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    base_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    requires_design_approval: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    requires_quote: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    __table_args__ = (Index("ix_listing_items_seller_id", "seller_id"),)


class ListingOption(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A product variant or service package."""

    __tablename__ = "listing_options"

    item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listing_items.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    __table_args__ = (Index("ix_listing_options_item_id", "item_id", "position"),)
