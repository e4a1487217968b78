"""Read-only views of listings and conversations consumed by the workflow engine."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import ForbiddenException, NotFoundException
from src.models.conversation import Conversation
from src.models.enums import ActorRole, ItemKind
from src.models.listing import ListingItem, ListingOption

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptionSnapshot:
    """A variant (product) or package (service) with its list price."""

    id: uuid.UUID
    name: str
    price: Decimal
    position: int = 0

    @property
    def scope_key(self) -> str:
        return str(self.id).lower()


@dataclass(frozen=True)
class ItemSnapshot:
    """Requirement flags, list prices and ordered options of one listing item."""

    id: uuid.UUID
    kind: ItemKind
    seller_id: uuid.UUID
    requires_design_approval: bool = False
    requires_quote: bool = False
    base_price: Decimal | None = None
    options: tuple[OptionSnapshot, ...] = field(default_factory=tuple)

    @property
    def has_options(self) -> bool:
        return bool(self.options)

    def find_option(self, scope_key: str) -> OptionSnapshot | None:
        for option in self.options:
            if option.scope_key == scope_key:
                return option
        return None

    def list_price(self, scope_key: str) -> Decimal | None:
        """Option price for an option scope, the item's base price otherwise."""
        option = self.find_option(scope_key)
        if option is not None:
            return option.price
        return self.base_price


@dataclass(frozen=True)
class ConversationContext:
    """Participants of a conversation and the item it is about."""

    id: uuid.UUID
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    item_id: uuid.UUID
    item_kind: ItemKind

    def role_of(self, user_id: uuid.UUID) -> ActorRole:
        """Role the user plays in this conversation. Non-participants are refused."""
        if user_id == self.buyer_id:
            return ActorRole.BUYER
        if user_id == self.seller_id:
            return ActorRole.SELLER
        raise ForbiddenException(
            f"User is not a participant of conversation {self.id}",
            context={"conversation_id": self.id},
        )


class CatalogReader:
    """Loads item and conversation snapshots. Never writes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_item(self, item_id: uuid.UUID) -> ItemSnapshot:
        result = await self.db.execute(select(ListingItem).where(ListingItem.id == item_id))
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFoundException(f"Item {item_id} not found")

        options_result = await self.db.execute(
            select(ListingOption)
            .where(ListingOption.item_id == item_id)
            .order_by(ListingOption.position.asc(), ListingOption.created_at.asc())
        )
        options = tuple(
            OptionSnapshot(id=o.id, name=o.name, price=o.price, position=o.position)
            for o in options_result.scalars().all()
        )
        return ItemSnapshot(
            id=item.id,
            kind=item.kind,
            seller_id=item.seller_id,
            requires_design_approval=item.requires_design_approval,
            requires_quote=item.requires_quote,
            base_price=item.base_price,
            options=options,
        )

    async def get_conversation(self, conversation_id: uuid.UUID) -> ConversationContext:
        result = await self.db.execute(
            select(Conversation).where(Conversation.id == conversation_id)
        )
        conversation = result.scalar_one_or_none()
        if conversation is None:
            raise NotFoundException(f"Conversation {conversation_id} not found")
        return ConversationContext(
            id=conversation.id,
            buyer_id=conversation.buyer_id,
            seller_id=conversation.seller_id,
            item_id=conversation.item_id,
            item_kind=conversation.item_kind,
        )

    async def get_conversation_item(
        self,
        conversation_id: uuid.UUID,
        item_id: uuid.UUID | None = None,
    ) -> tuple[ConversationContext, ItemSnapshot]:
        """Conversation plus the item it is about.

        ``item_id`` is optional; when given it must name the conversation's item.
        """
        conversation = await self.get_conversation(conversation_id)
        if item_id is not None and item_id != conversation.item_id:
            raise NotFoundException(
                f"Item {item_id} is not part of conversation {conversation_id}",
                context={"conversation_id": conversation_id, "item_id": item_id},
            )
        item = await self.get_item(conversation.item_id)
        return conversation, item
