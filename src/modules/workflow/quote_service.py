"""Quote lifecycle service: buyer requests, seller issue/update, buyer response."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.base import utcnow
from src.exceptions import (
    DesignApprovalRequiredException,
    DuplicateActiveSubmissionException,
    NotFoundException,
    ValidationException,
)
from src.models.design_approval import DesignApproval
from src.models.enums import ActorRole, DesignApprovalStatus, QuoteAction, QuoteStatus
from src.models.quote import Quote
from src.models.quote_transition import QuoteTransition
from src.modules.events.outbox_service import OutboxService
from src.modules.workflow import quote_lifecycle
from src.modules.workflow.catalog import CatalogReader, ConversationContext, ItemSnapshot
from src.modules.workflow.concurrency import check_expected_status, flush_or_conflict
from src.modules.workflow.constants import (
    BUYER_QUOTE_RESPONSES,
    OPEN_QUOTE_STATUSES,
    QUOTE_ACTION_EVENTS,
)
from src.modules.workflow.eligibility import Eligibility, evaluate
from src.modules.workflow.scope import resolve_requested_scope

logger = logging.getLogger(__name__)

_LABEL = "Quote"


class QuoteService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.catalog = CatalogReader(db)

    # ------------------------------------------------------------------
    # Buyer request
    # ------------------------------------------------------------------

    async def request_quote(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        quantity: int = 1,
        notes: str | None = None,
        scope_key: str | None = None,
        variant_id: uuid.UUID | str | None = None,
        package_id: uuid.UUID | str | None = None,
        item_id: uuid.UUID | None = None,
    ) -> Quote:
        """Ask the seller for a custom price on one option.

        Validates:
        - the caller is the conversation's buyer
        - the option's design is approved when the item requires one
        - no requested or sent quote is still open for the option
        """
        conversation, item = await self.catalog.get_conversation_item(conversation_id, item_id)
        role = conversation.role_of(user_id)
        quote_lifecycle.check_actor(QuoteAction.REQUEST, role)
        quote_lifecycle.validate_quantity(quantity)

        scope = resolve_requested_scope(
            item, scope_key=scope_key, variant_id=variant_id, package_id=package_id
        )
        now = utcnow()
        eligibility = await self._evaluate_scope(conversation, item, scope, now)
        if not eligibility.can_request_quote:
            raise DesignApprovalRequiredException(
                "An approved design is required before requesting a quote for this option",
                context={"scope_key": scope},
            )

        open_quote = await self._settle_open_quote(conversation.id, item.id, scope, now)
        if open_quote is not None:
            raise DuplicateActiveSubmissionException(
                "A quote for this option is already open",
                context={"scope_key": scope, "quote_id": open_quote.id, "status": open_quote.status},
            )

        quote = Quote(
            id=uuid.uuid4(),
            conversation_id=conversation.id,
            item_id=item.id,
            item_kind=item.kind,
            scope_key=scope,
            buyer_id=conversation.buyer_id,
            seller_id=conversation.seller_id,
            quantity=quantity,
            status=QuoteStatus.REQUESTED,
            request_notes=notes,
            linked_design_approval_id=(
                eligibility.approved_design.id if eligibility.approved_design else None
            ),
            revision=0,
        )
        self.db.add(quote)
        await flush_or_conflict(self.db, quote, _LABEL)
        await self._record_transition(quote, None, QuoteAction.REQUEST, user_id, role, notes)
        await self._publish(quote, QuoteAction.REQUEST, from_status=None)

        logger.info(
            "Quote %s requested for conversation %s scope %s (qty %d)",
            quote.id, conversation.id, scope, quantity,
        )
        return quote

    # ------------------------------------------------------------------
    # Seller issue / update
    # ------------------------------------------------------------------

    async def issue_quote(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        quoted_price: Decimal,
        quantity: int = 1,
        expires_at: datetime | None = None,
        notes: str | None = None,
        scope_key: str | None = None,
        variant_id: uuid.UUID | str | None = None,
        package_id: uuid.UUID | str | None = None,
        item_id: uuid.UUID | None = None,
    ) -> Quote:
        """Send a quote for one option, or update the one already open.

        A buyer's ``requested`` quote is fulfilled and an open ``sent`` quote
        is updated in place (same id, revision + 1). Otherwise a new quote is
        created. When the item requires both design approval and quoting, the
        option's design must be approved first.
        """
        conversation, item = await self.catalog.get_conversation_item(conversation_id, item_id)
        role = conversation.role_of(user_id)
        quote_lifecycle.check_actor(QuoteAction.ISSUE, role)

        scope = resolve_requested_scope(
            item, scope_key=scope_key, variant_id=variant_id, package_id=package_id
        )
        now = utcnow()
        eligibility = await self._evaluate_scope(conversation, item, scope, now)
        if not eligibility.can_seller_issue_quote:
            raise DesignApprovalRequiredException(
                "The design for this option must be approved before a quote can be sent",
                context={"scope_key": scope},
            )

        price, qty = quote_lifecycle.validate_offer(quoted_price, quantity)
        expiry = quote_lifecycle.resolve_expiry(
            expires_at, now, settings.quote_default_expiry_days
        )
        linked_design_id = eligibility.approved_design.id if eligibility.approved_design else None

        quote = await self._settle_open_quote(conversation.id, item.id, scope, now)
        if quote is None:
            quote = Quote(
                id=uuid.uuid4(),
                conversation_id=conversation.id,
                item_id=item.id,
                item_kind=item.kind,
                scope_key=scope,
                buyer_id=conversation.buyer_id,
                seller_id=conversation.seller_id,
                quoted_price=price,
                quantity=qty,
                status=QuoteStatus.SENT,
                expires_at=expiry,
                notes=notes,
                linked_design_approval_id=linked_design_id,
                revision=1,
            )
            self.db.add(quote)
            await flush_or_conflict(self.db, quote, _LABEL)
            await self._record_transition(quote, None, QuoteAction.ISSUE, user_id, role)
            await self._publish(quote, QuoteAction.ISSUE, from_status=None)
            logger.info(
                "Quote %s sent for conversation %s scope %s (price %s x %d)",
                quote.id, conversation.id, scope, price, qty,
            )
            return quote

        action = QuoteAction.ISSUE if quote.status == QuoteStatus.REQUESTED else QuoteAction.REVISE
        old_status = quote.status
        quote.status = quote_lifecycle.next_status(quote, action, role, now)
        quote.quoted_price = price
        quote.quantity = qty
        quote.expires_at = expiry
        quote.notes = notes
        quote.linked_design_approval_id = linked_design_id
        quote.revision += 1
        await flush_or_conflict(self.db, quote, _LABEL)
        await self._record_transition(quote, old_status, action, user_id, role)
        await self._publish(quote, action, from_status=old_status)

        logger.info(
            "Quote %s %s for scope %s (revision %d, price %s x %d)",
            quote.id, "sent" if action == QuoteAction.ISSUE else "updated",
            scope, quote.revision, price, qty,
        )
        return quote

    # ------------------------------------------------------------------
    # Buyer response
    # ------------------------------------------------------------------

    async def respond_to_quote(
        self,
        quote_id: uuid.UUID,
        user_id: uuid.UUID,
        action: QuoteAction,
        reason: str | None = None,
        expected_status: QuoteStatus | None = None,
    ) -> Quote:
        """Accept or reject a sent quote. Expired quotes can do neither."""
        if action not in BUYER_QUOTE_RESPONSES:
            raise ValidationException(
                f"'{action.value}' is not a quote response",
                details=[{"field": "action", "message": "must be accept or reject"}],
            )
        quote = await self._get_quote(quote_id)
        conversation = await self.catalog.get_conversation(quote.conversation_id)
        role = conversation.role_of(user_id)

        check_expected_status(quote, expected_status, _LABEL)
        now = utcnow()
        new_status = quote_lifecycle.next_status(quote, action, role, now)

        if action == QuoteAction.ACCEPT and quote.linked_design_approval_id is not None:
            await self._ensure_linked_design_approved(quote)

        old_status = quote.status
        quote.status = new_status
        quote.responded_at = now
        if action == QuoteAction.ACCEPT:
            quote.accepted_at = now
        else:
            quote.rejection_reason = reason.strip() if reason and reason.strip() else None
        await flush_or_conflict(self.db, quote, _LABEL)
        await self._record_transition(quote, old_status, action, user_id, role, reason)
        await self._publish(quote, action, from_status=old_status, reason=reason)

        logger.info(
            "Quote %s transitioned %s -> %s via %s",
            quote.id, old_status.value, new_status.value, action.value,
        )
        return quote

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_quote(self, quote_id: uuid.UUID, user_id: uuid.UUID) -> Quote:
        quote = await self._get_quote(quote_id)
        conversation = await self.catalog.get_conversation(quote.conversation_id)
        conversation.role_of(user_id)
        return quote

    async def list_quotes(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        scope_key: str | None = None,
        status: QuoteStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Quote], int]:
        """List a conversation's quotes, filtered on stored status."""
        conversation = await self.catalog.get_conversation(conversation_id)
        conversation.role_of(user_id)

        filters = [Quote.conversation_id == conversation_id]
        if scope_key is not None:
            filters.append(Quote.scope_key == scope_key)
        if status is not None:
            filters.append(Quote.status == status)

        total = (
            await self.db.execute(select(func.count()).select_from(Quote).where(*filters))
        ).scalar() or 0
        result = await self.db.execute(
            select(Quote)
            .where(*filters)
            .order_by(Quote.created_at.asc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def get_transitions(self, quote_id: uuid.UUID, user_id: uuid.UUID) -> list[QuoteTransition]:
        await self.get_quote(quote_id, user_id)
        result = await self.db.execute(
            select(QuoteTransition)
            .where(QuoteTransition.quote_id == quote_id)
            .order_by(QuoteTransition.created_at.asc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_quote(self, quote_id: uuid.UUID) -> Quote:
        result = await self.db.execute(select(Quote).where(Quote.id == quote_id))
        quote = result.scalar_one_or_none()
        if quote is None:
            raise NotFoundException(f"Quote {quote_id} not found")
        return quote

    async def _evaluate_scope(
        self,
        conversation: ConversationContext,
        item: ItemSnapshot,
        scope_key: str,
        now: datetime,
    ) -> Eligibility:
        approvals = (
            await self.db.execute(
                select(DesignApproval).where(
                    DesignApproval.conversation_id == conversation.id,
                    DesignApproval.item_id == item.id,
                    DesignApproval.scope_key == scope_key,
                )
            )
        ).scalars().all()
        quotes = (
            await self.db.execute(
                select(Quote).where(
                    Quote.conversation_id == conversation.id,
                    Quote.item_id == item.id,
                    Quote.scope_key == scope_key,
                )
            )
        ).scalars().all()
        return evaluate(item, scope_key, approvals, quotes, now)

    async def _settle_open_quote(
        self,
        conversation_id: uuid.UUID,
        item_id: uuid.UUID,
        scope_key: str,
        now: datetime,
    ) -> Quote | None:
        """Return the triple's open quote, storing derived expiry first.

        A ``sent`` quote that already reads as expired is moved to ``expired``
        so that it no longer counts as open.
        """
        result = await self.db.execute(
            select(Quote)
            .where(
                Quote.conversation_id == conversation_id,
                Quote.item_id == item_id,
                Quote.scope_key == scope_key,
                Quote.status.in_(sorted(OPEN_QUOTE_STATUSES)),
            )
            .order_by(Quote.created_at.desc())
        )
        open_quote = None
        for quote in result.scalars().all():
            if quote_lifecycle.is_expired(quote, now):
                quote.status = QuoteStatus.EXPIRED
                await flush_or_conflict(self.db, quote, _LABEL)
                await self._record_transition(
                    quote, QuoteStatus.SENT, QuoteAction.EXPIRE, None, ActorRole.SYSTEM,
                    "Expiry passed",
                )
                await self._publish(quote, QuoteAction.EXPIRE, from_status=QuoteStatus.SENT)
                logger.info("Quote %s expired at %s", quote.id, quote.expires_at)
            elif open_quote is None:
                open_quote = quote
        return open_quote

    async def _ensure_linked_design_approved(self, quote: Quote) -> None:
        result = await self.db.execute(
            select(DesignApproval.status).where(
                DesignApproval.id == quote.linked_design_approval_id
            )
        )
        status = result.scalar_one_or_none()
        if status != DesignApprovalStatus.APPROVED:
            raise DesignApprovalRequiredException(
                "The design this quote was based on is no longer approved",
                context={
                    "scope_key": quote.scope_key,
                    "design_approval_id": quote.linked_design_approval_id,
                },
            )

    async def _record_transition(
        self,
        quote: Quote,
        from_status: QuoteStatus | None,
        action: QuoteAction,
        actor_id: uuid.UUID | None,
        actor_role: ActorRole,
        reason: str | None = None,
    ) -> None:
        self.db.add(
            QuoteTransition(
                quote_id=quote.id,
                from_status=from_status,
                to_status=quote.status,
                action=action,
                actor_id=actor_id,
                actor_role=actor_role,
                reason=reason,
            )
        )
        await self.db.flush()

    async def _publish(
        self,
        quote: Quote,
        action: QuoteAction,
        from_status: QuoteStatus | None,
        reason: str | None = None,
    ) -> None:
        outbox = OutboxService(self.db)
        await outbox.publish_event(
            event_type=QUOTE_ACTION_EVENTS[action],
            aggregate_type="quote",
            aggregate_id=str(quote.id),
            payload={
                "quote_id": str(quote.id),
                "conversation_id": str(quote.conversation_id),
                "item_id": str(quote.item_id),
                "scope_key": quote.scope_key,
                "buyer_id": str(quote.buyer_id),
                "seller_id": str(quote.seller_id),
                "from_status": from_status.value if from_status else None,
                "to_status": quote.status.value,
                "quoted_price": str(quote.quoted_price) if quote.quoted_price is not None else None,
                "quantity": quote.quantity,
                "expires_at": quote.expires_at.isoformat() if quote.expires_at else None,
                "revision": quote.revision,
                "reason": reason,
            },
        )
