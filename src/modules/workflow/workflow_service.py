"""Workflow summary, eligibility evaluation and purchase authorization."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.base import utcnow
from src.exceptions import ForbiddenException, PurchaseNotEligibleException
from src.models.design_approval import DesignApproval
from src.models.enums import ActorRole, PurchaseStage
from src.models.quote import Quote
from src.modules.workflow.catalog import CatalogReader, ItemSnapshot
from src.modules.workflow.eligibility import Eligibility, evaluate
from src.modules.workflow.projection import WorkflowSummary, build_workflow_summary
from src.modules.workflow.scope import normalize_option_id, resolve_requested_scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseAuthorization:
    """What the checkout collaborator may charge for one option."""

    item_id: uuid.UUID
    scope_key: str
    conversation_id: uuid.UUID | None
    charge_price: Decimal
    charge_quantity: int
    quote_id: uuid.UUID | None
    design_approval_id: uuid.UUID | None
    authorized_at: datetime


class WorkflowService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.catalog = CatalogReader(db)

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    async def get_workflow_summary(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        now: datetime | None = None,
    ) -> WorkflowSummary:
        """Scope-grouped view of a conversation's designs and quotes."""
        conversation, item = await self.catalog.get_conversation_item(conversation_id)
        conversation.role_of(user_id)

        approvals = await self._load(DesignApproval, conversation_id=conversation.id, item_id=item.id)
        quotes = await self._load(Quote, conversation_id=conversation.id, item_id=item.id)
        return build_workflow_summary(item, approvals, quotes, now or utcnow())

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    async def evaluate_eligibility(
        self,
        item_id: uuid.UUID,
        user_id: uuid.UUID,
        conversation_id: uuid.UUID | None = None,
        scope_key: str | None = None,
        variant_id: uuid.UUID | str | None = None,
        package_id: uuid.UUID | str | None = None,
        now: datetime | None = None,
    ) -> Eligibility:
        """Read-only eligibility for one scope of an item.

        With a conversation the records of that conversation are used and the
        caller must take part in it. Without one, the caller's own records as
        buyer across all conversations about the item are used. When the item
        has options and no selection is given, the stage is
        ``selecting_option``.
        """
        item = await self.catalog.get_item(item_id)
        filters: dict = {"item_id": item.id}
        if conversation_id is not None:
            conversation, _ = await self.catalog.get_conversation_item(conversation_id, item.id)
            conversation.role_of(user_id)
            filters["conversation_id"] = conversation.id
        else:
            filters["buyer_id"] = user_id

        scope = self._scope_or_none(item, scope_key, variant_id, package_id)
        approvals: list = []
        quotes: list = []
        if scope is not None:
            approvals = await self._load(DesignApproval, scope_key=scope, **filters)
            quotes = await self._load(Quote, scope_key=scope, **filters)
        return evaluate(item, scope, approvals, quotes, now or utcnow())

    # ------------------------------------------------------------------
    # Purchase authorization
    # ------------------------------------------------------------------

    async def authorize_purchase(
        self,
        item_id: uuid.UUID,
        user_id: uuid.UUID,
        conversation_id: uuid.UUID | None = None,
        scope_key: str | None = None,
        variant_id: uuid.UUID | str | None = None,
        package_id: uuid.UUID | str | None = None,
    ) -> PurchaseAuthorization:
        """Re-evaluate eligibility at checkout and return what to charge.

        Nothing is written. Raises PurchaseNotEligibleException when the
        buyer may not purchase the option right now.
        """
        if conversation_id is not None:
            conversation = await self.catalog.get_conversation(conversation_id)
            if conversation.role_of(user_id) is not ActorRole.BUYER:
                raise ForbiddenException(
                    "Only the buyer of the conversation can purchase",
                    context={"conversation_id": conversation_id},
                )

        eligibility = await self.evaluate_eligibility(
            item_id,
            user_id,
            conversation_id=conversation_id,
            scope_key=scope_key,
            variant_id=variant_id,
            package_id=package_id,
        )
        if not eligibility.can_purchase or eligibility.charge_price is None:
            logger.info(
                "Purchase of item %s scope %s refused for buyer %s at stage %s",
                item_id, eligibility.scope_key, user_id, eligibility.stage.value,
            )
            raise PurchaseNotEligibleException(
                _refusal_message(eligibility),
                context={
                    "scope_key": eligibility.scope_key,
                    "stage": eligibility.stage,
                    "quote_status": eligibility.active_quote_status,
                },
            )

        authorization = PurchaseAuthorization(
            item_id=item_id,
            scope_key=eligibility.scope_key,
            conversation_id=conversation_id,
            charge_price=eligibility.charge_price,
            charge_quantity=eligibility.charge_quantity,
            quote_id=(
                eligibility.active_quote.id if eligibility.has_accepted_quote else None
            ),
            design_approval_id=(
                eligibility.approved_design.id if eligibility.approved_design else None
            ),
            authorized_at=eligibility.evaluated_at,
        )
        logger.info(
            "Purchase of item %s scope %s authorized for buyer %s at %s x %d",
            item_id, authorization.scope_key, user_id,
            authorization.charge_price, authorization.charge_quantity,
        )
        return authorization

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _scope_or_none(
        item: ItemSnapshot,
        scope_key: str | None,
        variant_id: uuid.UUID | str | None,
        package_id: uuid.UUID | str | None,
    ) -> str | None:
        nothing_selected = not any(
            normalize_option_id(v) for v in (scope_key, variant_id, package_id)
        )
        if nothing_selected and item.has_options:
            return None
        return resolve_requested_scope(
            item, scope_key=scope_key, variant_id=variant_id, package_id=package_id
        )

    async def _load(self, model, **filters) -> list:
        query = select(model).where(
            *(getattr(model, column) == value for column, value in filters.items())
        )
        result = await self.db.execute(query.order_by(model.created_at.asc()))
        return list(result.scalars().all())


def _refusal_message(eligibility: Eligibility) -> str:
    if eligibility.stage == PurchaseStage.SELECTING_OPTION:
        return "Select an option before purchasing"
    if eligibility.stage == PurchaseStage.AWAITING_DESIGN_APPROVAL:
        return "The design for this option has not been approved yet"
    if eligibility.stage == PurchaseStage.AWAITING_QUOTE_ACCEPTANCE:
        return "An accepted quote is required for this option"
    return "This option has no price to charge"
