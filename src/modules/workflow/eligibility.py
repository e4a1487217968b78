"""Eligibility engine: what a buyer or seller may do for one scope, right now.

``evaluate`` is deterministic and side-effect free. It is consulted before
every design/quote mutation and again when a purchase is finalized.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from src.models.enums import PurchaseStage, QuoteStatus
from src.modules.workflow.catalog import ItemSnapshot
from src.modules.workflow.constants import PRICED_QUOTE_STATUSES
from src.modules.workflow.design_lifecycle import latest_approved
from src.modules.workflow.quote_lifecycle import effective_status


@dataclass(frozen=True)
class Eligibility:
    item_id: Any
    scope_key: str | None
    requires_design_approval: bool
    requires_quote: bool
    approved_design: Any | None
    active_quote: Any | None
    active_quote_status: QuoteStatus | None
    can_request_quote: bool
    can_seller_issue_quote: bool
    can_purchase: bool
    charge_price: Decimal | None
    charge_quantity: int
    stage: PurchaseStage
    evaluated_at: datetime

    @property
    def has_accepted_quote(self) -> bool:
        return self.active_quote_status == QuoteStatus.ACCEPTED


def select_active_quote(quotes: Iterable[Any]) -> Any | None:
    """Most recently updated quote that carries a price (``sent`` or later)."""
    priced = [q for q in quotes if q.status in PRICED_QUOTE_STATUSES]
    if not priced:
        return None
    return max(priced, key=lambda q: q.updated_at)


def derive_stage(
    scope_key: str | None,
    requires_design_approval: bool,
    requires_quote: bool,
    has_approved_design: bool,
    has_accepted_quote: bool,
) -> PurchaseStage:
    if scope_key is None:
        return PurchaseStage.SELECTING_OPTION
    if requires_design_approval and not has_approved_design:
        return PurchaseStage.AWAITING_DESIGN_APPROVAL
    if requires_quote and not has_accepted_quote:
        return PurchaseStage.AWAITING_QUOTE_ACCEPTANCE
    return PurchaseStage.READY_TO_PURCHASE


def evaluate(
    item: ItemSnapshot,
    scope_key: str | None,
    approvals: Iterable[Any],
    quotes: Iterable[Any],
    now: datetime,
) -> Eligibility:
    """Evaluate eligibility for ``scope_key`` of ``item`` at ``now``.

    Records for other scopes are ignored. With no scope selected nothing is
    permitted and the stage is ``selecting_option``.
    """
    rda = item.requires_design_approval
    rq = item.requires_quote

    if scope_key is None:
        return Eligibility(
            item_id=item.id,
            scope_key=None,
            requires_design_approval=rda,
            requires_quote=rq,
            approved_design=None,
            active_quote=None,
            active_quote_status=None,
            can_request_quote=False,
            can_seller_issue_quote=False,
            can_purchase=False,
            charge_price=None,
            charge_quantity=1,
            stage=PurchaseStage.SELECTING_OPTION,
            evaluated_at=now,
        )

    scoped_approvals = [a for a in approvals if a.scope_key == scope_key]
    scoped_quotes = [q for q in quotes if q.scope_key == scope_key]

    approved_design = latest_approved(scoped_approvals)
    active_quote = select_active_quote(scoped_quotes)
    active_status = effective_status(active_quote, now) if active_quote is not None else None
    accepted = active_status == QuoteStatus.ACCEPTED
    has_design = approved_design is not None

    can_request_quote = not rda or has_design
    # Design-first enforcement only applies when both prerequisites are configured
    can_seller_issue_quote = not (rda and rq) or has_design
    can_purchase = (not rda or has_design) and (not rq or accepted)

    if accepted:
        charge_price = active_quote.quoted_price
        charge_quantity = active_quote.quantity
    else:
        charge_price = item.list_price(scope_key)
        charge_quantity = 1

    return Eligibility(
        item_id=item.id,
        scope_key=scope_key,
        requires_design_approval=rda,
        requires_quote=rq,
        approved_design=approved_design,
        active_quote=active_quote,
        active_quote_status=active_status,
        can_request_quote=can_request_quote,
        can_seller_issue_quote=can_seller_issue_quote,
        can_purchase=can_purchase,
        charge_price=charge_price,
        charge_quantity=charge_quantity,
        stage=derive_stage(scope_key, rda, rq, has_design, accepted),
        evaluated_at=now,
    )
