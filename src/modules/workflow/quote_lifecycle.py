"""Quote state machine with lazily derived expiry."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from src.exceptions import (
    ForbiddenException,
    InvalidStateTransitionException,
    ValidationException,
)
from src.models.enums import ActorRole, QuoteAction, QuoteStatus
from src.modules.workflow.constants import (
    OPEN_QUOTE_STATUSES,
    QUOTE_ACTION_ACTORS,
    QUOTE_TRANSITIONS,
)


def is_expired(quote: Any, now: datetime) -> bool:
    """A stored ``sent`` quote whose ``expires_at`` has passed."""
    return (
        quote.status == QuoteStatus.SENT
        and quote.expires_at is not None
        and quote.expires_at < now
    )


def effective_status(quote: Any, now: datetime) -> QuoteStatus:
    """Status as the buyer sees it at ``now``; expiry is derived, never swept."""
    if is_expired(quote, now):
        return QuoteStatus.EXPIRED
    return quote.status


def is_open(quote: Any, now: datetime) -> bool:
    return quote.status in OPEN_QUOTE_STATUSES and not is_expired(quote, now)


def check_actor(action: QuoteAction, actor_role: ActorRole) -> None:
    if actor_role not in QUOTE_ACTION_ACTORS[action]:
        raise ForbiddenException(
            f"A {actor_role.value} cannot {action.value} a quote",
            context={"action": action, "actor_role": actor_role},
        )


def next_status(
    quote: Any,
    action: QuoteAction,
    actor_role: ActorRole,
    now: datetime,
) -> QuoteStatus:
    """Target status of ``action`` on ``quote`` at ``now``.

    The derived status is used, so an expired ``sent`` quote can be neither
    accepted nor rejected.
    """
    check_actor(action, actor_role)
    current = effective_status(quote, now)
    allowed = QUOTE_TRANSITIONS.get(current, {})
    if action not in allowed:
        raise InvalidStateTransitionException(
            f"Cannot {action.value} a quote in status '{current.value}'",
            context={"scope_key": quote.scope_key, "status": current, "action": action},
        )
    return allowed[action]


def validate_offer(price: Any, quantity: Any) -> tuple[Decimal, int]:
    """Validate a seller's price and quantity."""
    try:
        amount = Decimal(str(price))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationException(
            "Quoted price must be a number",
            details=[{"field": "quoted_price", "message": "invalid decimal"}],
        ) from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationException(
            "Quoted price must be greater than 0",
            details=[{"field": "quoted_price", "message": "must be greater than 0"}],
        )
    validate_quantity(quantity)
    return amount, quantity


def validate_quantity(quantity: Any) -> int:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ValidationException(
            "Quantity must be at least 1",
            details=[{"field": "quantity", "message": "must be greater than or equal to 1"}],
        )
    return quantity


def resolve_expiry(
    expires_at: datetime | None,
    now: datetime,
    default_days: int,
) -> datetime:
    """Explicit expiry as given (a past value is kept and reads as expired).

    Naive timestamps are taken as UTC.
    """
    if expires_at is not None:
        if expires_at.tzinfo is None:
            return expires_at.replace(tzinfo=UTC)
        return expires_at
    return now + timedelta(days=default_days)
