"""Design approval / quote state machines, actor rules, and event types."""

from __future__ import annotations

from src.models.enums import (
    ActorRole,
    DesignApprovalAction,
    DesignApprovalStatus,
    QuoteAction,
    QuoteStatus,
)

# Scope used when no variant or package is selected
CUSTOM_SCOPE = "custom"

# ---------------------------------------------------------------------------
# Design approvals
# ---------------------------------------------------------------------------

# Valid transitions: from_status -> {action -> to_status}
DESIGN_TRANSITIONS: dict[
    DesignApprovalStatus, dict[DesignApprovalAction, DesignApprovalStatus]
] = {
    DesignApprovalStatus.PENDING: {
        DesignApprovalAction.START_REVIEW: DesignApprovalStatus.UNDER_REVIEW,
        DesignApprovalAction.APPROVE: DesignApprovalStatus.APPROVED,
        DesignApprovalAction.REJECT: DesignApprovalStatus.REJECTED,
        DesignApprovalAction.REQUEST_CHANGES: DesignApprovalStatus.CHANGES_REQUESTED,
    },
    DesignApprovalStatus.UNDER_REVIEW: {
        DesignApprovalAction.APPROVE: DesignApprovalStatus.APPROVED,
        DesignApprovalAction.REJECT: DesignApprovalStatus.REJECTED,
        DesignApprovalAction.REQUEST_CHANGES: DesignApprovalStatus.CHANGES_REQUESTED,
    },
    DesignApprovalStatus.RESUBMITTED: {
        DesignApprovalAction.START_REVIEW: DesignApprovalStatus.UNDER_REVIEW,
        DesignApprovalAction.APPROVE: DesignApprovalStatus.APPROVED,
        DesignApprovalAction.REJECT: DesignApprovalStatus.REJECTED,
        DesignApprovalAction.REQUEST_CHANGES: DesignApprovalStatus.CHANGES_REQUESTED,
    },
    DesignApprovalStatus.CHANGES_REQUESTED: {
        DesignApprovalAction.RESUBMIT: DesignApprovalStatus.RESUBMITTED,
        DesignApprovalAction.SUPERSEDE: DesignApprovalStatus.SUPERSEDED,
    },
}

# Who may perform each design action
DESIGN_ACTION_ACTORS: dict[DesignApprovalAction, frozenset[ActorRole]] = {
    DesignApprovalAction.SUBMIT: frozenset({ActorRole.BUYER}),
    DesignApprovalAction.START_REVIEW: frozenset({ActorRole.SELLER, ActorRole.SYSTEM}),
    DesignApprovalAction.APPROVE: frozenset({ActorRole.SELLER}),
    DesignApprovalAction.REJECT: frozenset({ActorRole.SELLER}),
    DesignApprovalAction.REQUEST_CHANGES: frozenset({ActorRole.SELLER}),
    DesignApprovalAction.RESUBMIT: frozenset({ActorRole.BUYER}),
    DesignApprovalAction.SUPERSEDE: frozenset({ActorRole.BUYER}),
    DesignApprovalAction.COPY: frozenset({ActorRole.BUYER}),
}

# Actions a seller may request through the status endpoint
SELLER_DESIGN_ACTIONS: frozenset[DesignApprovalAction] = frozenset({
    DesignApprovalAction.START_REVIEW,
    DesignApprovalAction.APPROVE,
    DesignApprovalAction.REJECT,
    DesignApprovalAction.REQUEST_CHANGES,
})

# Statuses waiting on the seller; at most one per (conversation, item, scope)
PENDING_SELLER_ACTION_STATUSES: frozenset[DesignApprovalStatus] = frozenset({
    DesignApprovalStatus.PENDING,
    DesignApprovalStatus.UNDER_REVIEW,
    DesignApprovalStatus.RESUBMITTED,
})

# Terminal statuses (no further transitions possible)
DESIGN_TERMINAL_STATUSES: frozenset[DesignApprovalStatus] = frozenset({
    DesignApprovalStatus.APPROVED,
    DesignApprovalStatus.REJECTED,
    DesignApprovalStatus.SUPERSEDED,
})

# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

QUOTE_TRANSITIONS: dict[QuoteStatus, dict[QuoteAction, QuoteStatus]] = {
    QuoteStatus.REQUESTED: {
        QuoteAction.ISSUE: QuoteStatus.SENT,
    },
    QuoteStatus.SENT: {
        QuoteAction.REVISE: QuoteStatus.SENT,
        QuoteAction.ACCEPT: QuoteStatus.ACCEPTED,
        QuoteAction.REJECT: QuoteStatus.REJECTED,
        QuoteAction.EXPIRE: QuoteStatus.EXPIRED,
    },
}

QUOTE_ACTION_ACTORS: dict[QuoteAction, frozenset[ActorRole]] = {
    QuoteAction.REQUEST: frozenset({ActorRole.BUYER}),
    QuoteAction.ISSUE: frozenset({ActorRole.SELLER}),
    QuoteAction.REVISE: frozenset({ActorRole.SELLER}),
    QuoteAction.ACCEPT: frozenset({ActorRole.BUYER}),
    QuoteAction.REJECT: frozenset({ActorRole.BUYER}),
    QuoteAction.EXPIRE: frozenset({ActorRole.SYSTEM}),
}

# Buyer responses accepted by the respond endpoint
BUYER_QUOTE_RESPONSES: frozenset[QuoteAction] = frozenset({
    QuoteAction.ACCEPT,
    QuoteAction.REJECT,
})

# Stored statuses that still wait on somebody; at most one per triple
OPEN_QUOTE_STATUSES: frozenset[QuoteStatus] = frozenset({
    QuoteStatus.REQUESTED,
    QuoteStatus.SENT,
})

# Quotes that carry a price, i.e. "sent or later"
PRICED_QUOTE_STATUSES: frozenset[QuoteStatus] = frozenset({
    QuoteStatus.SENT,
    QuoteStatus.ACCEPTED,
    QuoteStatus.REJECTED,
    QuoteStatus.EXPIRED,
})

QUOTE_TERMINAL_STATUSES: frozenset[QuoteStatus] = frozenset({
    QuoteStatus.ACCEPTED,
    QuoteStatus.REJECTED,
    QuoteStatus.EXPIRED,
})

# ---------------------------------------------------------------------------
# Outbox event types
# ---------------------------------------------------------------------------

EVENT_DESIGN_SUBMITTED = "design.submitted"
EVENT_DESIGN_REVIEW_STARTED = "design.review_started"
EVENT_DESIGN_APPROVED = "design.approved"
EVENT_DESIGN_REJECTED = "design.rejected"
EVENT_DESIGN_CHANGES_REQUESTED = "design.changes_requested"
EVENT_DESIGN_RESUBMITTED = "design.resubmitted"
EVENT_DESIGN_SUPERSEDED = "design.superseded"
EVENT_DESIGN_COPIED = "design.copied"
EVENT_QUOTE_REQUESTED = "quote.requested"
EVENT_QUOTE_SENT = "quote.sent"
EVENT_QUOTE_REVISED = "quote.revised"
EVENT_QUOTE_ACCEPTED = "quote.accepted"
EVENT_QUOTE_REJECTED = "quote.rejected"
EVENT_QUOTE_EXPIRED = "quote.expired"

DESIGN_ACTION_EVENTS: dict[DesignApprovalAction, str] = {
    DesignApprovalAction.SUBMIT: EVENT_DESIGN_SUBMITTED,
    DesignApprovalAction.START_REVIEW: EVENT_DESIGN_REVIEW_STARTED,
    DesignApprovalAction.APPROVE: EVENT_DESIGN_APPROVED,
    DesignApprovalAction.REJECT: EVENT_DESIGN_REJECTED,
    DesignApprovalAction.REQUEST_CHANGES: EVENT_DESIGN_CHANGES_REQUESTED,
    DesignApprovalAction.RESUBMIT: EVENT_DESIGN_RESUBMITTED,
    DesignApprovalAction.SUPERSEDE: EVENT_DESIGN_SUPERSEDED,
    DesignApprovalAction.COPY: EVENT_DESIGN_COPIED,
}

QUOTE_ACTION_EVENTS: dict[QuoteAction, str] = {
    QuoteAction.REQUEST: EVENT_QUOTE_REQUESTED,
    QuoteAction.ISSUE: EVENT_QUOTE_SENT,
    QuoteAction.REVISE: EVENT_QUOTE_REVISED,
    QuoteAction.ACCEPT: EVENT_QUOTE_ACCEPTED,
    QuoteAction.REJECT: EVENT_QUOTE_REJECTED,
    QuoteAction.EXPIRE: EVENT_QUOTE_EXPIRED,
}
