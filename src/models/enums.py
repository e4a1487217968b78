import enum


class ItemKind(str, enum.Enum):
    PRODUCT = "product"
    SERVICE = "service"


class ActorRole(str, enum.Enum):
    BUYER = "buyer"
    SELLER = "seller"
    SYSTEM = "system"


class EventStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# ── Design approvals ────────────────────────────────────────────────────


class DesignApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    CHANGES_REQUESTED = "changes_requested"
    RESUBMITTED = "resubmitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"


class DesignApprovalAction(str, enum.Enum):
    SUBMIT = "submit"
    START_REVIEW = "start_review"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"
    RESUBMIT = "resubmit"
    SUPERSEDE = "supersede"
    COPY = "copy"


# ── Quotes ──────────────────────────────────────────────────────────────


class QuoteStatus(str, enum.Enum):
    REQUESTED = "requested"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class QuoteAction(str, enum.Enum):
    REQUEST = "request"
    ISSUE = "issue"
    REVISE = "revise"
    ACCEPT = "accept"
    REJECT = "reject"
    EXPIRE = "expire"


# ── Purchase attempt ────────────────────────────────────────────────────


class PurchaseStage(str, enum.Enum):
    SELECTING_OPTION = "selecting_option"
    AWAITING_DESIGN_APPROVAL = "awaiting_design_approval"
    AWAITING_QUOTE_ACCEPTANCE = "awaiting_quote_acceptance"
    READY_TO_PURCHASE = "ready_to_purchase"
