# Import all models so SQLAlchemy metadata is populated for Alembic autogenerate
from src.models.conversation import Conversation
from src.models.design_approval import DesignApproval, DesignSubmission
from src.models.design_approval_transition import DesignApprovalTransition
from src.models.enums import (
    ActorRole,
    DesignApprovalAction,
    DesignApprovalStatus,
    EventStatus,
    ItemKind,
    PurchaseStage,
    QuoteAction,
    QuoteStatus,
)
from src.models.event_outbox import EventOutbox
from src.models.listing import ListingItem, ListingOption
from src.models.quote import Quote
from src.models.quote_transition import QuoteTransition
from src.models.workflow_preference import WorkflowPreference

__all__ = [
    "ActorRole",
    "Conversation",
    "DesignApproval",
    "DesignApprovalAction",
    "DesignApprovalStatus",
    "DesignApprovalTransition",
    "DesignSubmission",
    "EventOutbox",
    "EventStatus",
    "ItemKind",
    "ListingItem",
    "ListingOption",
    "PurchaseStage",
    "Quote",
    "QuoteAction",
    "QuoteStatus",
    "QuoteTransition",
    "WorkflowPreference",
]
