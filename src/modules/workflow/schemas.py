"""Pydantic v2 schemas for the design approval, quote and eligibility endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import (
    ActorRole,
    DesignApprovalAction,
    DesignApprovalStatus,
    ItemKind,
    PurchaseStage,
    QuoteAction,
    QuoteStatus,
)
from src.modules.workflow.eligibility import Eligibility
from src.modules.workflow.projection import WorkflowSummary
from src.modules.workflow.quote_lifecycle import effective_status

# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ScopeSelection(BaseModel):
    """Which option a request refers to: a scope key or a variant/package id."""

    item_id: uuid.UUID | None = None
    scope_key: str | None = Field(None, max_length=64)
    variant_id: str | None = Field(None, max_length=64)
    package_id: str | None = Field(None, max_length=64)


class FileRef(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)
    filename: str = Field(..., min_length=1, max_length=255)
    size: int = Field(..., gt=0)
    mime_type: str | None = Field(None, max_length=255)


# ---------------------------------------------------------------------------
# Design approval schemas
# ---------------------------------------------------------------------------


class DesignApprovalCreate(ScopeSelection):
    files: list[FileRef] = Field(..., min_length=1)


class DesignStatusUpdate(BaseModel):
    action: DesignApprovalAction
    notes: str | None = Field(None, max_length=5000)
    expected_status: DesignApprovalStatus | None = None


class DesignResubmit(BaseModel):
    files: list[FileRef] = Field(..., min_length=1)
    expected_status: DesignApprovalStatus | None = None


class DesignCopyRequest(BaseModel):
    scope_key: str | None = Field(None, max_length=64)
    variant_id: str | None = Field(None, max_length=64)
    package_id: str | None = Field(None, max_length=64)


class DesignApprovalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    conversation_id: uuid.UUID
    item_id: uuid.UUID
    item_kind: ItemKind
    scope_key: str
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    files: list[FileRef]
    status: DesignApprovalStatus
    seller_notes: str | None = None
    approved_at: datetime | None = None
    revision: int
    copied_from_id: uuid.UUID | None = None
    version: int
    created_at: datetime
    updated_at: datetime


class DesignApprovalListResponse(BaseModel):
    items: list[DesignApprovalResponse]
    total: int
    limit: int
    offset: int


class DesignSubmissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    design_approval_id: uuid.UUID
    revision: int
    files: list[FileRef]
    submitted_by: uuid.UUID
    created_at: datetime


class DesignTransitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    design_approval_id: uuid.UUID
    from_status: DesignApprovalStatus | None = None
    to_status: DesignApprovalStatus
    action: DesignApprovalAction
    actor_id: uuid.UUID | None = None
    actor_role: ActorRole
    reason: str | None = None
    created_at: datetime


class ApprovedScopesResponse(BaseModel):
    item_id: uuid.UUID
    scope_keys: list[str]


# ---------------------------------------------------------------------------
# Quote schemas
# ---------------------------------------------------------------------------


class QuoteRequestCreate(ScopeSelection):
    quantity: int = Field(1, ge=1)
    notes: str | None = Field(None, max_length=5000)


class QuoteIssue(ScopeSelection):
    quoted_price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    quantity: int = Field(1, ge=1)
    expires_at: datetime | None = None
    notes: str | None = Field(None, max_length=5000)


class QuoteRespond(BaseModel):
    action: QuoteAction
    reason: str | None = Field(None, max_length=5000)
    expected_status: QuoteStatus | None = None


class QuoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    conversation_id: uuid.UUID
    item_id: uuid.UUID
    item_kind: ItemKind
    scope_key: str
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    quoted_price: Decimal | None = None
    quantity: int
    status: QuoteStatus
    effective_status: QuoteStatus | None = None
    expires_at: datetime | None = None
    notes: str | None = None
    request_notes: str | None = None
    rejection_reason: str | None = None
    linked_design_approval_id: uuid.UUID | None = None
    accepted_at: datetime | None = None
    responded_at: datetime | None = None
    revision: int
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_quote(cls, quote, now: datetime) -> QuoteResponse:
        """Serialize a quote with its status as seen at ``now``."""
        response = cls.model_validate(quote)
        response.effective_status = effective_status(quote, now)
        return response


class QuoteListResponse(BaseModel):
    items: list[QuoteResponse]
    total: int
    limit: int
    offset: int


class QuoteTransitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    quote_id: uuid.UUID
    from_status: QuoteStatus | None = None
    to_status: QuoteStatus
    action: QuoteAction
    actor_id: uuid.UUID | None = None
    actor_role: ActorRole
    reason: str | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Eligibility / workflow summary schemas
# ---------------------------------------------------------------------------


class EligibilityResponse(BaseModel):
    item_id: uuid.UUID
    scope_key: str | None = None
    requires_design_approval: bool
    requires_quote: bool
    approved_design_id: uuid.UUID | None = None
    active_quote_id: uuid.UUID | None = None
    active_quote_status: QuoteStatus | None = None
    can_request_quote: bool
    can_seller_issue_quote: bool
    can_purchase: bool
    charge_price: Decimal | None = None
    charge_quantity: int
    stage: PurchaseStage
    evaluated_at: datetime

    @classmethod
    def from_eligibility(cls, eligibility: Eligibility) -> EligibilityResponse:
        return cls(
            item_id=eligibility.item_id,
            scope_key=eligibility.scope_key,
            requires_design_approval=eligibility.requires_design_approval,
            requires_quote=eligibility.requires_quote,
            approved_design_id=(
                eligibility.approved_design.id if eligibility.approved_design else None
            ),
            active_quote_id=eligibility.active_quote.id if eligibility.active_quote else None,
            active_quote_status=eligibility.active_quote_status,
            can_request_quote=eligibility.can_request_quote,
            can_seller_issue_quote=eligibility.can_seller_issue_quote,
            can_purchase=eligibility.can_purchase,
            charge_price=eligibility.charge_price,
            charge_quantity=eligibility.charge_quantity,
            stage=eligibility.stage,
            evaluated_at=eligibility.evaluated_at,
        )


class OptionFlagsResponse(BaseModel):
    scope_key: str
    option_id: uuid.UUID | None = None
    name: str | None = None
    price: Decimal | None = None
    has_approved_design: bool
    has_accepted_quote: bool
    has_activity: bool


class ScopeWorkflowResponse(BaseModel):
    scope_key: str
    option_name: str | None = None
    approvals: list[DesignApprovalResponse]
    quotes: list[QuoteResponse]
    eligibility: EligibilityResponse


class WorkflowSummaryResponse(BaseModel):
    conversation_id: uuid.UUID
    item_id: uuid.UUID
    requires_design_approval: bool
    requires_quote: bool
    default_scope_key: str
    options: list[OptionFlagsResponse]
    scopes: list[ScopeWorkflowResponse]
    evaluated_at: datetime

    @classmethod
    def from_summary(
        cls, conversation_id: uuid.UUID, summary: WorkflowSummary
    ) -> WorkflowSummaryResponse:
        now = summary.evaluated_at
        return cls(
            conversation_id=conversation_id,
            item_id=summary.item.id,
            requires_design_approval=summary.item.requires_design_approval,
            requires_quote=summary.item.requires_quote,
            default_scope_key=summary.default_scope_key,
            options=[
                OptionFlagsResponse(
                    scope_key=flags.scope_key,
                    option_id=flags.option.id if flags.option else None,
                    name=flags.option.name if flags.option else None,
                    price=flags.option.price if flags.option else summary.item.base_price,
                    has_approved_design=flags.has_approved_design,
                    has_accepted_quote=flags.has_accepted_quote,
                    has_activity=flags.has_activity,
                )
                for flags in summary.options
            ],
            scopes=[
                ScopeWorkflowResponse(
                    scope_key=scope.scope_key,
                    option_name=scope.option.name if scope.option else None,
                    approvals=[DesignApprovalResponse.model_validate(a) for a in scope.approvals],
                    quotes=[QuoteResponse.from_quote(q, now) for q in scope.quotes],
                    eligibility=EligibilityResponse.from_eligibility(scope.eligibility),
                )
                for scope in summary.scopes
            ],
            evaluated_at=now,
        )


# ---------------------------------------------------------------------------
# Purchase authorization schemas
# ---------------------------------------------------------------------------


class PurchaseAuthorizationRequest(ScopeSelection):
    item_id: uuid.UUID
    conversation_id: uuid.UUID | None = None


class PurchaseAuthorizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    item_id: uuid.UUID
    scope_key: str
    conversation_id: uuid.UUID | None = None
    charge_price: Decimal
    charge_quantity: int
    quote_id: uuid.UUID | None = None
    design_approval_id: uuid.UUID | None = None
    authorized_at: datetime
