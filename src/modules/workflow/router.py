"""Workflow API router: design approvals, quotes, eligibility and purchase checks."""

import uuid

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.base import utcnow
from src.database.session import get_db
from src.middleware.rate_limit import WRITE_LIMIT, limiter
from src.models.enums import DesignApprovalStatus, QuoteStatus
from src.modules.identity.auth import AuthenticatedUser, get_current_user
from src.modules.workflow.design_service import DesignApprovalService
from src.modules.workflow.quote_service import QuoteService
from src.modules.workflow.schemas import (
    ApprovedScopesResponse,
    DesignApprovalCreate,
    DesignApprovalListResponse,
    DesignApprovalResponse,
    DesignCopyRequest,
    DesignResubmit,
    DesignStatusUpdate,
    DesignSubmissionResponse,
    DesignTransitionResponse,
    EligibilityResponse,
    PurchaseAuthorizationRequest,
    PurchaseAuthorizationResponse,
    QuoteIssue,
    QuoteListResponse,
    QuoteRequestCreate,
    QuoteRespond,
    QuoteResponse,
    QuoteTransitionResponse,
    WorkflowSummaryResponse,
)
from src.modules.workflow.workflow_service import WorkflowService
from src.schemas.responses import ErrorResponse

conversation_router = APIRouter(prefix="/conversations", tags=["workflow"])
design_router = APIRouter(prefix="/design-approvals", tags=["design-approvals"])
quote_router = APIRouter(prefix="/quotes", tags=["quotes"])
eligibility_router = APIRouter(tags=["eligibility"])

# Error envelopes documented on mutating endpoints
_WRITE_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


# ---------------------------------------------------------------------------
# Conversation-scoped: designs, quotes, summary
# ---------------------------------------------------------------------------


@conversation_router.post(
    "/{conversation_id}/design-approvals",
    response_model=DesignApprovalResponse,
    status_code=201,
    responses=_WRITE_ERRORS,
)
@limiter.limit(WRITE_LIMIT)
async def create_design_approval(
    request: Request,
    conversation_id: uuid.UUID,
    body: DesignApprovalCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Upload a design for one option (buyer)."""
    svc = DesignApprovalService(db)
    approval = await svc.create_design_approval(
        conversation_id=conversation_id,
        user_id=user.id,
        files=body.files,
        scope_key=body.scope_key,
        variant_id=body.variant_id,
        package_id=body.package_id,
        item_id=body.item_id,
    )
    return DesignApprovalResponse.model_validate(approval)


@conversation_router.get(
    "/{conversation_id}/design-approvals",
    response_model=DesignApprovalListResponse,
)
async def list_design_approvals(
    conversation_id: uuid.UUID,
    scope_key: str | None = Query(None, max_length=64),
    status: DesignApprovalStatus | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List a conversation's design approvals, oldest first."""
    svc = DesignApprovalService(db)
    items, total = await svc.list_design_approvals(
        conversation_id=conversation_id,
        user_id=user.id,
        scope_key=scope_key,
        status=status,
        limit=limit,
        offset=offset,
    )
    return DesignApprovalListResponse(
        items=[DesignApprovalResponse.model_validate(a) for a in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@conversation_router.post(
    "/{conversation_id}/quote-requests",
    response_model=QuoteResponse,
    status_code=201,
    responses=_WRITE_ERRORS,
)
@limiter.limit(WRITE_LIMIT)
async def request_quote(
    request: Request,
    conversation_id: uuid.UUID,
    body: QuoteRequestCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Ask the seller for a custom quote (buyer)."""
    svc = QuoteService(db)
    quote = await svc.request_quote(
        conversation_id=conversation_id,
        user_id=user.id,
        quantity=body.quantity,
        notes=body.notes,
        scope_key=body.scope_key,
        variant_id=body.variant_id,
        package_id=body.package_id,
        item_id=body.item_id,
    )
    return QuoteResponse.from_quote(quote, utcnow())


@conversation_router.post(
    "/{conversation_id}/quotes",
    response_model=QuoteResponse,
    status_code=201,
    responses=_WRITE_ERRORS,
)
@limiter.limit(WRITE_LIMIT)
async def issue_quote(
    request: Request,
    conversation_id: uuid.UUID,
    body: QuoteIssue,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Send or update a quote for one option (seller)."""
    svc = QuoteService(db)
    quote = await svc.issue_quote(
        conversation_id=conversation_id,
        user_id=user.id,
        quoted_price=body.quoted_price,
        quantity=body.quantity,
        expires_at=body.expires_at,
        notes=body.notes,
        scope_key=body.scope_key,
        variant_id=body.variant_id,
        package_id=body.package_id,
        item_id=body.item_id,
    )
    return QuoteResponse.from_quote(quote, utcnow())


@conversation_router.get("/{conversation_id}/quotes", response_model=QuoteListResponse)
async def list_quotes(
    conversation_id: uuid.UUID,
    scope_key: str | None = Query(None, max_length=64),
    status: QuoteStatus | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List a conversation's quotes, oldest first."""
    svc = QuoteService(db)
    items, total = await svc.list_quotes(
        conversation_id=conversation_id,
        user_id=user.id,
        scope_key=scope_key,
        status=status,
        limit=limit,
        offset=offset,
    )
    now = utcnow()
    return QuoteListResponse(
        items=[QuoteResponse.from_quote(q, now) for q in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@conversation_router.get(
    "/{conversation_id}/workflow",
    response_model=WorkflowSummaryResponse,
)
async def get_workflow_summary(
    conversation_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Designs, quotes and eligibility of a conversation, grouped by option."""
    svc = WorkflowService(db)
    summary = await svc.get_workflow_summary(conversation_id, user.id)
    return WorkflowSummaryResponse.from_summary(conversation_id, summary)


# ---------------------------------------------------------------------------
# Design approvals
# ---------------------------------------------------------------------------


@design_router.get("/library", response_model=DesignApprovalListResponse)
async def get_design_library(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approved designs of the calling buyer across conversations."""
    svc = DesignApprovalService(db)
    items, total = await svc.get_design_library(user.id, limit=limit, offset=offset)
    return DesignApprovalListResponse(
        items=[DesignApprovalResponse.model_validate(a) for a in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@design_router.get("/{approval_id}", response_model=DesignApprovalResponse)
async def get_design_approval(
    approval_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DesignApprovalService(db)
    approval = await svc.get_design_approval(approval_id, user.id)
    return DesignApprovalResponse.model_validate(approval)


@design_router.post(
    "/{approval_id}/status",
    response_model=DesignApprovalResponse,
    responses=_WRITE_ERRORS,
)
@limiter.limit(WRITE_LIMIT)
async def set_design_approval_status(
    request: Request,
    approval_id: uuid.UUID,
    body: DesignStatusUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Start review, approve, reject or request changes (seller)."""
    svc = DesignApprovalService(db)
    approval = await svc.set_design_approval_status(
        approval_id=approval_id,
        user_id=user.id,
        action=body.action,
        notes=body.notes,
        expected_status=body.expected_status,
    )
    return DesignApprovalResponse.model_validate(approval)


@design_router.post(
    "/{approval_id}/resubmit",
    response_model=DesignApprovalResponse,
    responses=_WRITE_ERRORS,
)
@limiter.limit(WRITE_LIMIT)
async def resubmit_design(
    request: Request,
    approval_id: uuid.UUID,
    body: DesignResubmit,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit new files after the seller requested changes (buyer)."""
    svc = DesignApprovalService(db)
    approval = await svc.resubmit_design(
        approval_id=approval_id,
        user_id=user.id,
        files=body.files,
        expected_status=body.expected_status,
    )
    return DesignApprovalResponse.model_validate(approval)


@design_router.post(
    "/{approval_id}/copy",
    response_model=DesignApprovalResponse,
    status_code=201,
    responses=_WRITE_ERRORS,
)
@limiter.limit(WRITE_LIMIT)
async def copy_design_to_scope(
    request: Request,
    approval_id: uuid.UUID,
    body: DesignCopyRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reuse an approved design for another option of the same item (buyer)."""
    svc = DesignApprovalService(db)
    approval = await svc.copy_design_to_scope(
        approval_id=approval_id,
        user_id=user.id,
        scope_key=body.scope_key,
        variant_id=body.variant_id,
        package_id=body.package_id,
    )
    return DesignApprovalResponse.model_validate(approval)


@design_router.get(
    "/{approval_id}/submissions",
    response_model=list[DesignSubmissionResponse],
)
async def list_submissions(
    approval_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Every file set submitted for a design, oldest first."""
    svc = DesignApprovalService(db)
    submissions = await svc.list_submissions(approval_id, user.id)
    return [DesignSubmissionResponse.model_validate(s) for s in submissions]


@design_router.get(
    "/{approval_id}/transitions",
    response_model=list[DesignTransitionResponse],
)
async def get_design_transitions(
    approval_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DesignApprovalService(db)
    transitions = await svc.get_transitions(approval_id, user.id)
    return [DesignTransitionResponse.model_validate(t) for t in transitions]


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


@quote_router.get("/{quote_id}", response_model=QuoteResponse)
async def get_quote(
    quote_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = QuoteService(db)
    quote = await svc.get_quote(quote_id, user.id)
    return QuoteResponse.from_quote(quote, utcnow())


@quote_router.post(
    "/{quote_id}/respond",
    response_model=QuoteResponse,
    responses=_WRITE_ERRORS,
)
@limiter.limit(WRITE_LIMIT)
async def respond_to_quote(
    request: Request,
    quote_id: uuid.UUID,
    body: QuoteRespond,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Accept or reject a sent quote (buyer)."""
    svc = QuoteService(db)
    quote = await svc.respond_to_quote(
        quote_id=quote_id,
        user_id=user.id,
        action=body.action,
        reason=body.reason,
        expected_status=body.expected_status,
    )
    return QuoteResponse.from_quote(quote, utcnow())


@quote_router.get(
    "/{quote_id}/transitions",
    response_model=list[QuoteTransitionResponse],
)
async def get_quote_transitions(
    quote_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = QuoteService(db)
    transitions = await svc.get_transitions(quote_id, user.id)
    return [QuoteTransitionResponse.model_validate(t) for t in transitions]


# ---------------------------------------------------------------------------
# Eligibility & purchase authorization
# ---------------------------------------------------------------------------


@eligibility_router.get(
    "/items/{item_id}/approved-scopes",
    response_model=ApprovedScopesResponse,
)
async def get_approved_scopes(
    item_id: uuid.UUID,
    conversation_id: uuid.UUID | None = Query(None),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Options of an item for which the calling buyer holds an approved design."""
    svc = DesignApprovalService(db)
    scope_keys = await svc.get_approved_scopes(item_id, user.id, conversation_id=conversation_id)
    return ApprovedScopesResponse(item_id=item_id, scope_keys=scope_keys)


@eligibility_router.get("/eligibility", response_model=EligibilityResponse)
async def evaluate_eligibility(
    item_id: uuid.UUID = Query(...),
    conversation_id: uuid.UUID | None = Query(None),
    scope_key: str | None = Query(None, max_length=64),
    variant_id: str | None = Query(None, max_length=64),
    package_id: str | None = Query(None, max_length=64),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Read-only eligibility for one option."""
    svc = WorkflowService(db)
    eligibility = await svc.evaluate_eligibility(
        item_id,
        user.id,
        conversation_id=conversation_id,
        scope_key=scope_key,
        variant_id=variant_id,
        package_id=package_id,
    )
    return EligibilityResponse.from_eligibility(eligibility)


@eligibility_router.post(
    "/purchase-authorizations",
    response_model=PurchaseAuthorizationResponse,
    responses=_WRITE_ERRORS,
)
@limiter.limit(WRITE_LIMIT)
async def authorize_purchase(
    request: Request,
    body: PurchaseAuthorizationRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Re-check eligibility at checkout and return the amount to charge."""
    svc = WorkflowService(db)
    authorization = await svc.authorize_purchase(
        body.item_id,
        user.id,
        conversation_id=body.conversation_id,
        scope_key=body.scope_key,
        variant_id=body.variant_id,
        package_id=body.package_id,
    )
    return PurchaseAuthorizationResponse.model_validate(authorization)
