"""Workflow module: per-option design approval and quote gating."""

from src.modules.workflow.design_service import DesignApprovalService
from src.modules.workflow.eligibility import Eligibility, evaluate
from src.modules.workflow.projection import WorkflowSummary, build_workflow_summary
from src.modules.workflow.quote_service import QuoteService
from src.modules.workflow.scope import resolve_scope_key
from src.modules.workflow.workflow_service import PurchaseAuthorization, WorkflowService

__all__ = [
    "DesignApprovalService",
    "Eligibility",
    "PurchaseAuthorization",
    "QuoteService",
    "WorkflowService",
    "WorkflowSummary",
    "build_workflow_summary",
    "evaluate",
    "resolve_scope_key",
]
