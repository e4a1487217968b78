"""Per-conversation workflow summary grouped by scope. Pure derivation."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.models.enums import DesignApprovalStatus, QuoteStatus
from src.modules.workflow.catalog import ItemSnapshot, OptionSnapshot
from src.modules.workflow.constants import CUSTOM_SCOPE
from src.modules.workflow.eligibility import Eligibility, evaluate
from src.modules.workflow.quote_lifecycle import effective_status


@dataclass(frozen=True)
class ScopeWorkflow:
    scope_key: str
    option: OptionSnapshot | None
    approvals: list[Any]
    quotes: list[Any]
    eligibility: Eligibility
    first_activity_at: datetime | None


@dataclass(frozen=True)
class OptionFlags:
    """Option list entry with markers for options that already saw activity."""

    scope_key: str
    option: OptionSnapshot | None
    has_approved_design: bool
    has_accepted_quote: bool
    has_activity: bool


@dataclass(frozen=True)
class WorkflowSummary:
    item: ItemSnapshot
    scopes: list[ScopeWorkflow]
    options: list[OptionFlags]
    default_scope_key: str
    evaluated_at: datetime
    _by_key: dict[str, ScopeWorkflow] = field(default_factory=dict, repr=False)

    def get(self, scope_key: str) -> ScopeWorkflow | None:
        return self._by_key.get(scope_key)

    @property
    def scope_keys(self) -> list[str]:
        return [s.scope_key for s in self.scopes]


def _created(record: Any) -> datetime:
    return record.created_at


def build_workflow_summary(
    item: ItemSnapshot,
    approvals: Iterable[Any],
    quotes: Iterable[Any],
    now: datetime,
) -> WorkflowSummary:
    """Group records by scope key, in order of each scope's earliest record.

    Every scope with at least one record gets its own eligibility. The option
    list covers all item options plus ``custom`` (when it has records, or when
    the item has no options) and flags those carrying an approved design or an
    accepted quote.
    """
    approvals = sorted(approvals, key=_created)
    quotes = sorted(quotes, key=_created)

    grouped: dict[str, tuple[list[Any], list[Any]]] = {}
    first_seen: dict[str, datetime] = {}
    for record in approvals:
        grouped.setdefault(record.scope_key, ([], []))[0].append(record)
    for record in quotes:
        grouped.setdefault(record.scope_key, ([], []))[1].append(record)
    for key, (scope_approvals, scope_quotes) in grouped.items():
        first_seen[key] = min(_created(r) for r in [*scope_approvals, *scope_quotes])

    scopes: list[ScopeWorkflow] = []
    for key in sorted(grouped, key=lambda k: first_seen[k]):
        scope_approvals, scope_quotes = grouped[key]
        scopes.append(
            ScopeWorkflow(
                scope_key=key,
                option=item.find_option(key),
                approvals=scope_approvals,
                quotes=scope_quotes,
                eligibility=evaluate(item, key, scope_approvals, scope_quotes, now),
                first_activity_at=first_seen[key],
            )
        )
    by_key = {s.scope_key: s for s in scopes}

    option_keys = [o.scope_key for o in item.options]
    if not item.has_options or CUSTOM_SCOPE in by_key:
        option_keys.append(CUSTOM_SCOPE)

    options: list[OptionFlags] = []
    for key in option_keys:
        scope = by_key.get(key)
        options.append(
            OptionFlags(
                scope_key=key,
                option=item.find_option(key),
                has_approved_design=scope is not None and any(
                    a.status == DesignApprovalStatus.APPROVED for a in scope.approvals
                ),
                has_accepted_quote=scope is not None and any(
                    effective_status(q, now) == QuoteStatus.ACCEPTED for q in scope.quotes
                ),
                has_activity=scope is not None,
            )
        )

    if scopes:
        default_scope_key = scopes[0].scope_key
    elif item.has_options:
        default_scope_key = item.options[0].scope_key
    else:
        default_scope_key = CUSTOM_SCOPE

    return WorkflowSummary(
        item=item,
        scopes=scopes,
        options=options,
        default_scope_key=default_scope_key,
        evaluated_at=now,
        _by_key=by_key,
    )
