"""Design approval state machine: transitions, actors and required input.

Everything here is pure; ``DesignApprovalService`` calls these checks before
it touches the database.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from src.exceptions import (
    DuplicateActiveSubmissionException,
    ForbiddenException,
    InvalidStateTransitionException,
    ValidationException,
)
from src.models.enums import ActorRole, DesignApprovalAction, DesignApprovalStatus
from src.modules.workflow.constants import (
    DESIGN_ACTION_ACTORS,
    DESIGN_TERMINAL_STATUSES,
    DESIGN_TRANSITIONS,
    PENDING_SELLER_ACTION_STATUSES,
)


def check_actor(action: DesignApprovalAction, actor_role: ActorRole) -> None:
    allowed = DESIGN_ACTION_ACTORS[action]
    if actor_role not in allowed:
        raise ForbiddenException(
            f"A {actor_role.value} cannot {action.value.replace('_', ' ')} a design",
            context={"action": action, "actor_role": actor_role},
        )


def next_status(
    current: DesignApprovalStatus,
    action: DesignApprovalAction,
    actor_role: ActorRole,
) -> DesignApprovalStatus:
    """Target status of ``action`` from ``current``.

    Raises ForbiddenException for the wrong actor and
    InvalidStateTransitionException when the action is not allowed from the
    current status (including every action on a terminal record).
    """
    check_actor(action, actor_role)
    allowed = DESIGN_TRANSITIONS.get(current, {})
    if action not in allowed:
        raise InvalidStateTransitionException(
            f"Cannot {action.value.replace('_', ' ')} a design approval in status "
            f"'{current.value}'",
            context={"status": current, "action": action},
        )
    return allowed[action]


def require_seller_input(action: DesignApprovalAction, notes: str | None) -> str | None:
    """Validate the notes that accompany a seller decision.

    Rejecting needs a reason and requesting changes needs notes; approval
    notes are optional.
    """
    cleaned = notes.strip() if notes else None
    if action == DesignApprovalAction.REJECT and not cleaned:
        raise ValidationException(
            "A reason is required to reject a design",
            details=[{"field": "notes", "message": "must not be empty"}],
        )
    if action == DesignApprovalAction.REQUEST_CHANGES and not cleaned:
        raise ValidationException(
            "Notes are required to request changes",
            details=[{"field": "notes", "message": "must not be empty"}],
        )
    return cleaned or None


def normalize_files(files: Iterable[Any] | None, max_files: int) -> list[dict]:
    """Validate a submitted file set and return it as plain dicts.

    Accepts dicts or pydantic models. The set must be non-empty, within
    ``max_files``, and every entry needs a url, a filename and a positive size.
    """
    entries = [
        f.model_dump() if hasattr(f, "model_dump") else dict(f)
        for f in (files or [])
    ]
    if not entries:
        raise ValidationException(
            "At least one design file is required",
            details=[{"field": "files", "message": "must not be empty"}],
        )
    if len(entries) > max_files:
        raise ValidationException(
            f"At most {max_files} design files may be submitted at once",
            details=[{"field": "files", "message": f"more than {max_files} files"}],
        )

    normalized: list[dict] = []
    for index, entry in enumerate(entries):
        url = str(entry.get("url") or "").strip()
        filename = str(entry.get("filename") or "").strip()
        size = entry.get("size")
        if not url or not filename:
            raise ValidationException(
                "Every design file needs a url and a filename",
                details=[{"field": f"files.{index}", "message": "url and filename are required"}],
            )
        if not isinstance(size, int) or isinstance(size, bool) or size <= 0:
            raise ValidationException(
                "Design file size must be a positive integer",
                details=[{"field": f"files.{index}.size", "message": "must be greater than 0"}],
            )
        normalized.append({
            "url": url,
            "filename": filename,
            "size": size,
            "mime_type": entry.get("mime_type"),
        })
    return normalized


def check_can_create(existing: Sequence[Any]) -> list[Any]:
    """Ensure a new upload is allowed for a triple.

    ``existing`` holds the triple's design approvals. Returns the
    ``changes_requested`` records the new upload supersedes.
    """
    for record in existing:
        if record.status in PENDING_SELLER_ACTION_STATUSES:
            raise DuplicateActiveSubmissionException(
                "A design for this option is already waiting for the seller",
                context={
                    "scope_key": record.scope_key,
                    "design_approval_id": record.id,
                    "status": record.status,
                },
            )
    return [r for r in existing if r.status == DesignApprovalStatus.CHANGES_REQUESTED]


def is_terminal(status: DesignApprovalStatus) -> bool:
    return status in DESIGN_TERMINAL_STATUSES


def latest_approved(approvals: Iterable[Any]) -> Any | None:
    """The approved design with the latest ``approved_at`` (latest approved wins)."""
    approved = [
        a for a in approvals
        if a.status == DesignApprovalStatus.APPROVED and a.approved_at is not None
    ]
    if not approved:
        return None
    return max(approved, key=lambda a: a.approved_at)
