"""Design approval service: upload, seller review, resubmission, copy, history."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.base import utcnow
from src.exceptions import NotFoundException, ValidationException
from src.models.design_approval import DesignApproval, DesignSubmission
from src.models.design_approval_transition import DesignApprovalTransition
from src.models.enums import ActorRole, DesignApprovalAction, DesignApprovalStatus
from src.modules.events.outbox_service import OutboxService
from src.modules.workflow import design_lifecycle
from src.modules.workflow.catalog import CatalogReader
from src.modules.workflow.concurrency import check_expected_status, flush_or_conflict
from src.modules.workflow.constants import DESIGN_ACTION_EVENTS, SELLER_DESIGN_ACTIONS
from src.modules.workflow.scope import resolve_requested_scope

logger = logging.getLogger(__name__)

_LABEL = "Design approval"


class DesignApprovalService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.catalog = CatalogReader(db)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_design_approval(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        files: list[Any],
        scope_key: str | None = None,
        variant_id: uuid.UUID | str | None = None,
        package_id: uuid.UUID | str | None = None,
        item_id: uuid.UUID | None = None,
    ) -> DesignApproval:
        """Upload a design for one option of the conversation's item.

        Validates:
        - the caller is the conversation's buyer
        - the option belongs to the item
        - the file set is non-empty
        - no design for the same option is waiting on the seller

        A ``changes_requested`` design for the same option is superseded.
        """
        conversation, item = await self.catalog.get_conversation_item(conversation_id, item_id)
        role = conversation.role_of(user_id)
        design_lifecycle.check_actor(DesignApprovalAction.SUBMIT, role)

        scope = resolve_requested_scope(
            item, scope_key=scope_key, variant_id=variant_id, package_id=package_id
        )
        file_set = design_lifecycle.normalize_files(files, settings.design_max_files)

        existing = await self._list_for_scope(conversation.id, item.id, scope)
        for previous in design_lifecycle.check_can_create(existing):
            await self._apply_transition(
                previous,
                DesignApprovalAction.SUPERSEDE,
                actor_id=user_id,
                actor_role=role,
                reason="Replaced by a new upload",
            )

        approval = DesignApproval(
            id=uuid.uuid4(),
            conversation_id=conversation.id,
            item_id=item.id,
            item_kind=item.kind,
            scope_key=scope,
            buyer_id=conversation.buyer_id,
            seller_id=conversation.seller_id,
            files=file_set,
            status=DesignApprovalStatus.PENDING,
            revision=1,
        )
        self.db.add(approval)
        await flush_or_conflict(self.db, approval, _LABEL)

        self.db.add(
            DesignSubmission(
                design_approval_id=approval.id,
                revision=1,
                files=file_set,
                submitted_by=user_id,
            )
        )
        await self._record_transition(
            approval,
            from_status=None,
            action=DesignApprovalAction.SUBMIT,
            actor_id=user_id,
            actor_role=role,
        )
        await self._publish(approval, DesignApprovalAction.SUBMIT, from_status=None)

        logger.info(
            "Design approval %s submitted for conversation %s scope %s (%d files)",
            approval.id, conversation.id, scope, len(file_set),
        )
        return approval

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_design_approval(
        self, approval_id: uuid.UUID, user_id: uuid.UUID
    ) -> DesignApproval:
        approval = await self._get_approval(approval_id)
        conversation = await self.catalog.get_conversation(approval.conversation_id)
        conversation.role_of(user_id)
        return approval

    async def list_design_approvals(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        scope_key: str | None = None,
        status: DesignApprovalStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[DesignApproval], int]:
        conversation = await self.catalog.get_conversation(conversation_id)
        conversation.role_of(user_id)

        query = select(DesignApproval).where(DesignApproval.conversation_id == conversation_id)
        count_query = (
            select(func.count())
            .select_from(DesignApproval)
            .where(DesignApproval.conversation_id == conversation_id)
        )
        if scope_key is not None:
            query = query.where(DesignApproval.scope_key == scope_key)
            count_query = count_query.where(DesignApproval.scope_key == scope_key)
        if status is not None:
            query = query.where(DesignApproval.status == status)
            count_query = count_query.where(DesignApproval.status == status)

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(DesignApproval.created_at.asc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total

    async def list_submissions(
        self, approval_id: uuid.UUID, user_id: uuid.UUID
    ) -> list[DesignSubmission]:
        """File sets submitted for a design, first upload first."""
        await self.get_design_approval(approval_id, user_id)
        result = await self.db.execute(
            select(DesignSubmission)
            .where(DesignSubmission.design_approval_id == approval_id)
            .order_by(DesignSubmission.revision.asc())
        )
        return list(result.scalars().all())

    async def get_transitions(
        self, approval_id: uuid.UUID, user_id: uuid.UUID
    ) -> list[DesignApprovalTransition]:
        """Get the full transition history for a design approval."""
        await self.get_design_approval(approval_id, user_id)
        result = await self.db.execute(
            select(DesignApprovalTransition)
            .where(DesignApprovalTransition.design_approval_id == approval_id)
            .order_by(DesignApprovalTransition.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_design_library(
        self,
        buyer_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[DesignApproval], int]:
        """Approved designs of a buyer across all conversations, newest first."""
        filters = (
            DesignApproval.buyer_id == buyer_id,
            DesignApproval.status == DesignApprovalStatus.APPROVED,
        )
        total = (
            await self.db.execute(select(func.count()).select_from(DesignApproval).where(*filters))
        ).scalar() or 0
        result = await self.db.execute(
            select(DesignApproval)
            .where(*filters)
            .order_by(DesignApproval.approved_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def get_approved_scopes(
        self,
        item_id: uuid.UUID,
        buyer_id: uuid.UUID,
        conversation_id: uuid.UUID | None = None,
    ) -> list[str]:
        """Scope keys of an item for which the buyer holds an approved design."""
        query = (
            select(DesignApproval.scope_key, func.min(DesignApproval.approved_at))
            .where(
                DesignApproval.item_id == item_id,
                DesignApproval.buyer_id == buyer_id,
                DesignApproval.status == DesignApprovalStatus.APPROVED,
            )
            .group_by(DesignApproval.scope_key)
            .order_by(func.min(DesignApproval.approved_at).asc())
        )
        if conversation_id is not None:
            query = query.where(DesignApproval.conversation_id == conversation_id)
        result = await self.db.execute(query)
        return [row[0] for row in result.all()]

    # ------------------------------------------------------------------
    # Seller decisions
    # ------------------------------------------------------------------

    async def set_design_approval_status(
        self,
        approval_id: uuid.UUID,
        user_id: uuid.UUID,
        action: DesignApprovalAction,
        notes: str | None = None,
        expected_status: DesignApprovalStatus | None = None,
    ) -> DesignApproval:
        """Apply a seller decision: start review, approve, reject or request changes."""
        if action not in SELLER_DESIGN_ACTIONS:
            raise ValidationException(
                f"'{action.value}' is not a seller decision",
                details=[{"field": "action", "message": "must be one of "
                          + ", ".join(sorted(a.value for a in SELLER_DESIGN_ACTIONS))}],
            )
        approval = await self._get_approval(approval_id)
        conversation = await self.catalog.get_conversation(approval.conversation_id)
        role = conversation.role_of(user_id)

        check_expected_status(approval, expected_status, _LABEL)
        cleaned = design_lifecycle.require_seller_input(action, notes)
        await self._apply_transition(
            approval,
            action,
            actor_id=user_id,
            actor_role=role,
            reason=cleaned,
            notes=cleaned,
        )
        return approval

    # ------------------------------------------------------------------
    # Buyer resubmission
    # ------------------------------------------------------------------

    async def resubmit_design(
        self,
        approval_id: uuid.UUID,
        user_id: uuid.UUID,
        files: list[Any],
        expected_status: DesignApprovalStatus | None = None,
    ) -> DesignApproval:
        """Submit a new file set after the seller requested changes.

        The previous files stay in the submission history. With automatic
        review enabled the design goes straight back to ``under_review``.
        """
        approval = await self._get_approval(approval_id)
        conversation = await self.catalog.get_conversation(approval.conversation_id)
        role = conversation.role_of(user_id)

        check_expected_status(approval, expected_status, _LABEL)
        design_lifecycle.next_status(approval.status, DesignApprovalAction.RESUBMIT, role)
        file_set = design_lifecycle.normalize_files(files, settings.design_max_files)

        approval.files = file_set
        approval.revision += 1
        await self._apply_transition(
            approval,
            DesignApprovalAction.RESUBMIT,
            actor_id=user_id,
            actor_role=role,
        )
        self.db.add(
            DesignSubmission(
                design_approval_id=approval.id,
                revision=approval.revision,
                files=file_set,
                submitted_by=user_id,
            )
        )
        await self.db.flush()

        if settings.design_resubmission_auto_review:
            await self._apply_transition(
                approval,
                DesignApprovalAction.START_REVIEW,
                actor_id=None,
                actor_role=ActorRole.SYSTEM,
                reason="Resubmitted design queued for review",
            )
        return approval

    # ------------------------------------------------------------------
    # Copy to another option
    # ------------------------------------------------------------------

    async def copy_design_to_scope(
        self,
        approval_id: uuid.UUID,
        user_id: uuid.UUID,
        scope_key: str | None = None,
        variant_id: uuid.UUID | str | None = None,
        package_id: uuid.UUID | str | None = None,
    ) -> DesignApproval:
        """Reuse an approved design for another option of the same item.

        The copy is created already approved. If the target option has an
        approved design already, that design is returned unchanged.
        """
        source = await self._get_approval(approval_id)
        conversation, item = await self.catalog.get_conversation_item(
            source.conversation_id, source.item_id
        )
        role = conversation.role_of(user_id)
        design_lifecycle.check_actor(DesignApprovalAction.COPY, role)

        if source.status != DesignApprovalStatus.APPROVED:
            raise ValidationException(
                "Only approved designs can be copied",
                context={"scope_key": source.scope_key, "status": source.status},
            )
        target_scope = resolve_requested_scope(
            item, scope_key=scope_key, variant_id=variant_id, package_id=package_id
        )
        if target_scope == source.scope_key:
            raise ValidationException(
                "Target option must differ from the design's option",
                context={"scope_key": target_scope},
            )

        existing = await self._list_for_scope(conversation.id, item.id, target_scope)
        current = design_lifecycle.latest_approved(existing)
        if current is not None:
            logger.info(
                "Scope %s already has approved design %s; copy of %s skipped",
                target_scope, current.id, source.id,
            )
            return current

        now = utcnow()
        copy = DesignApproval(
            id=uuid.uuid4(),
            conversation_id=conversation.id,
            item_id=item.id,
            item_kind=item.kind,
            scope_key=target_scope,
            buyer_id=conversation.buyer_id,
            seller_id=conversation.seller_id,
            files=list(source.files),
            status=DesignApprovalStatus.APPROVED,
            seller_notes=source.seller_notes,
            approved_at=now,
            revision=1,
            copied_from_id=source.id,
        )
        self.db.add(copy)
        await flush_or_conflict(self.db, copy, _LABEL)
        self.db.add(
            DesignSubmission(
                design_approval_id=copy.id,
                revision=1,
                files=copy.files,
                submitted_by=user_id,
            )
        )
        await self._record_transition(
            copy,
            from_status=None,
            action=DesignApprovalAction.COPY,
            actor_id=user_id,
            actor_role=role,
            reason=f"Copied from design {source.id}",
        )
        await self._publish(copy, DesignApprovalAction.COPY, from_status=None)

        logger.info(
            "Design approval %s copied from %s to scope %s", copy.id, source.id, target_scope
        )
        return copy

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_approval(self, approval_id: uuid.UUID) -> DesignApproval:
        result = await self.db.execute(
            select(DesignApproval).where(DesignApproval.id == approval_id)
        )
        approval = result.scalar_one_or_none()
        if approval is None:
            raise NotFoundException(f"Design approval {approval_id} not found")
        return approval

    async def _list_for_scope(
        self, conversation_id: uuid.UUID, item_id: uuid.UUID, scope_key: str
    ) -> list[DesignApproval]:
        result = await self.db.execute(
            select(DesignApproval)
            .where(
                DesignApproval.conversation_id == conversation_id,
                DesignApproval.item_id == item_id,
                DesignApproval.scope_key == scope_key,
            )
            .order_by(DesignApproval.created_at.asc())
        )
        return list(result.scalars().all())

    async def _apply_transition(
        self,
        approval: DesignApproval,
        action: DesignApprovalAction,
        actor_id: uuid.UUID | None,
        actor_role: ActorRole,
        reason: str | None = None,
        notes: str | None = None,
    ) -> DesignApproval:
        """Validate and apply one state change, then log it and emit its event."""
        old_status = approval.status
        new_status = design_lifecycle.next_status(old_status, action, actor_role)

        approval.status = new_status
        if notes is not None:
            approval.seller_notes = notes
        if new_status == DesignApprovalStatus.APPROVED:
            approval.approved_at = utcnow()
        await flush_or_conflict(self.db, approval, _LABEL)

        await self._record_transition(
            approval,
            from_status=old_status,
            action=action,
            actor_id=actor_id,
            actor_role=actor_role,
            reason=reason,
        )
        await self._publish(approval, action, from_status=old_status, reason=reason)

        logger.info(
            "Design approval %s transitioned %s -> %s via %s",
            approval.id, old_status.value, new_status.value, action.value,
        )
        return approval

    async def _record_transition(
        self,
        approval: DesignApproval,
        from_status: DesignApprovalStatus | None,
        action: DesignApprovalAction,
        actor_id: uuid.UUID | None,
        actor_role: ActorRole,
        reason: str | None = None,
    ) -> None:
        self.db.add(
            DesignApprovalTransition(
                design_approval_id=approval.id,
                from_status=from_status,
                to_status=approval.status,
                action=action,
                actor_id=actor_id,
                actor_role=actor_role,
                reason=reason,
            )
        )
        await self.db.flush()

    async def _publish(
        self,
        approval: DesignApproval,
        action: DesignApprovalAction,
        from_status: DesignApprovalStatus | None,
        reason: str | None = None,
    ) -> None:
        outbox = OutboxService(self.db)
        await outbox.publish_event(
            event_type=DESIGN_ACTION_EVENTS[action],
            aggregate_type="design_approval",
            aggregate_id=str(approval.id),
            payload={
                "design_approval_id": str(approval.id),
                "conversation_id": str(approval.conversation_id),
                "item_id": str(approval.item_id),
                "scope_key": approval.scope_key,
                "buyer_id": str(approval.buyer_id),
                "seller_id": str(approval.seller_id),
                "from_status": from_status.value if from_status else None,
                "to_status": approval.status.value,
                "revision": approval.revision,
                "reason": reason,
            },
        )

