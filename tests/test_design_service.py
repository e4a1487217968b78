"""Tests for DesignApprovalService against an in-memory database."""

import uuid
from unittest.mock import patch

import pytest

from src.config import settings
from src.exceptions import (
    ConcurrentModificationException,
    DuplicateActiveSubmissionException,
    ForbiddenException,
    InvalidStateTransitionException,
    NotFoundException,
    ValidationException,
)
from src.models.enums import ActorRole, DesignApprovalAction, DesignApprovalStatus, ItemKind
from src.modules.events.outbox_service import OutboxService
from src.modules.workflow.design_service import DesignApprovalService


async def _submit(db_session, listing, files, **scope):
    svc = DesignApprovalService(db_session)
    if not scope and listing.options:
        scope = listing.option_ids()
    return await svc.create_design_approval(
        conversation_id=listing.conversation.id,
        user_id=listing.buyer_id,
        files=files,
        **scope,
    )


class TestCreateDesignApproval:
    @pytest.mark.asyncio
    async def test_buyer_upload_is_pending(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session, requires_design_approval=True)

        approval = await _submit(db_session, listing, design_files())

        assert approval.status == DesignApprovalStatus.PENDING
        assert approval.scope_key == listing.scope_keys[0]
        assert approval.buyer_id == listing.buyer_id
        assert approval.seller_id == listing.seller_id
        assert approval.revision == 1
        assert approval.approved_at is None

    @pytest.mark.asyncio
    async def test_upload_records_submission_transition_and_event(
        self, db_session, make_listing, design_files
    ):
        listing = await make_listing(db_session)
        approval = await _submit(db_session, listing, design_files(count=2))
        svc = DesignApprovalService(db_session)

        submissions = await svc.list_submissions(approval.id, listing.buyer_id)
        transitions = await svc.get_transitions(approval.id, listing.seller_id)
        events = await OutboxService(db_session).get_events_for_aggregate(
            "design_approval", str(approval.id)
        )

        assert [s.revision for s in submissions] == [1]
        assert len(submissions[0].files) == 2
        assert len(transitions) == 1
        assert transitions[0].from_status is None
        assert transitions[0].to_status == DesignApprovalStatus.PENDING
        assert transitions[0].actor_role == ActorRole.BUYER
        assert [e.event_type for e in events] == ["design.submitted"]
        assert events[0].payload["scope_key"] == approval.scope_key

    @pytest.mark.asyncio
    async def test_no_option_selected_is_custom_scope(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session, kind=ItemKind.SERVICE, option_prices=())
        approval = await _submit(db_session, listing, design_files())
        assert approval.scope_key == "custom"

    @pytest.mark.asyncio
    async def test_second_pending_upload_for_same_scope_rejected(
        self, db_session, make_listing, design_files
    ):
        listing = await make_listing(db_session)
        await _submit(db_session, listing, design_files())

        with pytest.raises(DuplicateActiveSubmissionException, match="already waiting"):
            await _submit(db_session, listing, design_files("second.png"))

    @pytest.mark.asyncio
    async def test_other_scope_is_independent(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        first = await _submit(db_session, listing, design_files())
        second = await _submit(
            db_session, listing, design_files(), variant_id=listing.options[1].id
        )
        assert first.scope_key != second.scope_key
        assert second.status == DesignApprovalStatus.PENDING

    @pytest.mark.asyncio
    async def test_new_upload_supersedes_changes_requested(
        self, db_session, make_listing, design_files
    ):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        first = await _submit(db_session, listing, design_files())
        await svc.set_design_approval_status(
            first.id, listing.seller_id, DesignApprovalAction.REQUEST_CHANGES, notes="crop it"
        )

        second = await _submit(db_session, listing, design_files("v2.png"))

        refreshed = await svc.get_design_approval(first.id, listing.buyer_id)
        assert refreshed.status == DesignApprovalStatus.SUPERSEDED
        assert second.status == DesignApprovalStatus.PENDING

    @pytest.mark.asyncio
    async def test_seller_cannot_upload(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        with pytest.raises(ForbiddenException):
            await svc.create_design_approval(
                conversation_id=listing.conversation.id,
                user_id=listing.seller_id,
                files=design_files(),
            )

    @pytest.mark.asyncio
    async def test_outsider_cannot_upload(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        with pytest.raises(ForbiddenException, match="participant"):
            await svc.create_design_approval(
                conversation_id=listing.conversation.id,
                user_id=uuid.uuid4(),
                files=design_files(),
            )

    @pytest.mark.asyncio
    async def test_empty_file_set_rejected(self, db_session, make_listing):
        listing = await make_listing(db_session)
        with pytest.raises(ValidationException):
            await _submit(db_session, listing, [])

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, db_session, design_files):
        svc = DesignApprovalService(db_session)
        with pytest.raises(NotFoundException):
            await svc.create_design_approval(
                conversation_id=uuid.uuid4(), user_id=uuid.uuid4(), files=design_files()
            )

    @pytest.mark.asyncio
    async def test_item_must_match_conversation(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        with pytest.raises(NotFoundException, match="not part of conversation"):
            await _submit(db_session, listing, design_files(), item_id=uuid.uuid4())


class TestSellerDecisions:
    @pytest.mark.asyncio
    async def test_approve_sets_approved_at(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session, requires_design_approval=True)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files())

        approved = await svc.set_design_approval_status(
            approval.id, listing.seller_id, DesignApprovalAction.APPROVE
        )

        assert approved.status == DesignApprovalStatus.APPROVED
        assert approved.approved_at is not None

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files())

        with pytest.raises(ValidationException, match="reason"):
            await svc.set_design_approval_status(
                approval.id, listing.seller_id, DesignApprovalAction.REJECT, notes=""
            )

    @pytest.mark.asyncio
    async def test_reject_stores_reason(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files())

        rejected = await svc.set_design_approval_status(
            approval.id, listing.seller_id, DesignApprovalAction.REJECT, notes="Off brand"
        )

        assert rejected.status == DesignApprovalStatus.REJECTED
        assert rejected.seller_notes == "Off brand"

    @pytest.mark.asyncio
    async def test_buyer_cannot_approve(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files())

        with pytest.raises(ForbiddenException):
            await svc.set_design_approval_status(
                approval.id, listing.buyer_id, DesignApprovalAction.APPROVE
            )

    @pytest.mark.asyncio
    async def test_resubmit_is_not_a_seller_decision(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files())

        with pytest.raises(ValidationException, match="not a seller decision"):
            await svc.set_design_approval_status(
                approval.id, listing.seller_id, DesignApprovalAction.RESUBMIT
            )

    @pytest.mark.asyncio
    async def test_approved_design_cannot_be_rejected(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files())
        await svc.set_design_approval_status(
            approval.id, listing.seller_id, DesignApprovalAction.APPROVE
        )

        with pytest.raises(InvalidStateTransitionException, match="approved"):
            await svc.set_design_approval_status(
                approval.id, listing.seller_id, DesignApprovalAction.REJECT, notes="changed my mind"
            )

    @pytest.mark.asyncio
    async def test_stale_expected_status_is_concurrent_modification(
        self, db_session, make_listing, design_files
    ):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files())
        await svc.set_design_approval_status(
            approval.id, listing.seller_id, DesignApprovalAction.START_REVIEW
        )

        with pytest.raises(ConcurrentModificationException) as exc_info:
            await svc.set_design_approval_status(
                approval.id,
                listing.seller_id,
                DesignApprovalAction.APPROVE,
                expected_status=DesignApprovalStatus.PENDING,
            )
        fields = {d["field"]: d["message"] for d in exc_info.value.details}
        assert fields["status"] == "under_review"
        assert fields["expected_status"] == "pending"

    @pytest.mark.asyncio
    async def test_each_decision_bumps_version(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files())
        initial = approval.version

        await svc.set_design_approval_status(
            approval.id, listing.seller_id, DesignApprovalAction.START_REVIEW
        )

        assert approval.version == initial + 1


class TestResubmitDesign:
    @pytest.mark.asyncio
    async def test_changes_requested_then_resubmit_returns_to_review(
        self, db_session, make_listing, design_files
    ):
        listing = await make_listing(db_session, requires_design_approval=True, requires_quote=True)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files("dark.png"))

        changed = await svc.set_design_approval_status(
            approval.id, listing.seller_id, DesignApprovalAction.REQUEST_CHANGES, notes="too dark"
        )
        assert changed.status == DesignApprovalStatus.CHANGES_REQUESTED
        assert changed.seller_notes == "too dark"

        resubmitted = await svc.resubmit_design(
            approval.id, listing.buyer_id, design_files("light.png")
        )

        assert resubmitted.status == DesignApprovalStatus.UNDER_REVIEW
        assert resubmitted.revision == 2
        assert resubmitted.files[0]["filename"] == "light.png"

        submissions = await svc.list_submissions(approval.id, listing.buyer_id)
        assert [s.revision for s in submissions] == [1, 2]
        assert submissions[0].files[0]["filename"] == "dark.png"

        transitions = await svc.get_transitions(approval.id, listing.buyer_id)
        assert [t.action for t in transitions] == [
            DesignApprovalAction.SUBMIT,
            DesignApprovalAction.REQUEST_CHANGES,
            DesignApprovalAction.RESUBMIT,
            DesignApprovalAction.START_REVIEW,
        ]
        assert transitions[-1].actor_role == ActorRole.SYSTEM

    @pytest.mark.asyncio
    async def test_without_auto_review_stays_resubmitted(
        self, db_session, make_listing, design_files
    ):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files())
        await svc.set_design_approval_status(
            approval.id, listing.seller_id, DesignApprovalAction.REQUEST_CHANGES, notes="resize"
        )

        with patch.object(settings, "design_resubmission_auto_review", False):
            resubmitted = await svc.resubmit_design(approval.id, listing.buyer_id, design_files())

        assert resubmitted.status == DesignApprovalStatus.RESUBMITTED

    @pytest.mark.asyncio
    async def test_resubmit_pending_design_is_invalid(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files())

        with pytest.raises(InvalidStateTransitionException):
            await svc.resubmit_design(approval.id, listing.buyer_id, design_files())

    @pytest.mark.asyncio
    async def test_seller_cannot_resubmit(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files())
        await svc.set_design_approval_status(
            approval.id, listing.seller_id, DesignApprovalAction.REQUEST_CHANGES, notes="resize"
        )

        with pytest.raises(ForbiddenException):
            await svc.resubmit_design(approval.id, listing.seller_id, design_files())


class TestApprovalHistory:
    @pytest.mark.asyncio
    async def test_new_approval_supersedes_earlier_as_current(
        self, db_session, make_listing, design_files
    ):
        listing = await make_listing(db_session, requires_design_approval=True)
        svc = DesignApprovalService(db_session)
        first = await _submit(db_session, listing, design_files("v1.png"))
        await svc.set_design_approval_status(
            first.id, listing.seller_id, DesignApprovalAction.APPROVE
        )
        second = await _submit(db_session, listing, design_files("v2.png"))
        await svc.set_design_approval_status(
            second.id, listing.seller_id, DesignApprovalAction.APPROVE
        )

        items, total = await svc.list_design_approvals(
            listing.conversation.id, listing.buyer_id, status=DesignApprovalStatus.APPROVED
        )
        library, _ = await svc.get_design_library(listing.buyer_id)

        assert total == 2
        assert {a.id for a in items} == {first.id, second.id}
        assert library[0].id == second.id
        assert second.approved_at >= first.approved_at

    @pytest.mark.asyncio
    async def test_approved_scopes(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        approval = await _submit(db_session, listing, design_files())
        await _submit(db_session, listing, design_files(), variant_id=listing.options[1].id)
        await svc.set_design_approval_status(
            approval.id, listing.seller_id, DesignApprovalAction.APPROVE
        )

        scopes = await svc.get_approved_scopes(listing.item.id, listing.buyer_id)

        assert scopes == [listing.scope_keys[0]]
        assert await svc.get_approved_scopes(listing.item.id, uuid.uuid4()) == []


class TestCopyDesignToScope:
    @pytest.mark.asyncio
    async def test_copy_creates_approved_design(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session, requires_design_approval=True)
        svc = DesignApprovalService(db_session)
        source = await _submit(db_session, listing, design_files())
        await svc.set_design_approval_status(
            source.id, listing.seller_id, DesignApprovalAction.APPROVE
        )

        copy = await svc.copy_design_to_scope(
            source.id, listing.buyer_id, variant_id=listing.options[1].id
        )

        assert copy.id != source.id
        assert copy.scope_key == listing.scope_keys[1]
        assert copy.status == DesignApprovalStatus.APPROVED
        assert copy.copied_from_id == source.id
        assert copy.files == source.files

    @pytest.mark.asyncio
    async def test_copy_returns_existing_approval(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        source = await _submit(db_session, listing, design_files())
        other = await _submit(
            db_session, listing, design_files(), variant_id=listing.options[1].id
        )
        for approval in (source, other):
            await svc.set_design_approval_status(
                approval.id, listing.seller_id, DesignApprovalAction.APPROVE
            )

        result = await svc.copy_design_to_scope(
            source.id, listing.buyer_id, scope_key=listing.scope_keys[1]
        )

        assert result.id == other.id

    @pytest.mark.asyncio
    async def test_copy_needs_approved_source(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        source = await _submit(db_session, listing, design_files())

        with pytest.raises(ValidationException, match="Only approved"):
            await svc.copy_design_to_scope(
                source.id, listing.buyer_id, variant_id=listing.options[1].id
            )

    @pytest.mark.asyncio
    async def test_copy_to_same_scope_rejected(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        source = await _submit(db_session, listing, design_files())
        await svc.set_design_approval_status(
            source.id, listing.seller_id, DesignApprovalAction.APPROVE
        )

        with pytest.raises(ValidationException, match="must differ"):
            await svc.copy_design_to_scope(
                source.id, listing.buyer_id, scope_key=source.scope_key
            )

    @pytest.mark.asyncio
    async def test_seller_cannot_copy(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session)
        svc = DesignApprovalService(db_session)
        source = await _submit(db_session, listing, design_files())
        await svc.set_design_approval_status(
            source.id, listing.seller_id, DesignApprovalAction.APPROVE
        )

        with pytest.raises(ForbiddenException):
            await svc.copy_design_to_scope(
                source.id, listing.seller_id, variant_id=listing.options[1].id
            )
