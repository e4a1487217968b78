"""Tests for QuoteService: requests, issue/update, buyer responses and expiry."""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from src.database.base import utcnow
from src.exceptions import (
    ConcurrentModificationException,
    DesignApprovalRequiredException,
    DuplicateActiveSubmissionException,
    ForbiddenException,
    InvalidStateTransitionException,
    ValidationException,
)
from src.models.design_approval import DesignApproval
from src.models.enums import (
    ActorRole,
    DesignApprovalAction,
    DesignApprovalStatus,
    QuoteAction,
    QuoteStatus,
)
from src.models.quote import Quote
from src.modules.events.outbox_service import OutboxService
from src.modules.workflow.concurrency import flush_or_conflict
from src.modules.workflow.design_service import DesignApprovalService
from src.modules.workflow.quote_service import QuoteService


async def _approve_design(db_session, listing, design_files):
    svc = DesignApprovalService(db_session)
    approval = await svc.create_design_approval(
        conversation_id=listing.conversation.id,
        user_id=listing.buyer_id,
        files=design_files(),
        **listing.option_ids(),
    )
    return await svc.set_design_approval_status(
        approval.id, listing.seller_id, DesignApprovalAction.APPROVE
    )


async def _issue(db_session, listing, price="100.00", quantity=1, **kwargs):
    svc = QuoteService(db_session)
    return await svc.issue_quote(
        conversation_id=listing.conversation.id,
        user_id=listing.seller_id,
        quoted_price=Decimal(price),
        quantity=quantity,
        **{**listing.option_ids(), **kwargs},
    )


class TestIssueQuote:
    @pytest.mark.asyncio
    async def test_issue_requires_approved_design_when_both_required(
        self, db_session, make_listing, design_files
    ):
        listing = await make_listing(db_session, requires_design_approval=True, requires_quote=True)

        with pytest.raises(DesignApprovalRequiredException) as exc_info:
            await _issue(db_session, listing)
        assert exc_info.value.details == [
            {"field": "scope_key", "message": listing.scope_keys[0]}
        ]

    @pytest.mark.asyncio
    async def test_issue_without_design_when_only_quote_required(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_quote=True)
        quote = await _issue(db_session, listing)
        assert quote.status == QuoteStatus.SENT

    @pytest.mark.asyncio
    async def test_issue_after_approval_links_design(
        self, db_session, make_listing, design_files
    ):
        listing = await make_listing(db_session, requires_design_approval=True, requires_quote=True)
        approval = await _approve_design(db_session, listing, design_files)

        quote = await _issue(db_session, listing, price="100.00", quantity=2)

        assert quote.status == QuoteStatus.SENT
        assert quote.quoted_price == Decimal("100.00")
        assert quote.quantity == 2
        assert quote.revision == 1
        assert quote.linked_design_approval_id == approval.id

    @pytest.mark.asyncio
    async def test_default_expiry_is_seven_days(self, db_session, make_listing):
        listing = await make_listing(db_session)
        before = utcnow()

        quote = await _issue(db_session, listing)

        assert before + timedelta(days=7) <= quote.expires_at <= utcnow() + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_issue_again_updates_open_quote_in_place(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_quote=True)
        first = await _issue(db_session, listing, price="100.00")

        second = await _issue(db_session, listing, price="90.00", quantity=3, notes="bulk")

        assert second.id == first.id
        assert second.revision == 2
        assert second.quoted_price == Decimal("90.00")
        assert second.quantity == 3
        assert second.notes == "bulk"
        transitions = await QuoteService(db_session).get_transitions(first.id, listing.buyer_id)
        assert [t.action for t in transitions] == [QuoteAction.ISSUE, QuoteAction.REVISE]

    @pytest.mark.asyncio
    async def test_buyer_cannot_issue(self, db_session, make_listing):
        listing = await make_listing(db_session)
        svc = QuoteService(db_session)
        with pytest.raises(ForbiddenException):
            await svc.issue_quote(
                conversation_id=listing.conversation.id,
                user_id=listing.buyer_id,
                quoted_price=Decimal("10"),
            )

    @pytest.mark.asyncio
    async def test_non_positive_price_rejected(self, db_session, make_listing):
        listing = await make_listing(db_session)
        with pytest.raises(ValidationException, match="greater than 0"):
            await _issue(db_session, listing, price="0")

    @pytest.mark.asyncio
    async def test_zero_quantity_rejected(self, db_session, make_listing):
        listing = await make_listing(db_session)
        with pytest.raises(ValidationException, match="Quantity"):
            await _issue(db_session, listing, quantity=0)


class TestRequestQuote:
    @pytest.mark.asyncio
    async def test_request_needs_approved_design(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_design_approval=True, requires_quote=True)
        svc = QuoteService(db_session)

        with pytest.raises(DesignApprovalRequiredException):
            await svc.request_quote(
                listing.conversation.id, listing.buyer_id, **listing.option_ids()
            )

    @pytest.mark.asyncio
    async def test_seller_fulfils_buyer_request(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session, requires_design_approval=True, requires_quote=True)
        await _approve_design(db_session, listing, design_files)
        svc = QuoteService(db_session)

        requested = await svc.request_quote(
            listing.conversation.id,
            listing.buyer_id,
            quantity=5,
            notes="Need 5 for the team",
            **listing.option_ids(),
        )
        assert requested.status == QuoteStatus.REQUESTED
        assert requested.quoted_price is None
        assert requested.revision == 0

        sent = await _issue(db_session, listing, price="80.00", quantity=5)

        assert sent.id == requested.id
        assert sent.status == QuoteStatus.SENT
        assert sent.revision == 1
        assert sent.request_notes == "Need 5 for the team"

    @pytest.mark.asyncio
    async def test_second_request_while_open_rejected(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_quote=True)
        svc = QuoteService(db_session)
        await svc.request_quote(listing.conversation.id, listing.buyer_id, **listing.option_ids())

        with pytest.raises(DuplicateActiveSubmissionException, match="already open"):
            await svc.request_quote(
                listing.conversation.id, listing.buyer_id, **listing.option_ids()
            )

    @pytest.mark.asyncio
    async def test_request_after_expiry_stores_expiry(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_quote=True)
        old = await _issue(db_session, listing, expires_at=utcnow() - timedelta(hours=1))
        svc = QuoteService(db_session)

        new = await svc.request_quote(
            listing.conversation.id, listing.buyer_id, **listing.option_ids()
        )

        assert new.id != old.id
        assert old.status == QuoteStatus.EXPIRED
        transitions = await svc.get_transitions(old.id, listing.buyer_id)
        assert transitions[-1].action == QuoteAction.EXPIRE
        assert transitions[-1].actor_role == ActorRole.SYSTEM
        events = await OutboxService(db_session).get_events_for_aggregate("quote", str(old.id))
        assert [e.event_type for e in events] == ["quote.sent", "quote.expired"]

    @pytest.mark.asyncio
    async def test_seller_cannot_request(self, db_session, make_listing):
        listing = await make_listing(db_session)
        with pytest.raises(ForbiddenException):
            await QuoteService(db_session).request_quote(
                listing.conversation.id, listing.seller_id
            )


class TestRespondToQuote:
    @pytest.mark.asyncio
    async def test_accept(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_quote=True)
        quote = await _issue(db_session, listing)

        accepted = await QuoteService(db_session).respond_to_quote(
            quote.id, listing.buyer_id, QuoteAction.ACCEPT
        )

        assert accepted.status == QuoteStatus.ACCEPTED
        assert accepted.accepted_at is not None
        assert accepted.responded_at is not None

    @pytest.mark.asyncio
    async def test_accept_twice_is_invalid(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_quote=True)
        quote = await _issue(db_session, listing)
        svc = QuoteService(db_session)
        await svc.respond_to_quote(quote.id, listing.buyer_id, QuoteAction.ACCEPT)

        with pytest.raises(InvalidStateTransitionException):
            await svc.respond_to_quote(quote.id, listing.buyer_id, QuoteAction.ACCEPT)

    @pytest.mark.asyncio
    async def test_reject_accepted_is_invalid(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_quote=True)
        quote = await _issue(db_session, listing)
        svc = QuoteService(db_session)
        await svc.respond_to_quote(quote.id, listing.buyer_id, QuoteAction.ACCEPT)

        with pytest.raises(InvalidStateTransitionException):
            await svc.respond_to_quote(quote.id, listing.buyer_id, QuoteAction.REJECT)

    @pytest.mark.asyncio
    async def test_reject_stores_reason(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_quote=True)
        quote = await _issue(db_session, listing)

        rejected = await QuoteService(db_session).respond_to_quote(
            quote.id, listing.buyer_id, QuoteAction.REJECT, reason="  Too expensive "
        )

        assert rejected.status == QuoteStatus.REJECTED
        assert rejected.rejection_reason == "Too expensive"
        assert rejected.accepted_at is None

    @pytest.mark.asyncio
    async def test_expired_quote_cannot_be_accepted(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_quote=True)
        quote = await _issue(db_session, listing, expires_at=utcnow() - timedelta(minutes=1))

        with pytest.raises(InvalidStateTransitionException, match="expired"):
            await QuoteService(db_session).respond_to_quote(
                quote.id, listing.buyer_id, QuoteAction.ACCEPT
            )
        assert quote.status == QuoteStatus.SENT

    @pytest.mark.asyncio
    async def test_seller_cannot_accept(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_quote=True)
        quote = await _issue(db_session, listing)

        with pytest.raises(ForbiddenException):
            await QuoteService(db_session).respond_to_quote(
                quote.id, listing.seller_id, QuoteAction.ACCEPT
            )

    @pytest.mark.asyncio
    async def test_only_accept_or_reject(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_quote=True)
        quote = await _issue(db_session, listing)

        with pytest.raises(ValidationException, match="not a quote response"):
            await QuoteService(db_session).respond_to_quote(
                quote.id, listing.buyer_id, QuoteAction.EXPIRE
            )

    @pytest.mark.asyncio
    async def test_accept_rechecks_linked_design(self, db_session, make_listing, design_files):
        listing = await make_listing(db_session, requires_design_approval=True, requires_quote=True)
        approval = await _approve_design(db_session, listing, design_files)
        quote = await _issue(db_session, listing)
        await db_session.execute(
            update(DesignApproval)
            .where(DesignApproval.id == approval.id)
            .values(status=DesignApprovalStatus.REJECTED)
        )

        with pytest.raises(DesignApprovalRequiredException, match="no longer approved"):
            await QuoteService(db_session).respond_to_quote(
                quote.id, listing.buyer_id, QuoteAction.ACCEPT
            )

    @pytest.mark.asyncio
    async def test_expected_status_mismatch(self, db_session, make_listing):
        listing = await make_listing(db_session, requires_quote=True)
        quote = await _issue(db_session, listing)
        svc = QuoteService(db_session)
        await svc.respond_to_quote(quote.id, listing.buyer_id, QuoteAction.REJECT)

        with pytest.raises(ConcurrentModificationException):
            await svc.respond_to_quote(
                quote.id,
                listing.buyer_id,
                QuoteAction.ACCEPT,
                expected_status=QuoteStatus.SENT,
            )

    @pytest.mark.asyncio
    async def test_concurrent_response_detected_by_version(
        self, db_session, session_factory, make_listing
    ):
        listing = await make_listing(db_session, requires_quote=True)
        quote = await _issue(db_session, listing)
        await db_session.commit()

        async with session_factory() as other_session:
            await QuoteService(other_session).respond_to_quote(
                quote.id, listing.buyer_id, QuoteAction.ACCEPT
            )
            await other_session.commit()

        with pytest.raises(ConcurrentModificationException):
            await QuoteService(db_session).respond_to_quote(
                quote.id, listing.buyer_id, QuoteAction.REJECT
            )


class TestOpenQuoteUniqueness:
    @pytest.mark.asyncio
    async def test_second_open_quote_violates_scope_index(self, db_session, make_listing):
        listing = await make_listing(db_session)
        await _issue(db_session, listing)
        duplicate = Quote(
            id=uuid.uuid4(),
            conversation_id=listing.conversation.id,
            item_id=listing.item.id,
            item_kind=listing.item.kind,
            scope_key=listing.scope_keys[0],
            buyer_id=listing.buyer_id,
            seller_id=listing.seller_id,
            quantity=1,
            status=QuoteStatus.REQUESTED,
        )
        db_session.add(duplicate)

        with pytest.raises(DuplicateActiveSubmissionException):
            await flush_or_conflict(db_session, duplicate, "Quote")


class TestListQuotes:
    @pytest.mark.asyncio
    async def test_filter_by_scope_and_status(self, db_session, make_listing):
        listing = await make_listing(db_session)
        first = await _issue(db_session, listing)
        await _issue(db_session, listing, variant_id=str(listing.options[1].id))
        svc = QuoteService(db_session)
        await svc.respond_to_quote(first.id, listing.buyer_id, QuoteAction.ACCEPT)

        accepted, total = await svc.list_quotes(
            listing.conversation.id, listing.seller_id, status=QuoteStatus.ACCEPTED
        )
        scoped, scoped_total = await svc.list_quotes(
            listing.conversation.id, listing.buyer_id, scope_key=listing.scope_keys[1]
        )

        assert total == 1
        assert accepted[0].id == first.id
        assert scoped_total == 1
        assert scoped[0].scope_key == listing.scope_keys[1]

    @pytest.mark.asyncio
    async def test_outsider_cannot_list(self, db_session, make_listing):
        listing = await make_listing(db_session)
        with pytest.raises(ForbiddenException):
            await QuoteService(db_session).list_quotes(listing.conversation.id, uuid.uuid4())
