"""Workflow gating tables

Revision ID: 001
Revises: None
Create Date: 2026-10-17

Creates:
  - pgcrypto extension (gen_random_uuid)
  - listing_items, listing_options, conversations (read models)
  - design_approvals, design_submissions, design_approval_transitions
  - quotes, quote_transitions
  - event_outbox
  - workflow_preferences
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── 1. Extensions ───────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto";')

    # ── 2. listing_items ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE listing_items (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            kind VARCHAR(32) NOT NULL,
            seller_id UUID NOT NULL,
            name VARCHAR(255) NOT NULL,
            base_price NUMERIC(12, 2),
            requires_design_approval BOOLEAN NOT NULL DEFAULT false,
            requires_quote BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_listing_items_itemkind CHECK (kind IN ('product', 'service'))
        );
    """)
    op.execute("CREATE INDEX ix_listing_items_seller_id ON listing_items (seller_id);")

    # ── 3. listing_options ──────────────────────────────────────────────
    op.execute("""
        CREATE TABLE listing_options (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            item_id UUID NOT NULL REFERENCES listing_items(id) ON DELETE CASCADE,
            name VARCHAR(255) NOT NULL,
            price NUMERIC(12, 2) NOT NULL,
            position INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute(
        "CREATE INDEX ix_listing_options_item_id ON listing_options (item_id, position);"
    )

    # ── 4. conversations ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE conversations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            buyer_id UUID NOT NULL,
            seller_id UUID NOT NULL,
            item_id UUID NOT NULL REFERENCES listing_items(id) ON DELETE CASCADE,
            item_kind VARCHAR(32) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_conversations_itemkind CHECK (item_kind IN ('product', 'service'))
        );
    """)
    op.execute("CREATE INDEX ix_conversations_buyer_id ON conversations (buyer_id);")
    op.execute("CREATE INDEX ix_conversations_seller_id ON conversations (seller_id);")

    # ── 5. design_approvals ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE design_approvals (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            item_id UUID NOT NULL REFERENCES listing_items(id) ON DELETE CASCADE,
            item_kind VARCHAR(32) NOT NULL,
            scope_key VARCHAR(64) NOT NULL,
            buyer_id UUID NOT NULL,
            seller_id UUID NOT NULL,
            files JSONB NOT NULL,
            status VARCHAR(32) NOT NULL DEFAULT 'pending',
            seller_notes TEXT,
            approved_at TIMESTAMPTZ,
            revision INTEGER NOT NULL DEFAULT 1,
            copied_from_id UUID REFERENCES design_approvals(id) ON DELETE SET NULL,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_design_approvals_designapprovalstatus CHECK (
                status IN ('pending', 'under_review', 'changes_requested', 'resubmitted',
                           'approved', 'rejected', 'superseded')
            )
        );
    """)
    op.execute(
        "CREATE INDEX ix_design_approvals_conversation_id ON design_approvals (conversation_id);"
    )
    op.execute(
        "CREATE INDEX ix_design_approvals_scope "
        "ON design_approvals (conversation_id, item_id, scope_key);"
    )
    op.execute(
        "CREATE INDEX ix_design_approvals_buyer_status ON design_approvals (buyer_id, status);"
    )
    op.execute("""
        CREATE UNIQUE INDEX uq_design_approvals_pending_scope
        ON design_approvals (conversation_id, item_id, scope_key)
        WHERE status IN ('pending', 'under_review', 'resubmitted');
    """)

    # ── 6. design_submissions ───────────────────────────────────────────
    op.execute("""
        CREATE TABLE design_submissions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            design_approval_id UUID NOT NULL REFERENCES design_approvals(id) ON DELETE CASCADE,
            revision INTEGER NOT NULL,
            files JSONB NOT NULL,
            submitted_by UUID NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute(
        "CREATE UNIQUE INDEX uq_design_submissions_revision "
        "ON design_submissions (design_approval_id, revision);"
    )

    # ── 7. design_approval_transitions ──────────────────────────────────
    op.execute("""
        CREATE TABLE design_approval_transitions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            design_approval_id UUID NOT NULL REFERENCES design_approvals(id) ON DELETE CASCADE,
            from_status VARCHAR(32),
            to_status VARCHAR(32) NOT NULL,
            action VARCHAR(32) NOT NULL,
            actor_id UUID,
            actor_role VARCHAR(32) NOT NULL,
            reason TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute(
        "CREATE INDEX ix_design_approval_transitions_design_approval_id "
        "ON design_approval_transitions (design_approval_id);"
    )

    # ── 8. quotes ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE quotes (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            item_id UUID NOT NULL REFERENCES listing_items(id) ON DELETE CASCADE,
            item_kind VARCHAR(32) NOT NULL,
            scope_key VARCHAR(64) NOT NULL,
            buyer_id UUID NOT NULL,
            seller_id UUID NOT NULL,
            quoted_price NUMERIC(12, 2),
            quantity INTEGER NOT NULL DEFAULT 1,
            status VARCHAR(32) NOT NULL DEFAULT 'sent',
            expires_at TIMESTAMPTZ,
            notes TEXT,
            request_notes TEXT,
            rejection_reason TEXT,
            linked_design_approval_id UUID REFERENCES design_approvals(id) ON DELETE SET NULL,
            accepted_at TIMESTAMPTZ,
            responded_at TIMESTAMPTZ,
            revision INTEGER NOT NULL DEFAULT 0,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_quotes_quantity_positive CHECK (quantity >= 1),
            CONSTRAINT ck_quotes_quoted_price_positive
                CHECK (quoted_price IS NULL OR quoted_price > 0),
            CONSTRAINT ck_quotes_quotestatus CHECK (
                status IN ('requested', 'sent', 'accepted', 'rejected', 'expired')
            )
        );
    """)
    op.execute("CREATE INDEX ix_quotes_conversation_id ON quotes (conversation_id);")
    op.execute("CREATE INDEX ix_quotes_scope ON quotes (conversation_id, item_id, scope_key);")
    op.execute("CREATE INDEX ix_quotes_buyer_status ON quotes (buyer_id, status);")
    op.execute("""
        CREATE UNIQUE INDEX uq_quotes_open_scope
        ON quotes (conversation_id, item_id, scope_key)
        WHERE status IN ('requested', 'sent');
    """)

    # ── 9. quote_transitions ────────────────────────────────────────────
    op.execute("""
        CREATE TABLE quote_transitions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            quote_id UUID NOT NULL REFERENCES quotes(id) ON DELETE CASCADE,
            from_status VARCHAR(32),
            to_status VARCHAR(32) NOT NULL,
            action VARCHAR(32) NOT NULL,
            actor_id UUID,
            actor_role VARCHAR(32) NOT NULL,
            reason TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_quote_transitions_quote_id ON quote_transitions (quote_id);")

    # ── 10. event_outbox ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE event_outbox (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            event_type VARCHAR(255) NOT NULL,
            aggregate_type VARCHAR(255) NOT NULL,
            aggregate_id VARCHAR(255) NOT NULL,
            payload JSONB NOT NULL DEFAULT '{}'::jsonb,
            status VARCHAR(32) NOT NULL DEFAULT 'PENDING',
            retry_count INTEGER NOT NULL DEFAULT 0,
            max_retries INTEGER NOT NULL DEFAULT 3,
            last_error TEXT,
            processed_at TIMESTAMPTZ,
            schema_version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_event_outbox_status ON event_outbox (status);")
    op.execute("CREATE INDEX ix_event_outbox_event_type ON event_outbox (event_type);")
    op.execute(
        "CREATE INDEX ix_event_outbox_aggregate ON event_outbox (aggregate_type, aggregate_id);"
    )

    # ── 11. workflow_preferences ────────────────────────────────────────
    op.execute("""
        CREATE TABLE workflow_preferences (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL,
            conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            panel_collapsed BOOLEAN NOT NULL DEFAULT false,
            intro_dismissed BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_workflow_preferences_user_id UNIQUE (user_id, conversation_id)
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS workflow_preferences;")

    op.execute("DROP INDEX IF EXISTS ix_event_outbox_aggregate;")
    op.execute("DROP INDEX IF EXISTS ix_event_outbox_event_type;")
    op.execute("DROP INDEX IF EXISTS ix_event_outbox_status;")
    op.execute("DROP TABLE IF EXISTS event_outbox;")

    op.execute("DROP INDEX IF EXISTS ix_quote_transitions_quote_id;")
    op.execute("DROP TABLE IF EXISTS quote_transitions;")

    op.execute("DROP INDEX IF EXISTS uq_quotes_open_scope;")
    op.execute("DROP INDEX IF EXISTS ix_quotes_buyer_status;")
    op.execute("DROP INDEX IF EXISTS ix_quotes_scope;")
    op.execute("DROP INDEX IF EXISTS ix_quotes_conversation_id;")
    op.execute("DROP TABLE IF EXISTS quotes;")

    op.execute("DROP INDEX IF EXISTS ix_design_approval_transitions_design_approval_id;")
    op.execute("DROP TABLE IF EXISTS design_approval_transitions;")

    op.execute("DROP INDEX IF EXISTS uq_design_submissions_revision;")
    op.execute("DROP TABLE IF EXISTS design_submissions;")

    op.execute("DROP INDEX IF EXISTS uq_design_approvals_pending_scope;")
    op.execute("DROP INDEX IF EXISTS ix_design_approvals_buyer_status;")
    op.execute("DROP INDEX IF EXISTS ix_design_approvals_scope;")
    op.execute("DROP INDEX IF EXISTS ix_design_approvals_conversation_id;")
    op.execute("DROP TABLE IF EXISTS design_approvals;")

    op.execute("DROP INDEX IF EXISTS ix_conversations_seller_id;")
    op.execute("DROP INDEX IF EXISTS ix_conversations_buyer_id;")
    op.execute("DROP TABLE IF EXISTS conversations;")

    op.execute("DROP INDEX IF EXISTS ix_listing_options_item_id;")
    op.execute("DROP TABLE IF EXISTS listing_options;")

    op.execute("DROP INDEX IF EXISTS ix_listing_items_seller_id;")
    op.execute("DROP TABLE IF EXISTS listing_items;")
