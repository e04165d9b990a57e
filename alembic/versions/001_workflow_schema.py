"""Invoice workflow schema

Revision ID: 001
Revises: None
Create Date: 2026-10-19

Creates: quote_requests, invoices, invoice_line_items, payment_milestones,
workflow_state_log
Enums: quoteworkflowstatus, invoiceworkflowstatus, milestonetype, milestonestatus
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto";')

    # ── 1. Enum types (SQLAlchemy stores enum member names) ───────────────
    op.execute("""
        CREATE TYPE quoteworkflowstatus AS ENUM (
            'PENDING', 'UNDER_REVIEW', 'ESTIMATED', 'APPROVED',
            'AWAITING_PAYMENT', 'PAID', 'CONFIRMED'
        );
    """)
    op.execute("""
        CREATE TYPE invoiceworkflowstatus AS ENUM (
            'DRAFT', 'SENT', 'PENDING_REVIEW', 'APPROVED',
            'PAID', 'OVERDUE', 'CANCELLED'
        );
    """)
    op.execute("""
        CREATE TYPE milestonetype AS ENUM (
            'DEPOSIT', 'MILESTONE', 'FINAL', 'FULL'
        );
    """)
    op.execute("""
        CREATE TYPE milestonestatus AS ENUM (
            'PENDING', 'PROCESSING', 'COMPLETED', 'FAILED'
        );
    """)

    # ── 2. quote_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE quote_requests (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            contact_name VARCHAR(200) NOT NULL,
            email VARCHAR(320) NOT NULL,
            phone VARCHAR(50),
            event_name VARCHAR(300) NOT NULL,
            event_date DATE NOT NULL,
            location TEXT,
            guest_count INTEGER NOT NULL DEFAULT 0,
            compliance_level VARCHAR(50),
            requires_po_number BOOLEAN NOT NULL DEFAULT false,
            workflow_status quoteworkflowstatus NOT NULL DEFAULT 'PENDING',
            status_changed_by VARCHAR(50),
            last_status_change TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    # ── 3. invoices ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE invoices (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            invoice_number VARCHAR(50) UNIQUE,
            quote_request_id UUID REFERENCES quote_requests(id) ON DELETE SET NULL,
            workflow_status invoiceworkflowstatus NOT NULL DEFAULT 'DRAFT',
            status_changed_by VARCHAR(50),
            last_status_change TIMESTAMPTZ,
            last_customer_action TIMESTAMPTZ,
            subtotal BIGINT NOT NULL DEFAULT 0,
            tax_amount BIGINT NOT NULL DEFAULT 0,
            total_amount BIGINT NOT NULL DEFAULT 0,
            due_date DATE,
            sent_at TIMESTAMPTZ,
            paid_at TIMESTAMPTZ,
            version INTEGER NOT NULL DEFAULT 1,
            notes TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_invoices_quote_request_id ON invoices (quote_request_id);")
    op.execute("CREATE INDEX ix_invoices_workflow_status ON invoices (workflow_status);")
    op.execute("CREATE INDEX ix_invoices_due_date ON invoices (due_date);")

    # ── 4. invoice_line_items ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE invoice_line_items (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            invoice_id UUID NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
            title VARCHAR(300) NOT NULL,
            description TEXT,
            category VARCHAR(100),
            quantity NUMERIC(12, 3) NOT NULL,
            unit_price BIGINT NOT NULL,
            total_price BIGINT NOT NULL,
            sort_order INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_invoice_line_items_invoice_id ON invoice_line_items (invoice_id);")

    # ── 5. payment_milestones ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE payment_milestones (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            invoice_id UUID NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
            milestone_type milestonetype NOT NULL,
            percentage INTEGER NOT NULL,
            amount_cents BIGINT NOT NULL,
            due_date DATE,
            is_due_now BOOLEAN NOT NULL DEFAULT false,
            is_net30 BOOLEAN NOT NULL DEFAULT false,
            description TEXT,
            status milestonestatus NOT NULL DEFAULT 'PENDING',
            completed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_payment_milestones_invoice_id ON payment_milestones (invoice_id);")
    op.execute("CREATE INDEX ix_payment_milestones_status ON payment_milestones (status);")

    # ── 6. workflow_state_log (append-only) ───────────────────────────────
    op.execute("""
        CREATE TABLE workflow_state_log (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            entity_type VARCHAR(50) NOT NULL,
            entity_id UUID NOT NULL,
            previous_status VARCHAR(50),
            new_status VARCHAR(50) NOT NULL,
            changed_by VARCHAR(50) NOT NULL,
            change_reason TEXT,
            metadata JSON NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_workflow_state_log_entity ON workflow_state_log (entity_type, entity_id);")
    op.execute("CREATE INDEX ix_workflow_state_log_created_at ON workflow_state_log (created_at);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS workflow_state_log;")
    op.execute("DROP TABLE IF EXISTS payment_milestones;")
    op.execute("DROP TABLE IF EXISTS invoice_line_items;")
    op.execute("DROP TABLE IF EXISTS invoices;")
    op.execute("DROP TABLE IF EXISTS quote_requests;")
    op.execute("DROP TYPE IF EXISTS milestonestatus;")
    op.execute("DROP TYPE IF EXISTS milestonetype;")
    op.execute("DROP TYPE IF EXISTS invoiceworkflowstatus;")
    op.execute("DROP TYPE IF EXISTS quoteworkflowstatus;")
