"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_number", sa.String(length=32), nullable=False),
        sa.Column("customer_id", sa.String(length=36), nullable=False),
        sa.Column("artisan_id", sa.String(length=36), nullable=False),
        sa.Column("service_ref", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("urgency", sa.String(length=16), nullable=False, server_default="normal"),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pricing_model", sa.String(length=32), nullable=False),
        sa.Column("price_breakdown", sa.JSON(), nullable=True),
        sa.Column("estimated_price", sa.Integer(), nullable=True),
        sa.Column("agreed_price", sa.Integer(), nullable=True),
        sa.Column("final_price", sa.Integer(), nullable=True),
        sa.Column("platform_fee", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(length=12), nullable=False, server_default="unpaid"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("declined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("completion_photos", sa.JSON(), nullable=True),
        sa.Column("materials_used", sa.JSON(), nullable=True),
        sa.Column("work_duration", sa.Integer(), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=500), nullable=True),
        sa.Column("decline_reason", sa.String(length=500), nullable=True),
        sa.Column("cancelled_by", sa.String(length=12), nullable=True),
        sa.Column("payment_id", sa.String(length=36), nullable=True),
        sa.Column("escrow_id", sa.String(length=36), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_bookings_booking_number", "bookings", ["booking_number"], unique=True)
    op.create_index("ix_bookings_customer_id", "bookings", ["customer_id"])
    op.create_index("ix_bookings_artisan_id", "bookings", ["artisan_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_expires_at", "bookings", ["expires_at"])

    op.create_table(
        "escrows",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("payment_id", sa.String(length=36), nullable=False),
        sa.Column("customer_id", sa.String(length=36), nullable=False),
        sa.Column("artisan_id", sa.String(length=36), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("platform_fee", sa.Integer(), nullable=False),
        sa.Column("artisan_amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="held"),
        sa.Column("held_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("auto_release_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("release_type", sa.String(length=8), nullable=True),
        sa.Column("released_by", sa.String(length=36), nullable=True),
        sa.Column("refund_reason", sa.String(length=500), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_escrows_booking_id", "escrows", ["booking_id"], unique=True)
    op.create_index("ix_escrows_payment_id", "escrows", ["payment_id"])
    op.create_index("ix_escrows_customer_id", "escrows", ["customer_id"])
    op.create_index("ix_escrows_artisan_id", "escrows", ["artisan_id"])
    op.create_index("ix_escrows_status", "escrows", ["status"])
    op.create_index("ix_escrows_auto_release_at", "escrows", ["auto_release_at"])

    op.create_table(
        "payments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("customer_id", sa.String(length=36), nullable=False),
        sa.Column("artisan_id", sa.String(length=36), nullable=False),
        sa.Column("provider", sa.String(length=40), nullable=False, server_default="paystack"),
        sa.Column("reference", sa.String(length=64), nullable=False),
        sa.Column("gateway_reference", sa.String(length=120), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("platform_fee", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("artisan_amount", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="NGN"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.String(length=500), nullable=True),
        sa.Column("gateway_response", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payments_reference", "payments", ["reference"], unique=True)
    op.create_index("ix_payments_gateway_reference", "payments", ["gateway_reference"])
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])
    op.create_index("ix_payments_customer_id", "payments", ["customer_id"])
    op.create_index("ix_payments_artisan_id", "payments", ["artisan_id"])
    op.create_index("ix_payments_status", "payments", ["status"])

    op.create_table(
        "negotiations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("customer_id", sa.String(length=36), nullable=False),
        sa.Column("artisan_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="active"),
        sa.Column("initial_price", sa.Integer(), nullable=False),
        sa.Column("agreed_price", sa.Integer(), nullable=True),
        sa.Column("max_rounds", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_negotiations_booking_id", "negotiations", ["booking_id"], unique=True)
    op.create_index("ix_negotiations_status", "negotiations", ["status"])
    op.create_index("ix_negotiations_expires_at", "negotiations", ["expires_at"])

    op.create_table(
        "negotiation_rounds",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("negotiation_id", sa.String(length=36), sa.ForeignKey("negotiations.id"), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("proposed_by", sa.String(length=12), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("message", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("response", sa.String(length=12), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("negotiation_id", "round_number", name="uq_negotiation_round"),
    )
    op.create_index("ix_negotiation_rounds_negotiation_id", "negotiation_rounds", ["negotiation_id"])

    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("booking_id", sa.String(length=36), nullable=True),
        sa.Column("payment_id", sa.String(length=36), nullable=True),
        sa.Column("type", sa.String(length=12), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="NGN"),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="pending"),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("reference", sa.String(length=80), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_ledger_transactions_reference", "ledger_transactions", ["reference"], unique=True)
    op.create_index("ix_ledger_transactions_user_id", "ledger_transactions", ["user_id"])
    op.create_index("ix_ledger_transactions_booking_id", "ledger_transactions", ["booking_id"])
    op.create_index("ix_ledger_transactions_type", "ledger_transactions", ["type"])
    op.create_index("ix_ledger_transactions_status", "ledger_transactions", ["status"])

    op.create_table(
        "artisan_accounts",
        sa.Column("user_id", sa.String(length=36), primary_key=True),
        sa.Column("total_earnings", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_jobs_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_booking_requests", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_accepted_bookings", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("acceptance_rate", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("response_time_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payout_recipient_code", sa.String(length=64), nullable=True),
    )

    op.create_table(
        "customer_accounts",
        sa.Column("user_id", sa.String(length=36), primary_key=True),
        sa.Column("total_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_bookings", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("event_type", sa.String(length=60), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_outbox_events_user_id", "outbox_events", ["user_id"])
    op.create_index("ix_outbox_events_event_type", "outbox_events", ["event_type"])
    op.create_index("ix_outbox_events_status", "outbox_events", ["status"])
    op.create_index("ix_outbox_events_created_at", "outbox_events", ["created_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor_user_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("outbox_events")
    op.drop_table("customer_accounts")
    op.drop_table("artisan_accounts")
    op.drop_table("ledger_transactions")
    op.drop_table("negotiation_rounds")
    op.drop_table("negotiations")
    op.drop_table("payments")
    op.drop_table("escrows")
    op.drop_table("bookings")
