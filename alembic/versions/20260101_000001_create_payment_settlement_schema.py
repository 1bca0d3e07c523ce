"""Create payment settlement schema.

Revision ID: 20260101_000001
Revises:
Create Date: 2026-01-01

Users, membership plans and state, referral edges, payment intents,
chain cursors and the commission ledger.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20260101_000001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create tables and the derivation index sequence."""
    op.execute(sa.schema.CreateSequence(sa.Sequence("payment_derivation_index_seq", start=1)))

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=True),
        sa.Column(
            "membership_status",
            sa.String(length=20),
            server_default="inactive",
            nullable=False,
        ),
        sa.Column("membership_tier", sa.String(length=32), nullable=True),
        sa.Column("membership_expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"])
    op.create_index("ix_users_membership_status", "users", ["membership_status"])

    op.create_table(
        "membership_plans",
        sa.Column("tier", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price_usd_cents", sa.Integer(), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=True, comment="NULL = lifetime"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("sort_order", sa.Integer(), server_default="0", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("tier", name="pk_membership_plans"),
        sa.CheckConstraint(
            "price_usd_cents > 0", name="ck_membership_plans_price_positive"
        ),
        sa.CheckConstraint(
            "duration_days IS NULL OR duration_days > 0",
            name="ck_membership_plans_duration_positive",
        ),
        sa.CheckConstraint(
            "sort_order >= 0", name="ck_membership_plans_sort_order_non_negative"
        ),
    )
    op.bulk_insert(
        sa.table(
            "membership_plans",
            sa.column("tier", sa.String),
            sa.column("name", sa.String),
            sa.column("price_usd_cents", sa.Integer),
            sa.column("duration_days", sa.Integer),
            sa.column("sort_order", sa.Integer),
        ),
        [
            {"tier": "trial_weekly", "name": "Weekly trial", "price_usd_cents": 900, "duration_days": 7, "sort_order": 0},
            {"tier": "annual", "name": "Annual", "price_usd_cents": 29900, "duration_days": 365, "sort_order": 1},
            {"tier": "lifetime", "name": "Lifetime", "price_usd_cents": 49900, "duration_days": None, "sort_order": 2},
        ],
    )

    op.create_table(
        "memberships",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("tier", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "expires_at", sa.DateTime(timezone=True), nullable=True, comment="NULL = lifetime"
        ),
        sa.Column("inactive_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("user_id", name="pk_memberships"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_memberships_user_id_users",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_memberships_status", "memberships", ["status"])
    op.create_index("ix_memberships_expires_at", "memberships", ["expires_at"])
    op.create_index("ix_memberships_inactive_at", "memberships", ["inactive_at"])

    op.create_table(
        "membership_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("from_status", sa.String(length=20), nullable=True),
        sa.Column("to_status", sa.String(length=20), nullable=False),
        sa.Column("reason", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_membership_events"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_membership_events_user_id_users",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_membership_events_user_id", "membership_events", ["user_id"])

    op.create_table(
        "referrals",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("sponsor_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("user_id", name="pk_referrals"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_referrals_user_id_users",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["sponsor_id"],
            ["users.id"],
            name="fk_referrals_sponsor_id_users",
            ondelete="SET NULL",
        ),
        sa.CheckConstraint("user_id <> sponsor_id", name="ck_referrals_no_self_sponsor"),
    )
    op.create_index("ix_referrals_sponsor_id", "referrals", ["sponsor_id"])

    op.create_table(
        "membership_payments",
        sa.Column("id", sa.String(length=36), nullable=False),
        # Purchase
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("tier", sa.String(length=32), nullable=False),
        sa.Column("amount_usd_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), server_default="pending", nullable=False),
        # Deposit address
        sa.Column("chain", sa.String(length=32), nullable=True),
        sa.Column("deposit_address", sa.String(length=42), nullable=True),
        sa.Column(
            "derivation_index",
            sa.Integer(),
            nullable=True,
            comment="Child index under the deposit xpub",
        ),
        # On-chain confirmation
        sa.Column("tx_hash", sa.String(length=66), nullable=True),
        sa.Column("from_address", sa.String(length=42), nullable=True),
        sa.Column("to_address", sa.String(length=42), nullable=True),
        sa.Column(
            "expected_units",
            sa.String(length=78),
            nullable=True,
            comment="Minimum token units to confirm",
        ),
        sa.Column("received_units", sa.String(length=78), nullable=True),
        sa.Column("overpayment_units", sa.String(length=78), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        # Reserve sweep
        sa.Column("sweep_status", sa.String(length=20), nullable=True),
        sa.Column("sweep_tx_hash", sa.String(length=66), nullable=True),
        sa.Column("funding_tx_hash", sa.String(length=66), nullable=True),
        sa.Column("sweep_retry_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("sweep_retry_after", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sweep_last_error", sa.Text(), nullable=True),
        sa.Column("sweep_attempted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("funded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("swept_at", sa.DateTime(timezone=True), nullable=True),
        # Settlement
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_membership_payments"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_membership_payments_user_id_users",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "deposit_address", name="uq_membership_payments_deposit_address"
        ),
        sa.UniqueConstraint(
            "derivation_index", name="uq_membership_payments_derivation_index"
        ),
        sa.CheckConstraint(
            "amount_usd_cents > 0", name="ck_membership_payments_amount_positive"
        ),
        sa.CheckConstraint(
            "sweep_retry_count >= 0",
            name="ck_membership_payments_retry_count_non_negative",
        ),
    )
    op.create_index("ix_membership_payments_user_id", "membership_payments", ["user_id"])
    op.create_index("ix_membership_payments_tx_hash", "membership_payments", ["tx_hash"])
    op.create_index(
        "ix_membership_payments_status_address",
        "membership_payments",
        ["status", "deposit_address"],
    )
    op.create_index(
        "ix_membership_payments_sweep",
        "membership_payments",
        ["sweep_status", "applied_at"],
    )

    op.create_table(
        "payment_chain_cursors",
        sa.Column("chain", sa.String(length=32), nullable=False),
        sa.Column("contract", sa.String(length=42), nullable=False),
        sa.Column("last_scanned_block", sa.BigInteger(), server_default="0", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("chain", "contract", name="pk_payment_chain_cursors"),
    )

    op.create_table(
        "commissions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("payment_id", sa.String(length=36), nullable=False),
        sa.Column("from_user_id", sa.Integer(), nullable=False),
        sa.Column("to_user_id", sa.Integer(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("amount_usd_cents", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_commissions"),
        sa.ForeignKeyConstraint(
            ["payment_id"],
            ["membership_payments.id"],
            name="fk_commissions_payment_id_membership_payments",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["from_user_id"], ["users.id"], name="fk_commissions_from_user_id_users"
        ),
        sa.ForeignKeyConstraint(
            ["to_user_id"], ["users.id"], name="fk_commissions_to_user_id_users"
        ),
        sa.UniqueConstraint("payment_id", "level", name="uq_commissions_payment_level"),
    )
    op.create_index("ix_commissions_payment_id", "commissions", ["payment_id"])
    op.create_index("ix_commissions_from_user_id", "commissions", ["from_user_id"])
    op.create_index("ix_commissions_to_user_id", "commissions", ["to_user_id"])


def downgrade() -> None:
    """Drop all settlement tables."""
    op.drop_table("commissions")
    op.drop_table("payment_chain_cursors")
    op.drop_table("membership_payments")
    op.drop_table("referrals")
    op.drop_table("membership_events")
    op.drop_table("memberships")
    op.drop_table("membership_plans")
    op.drop_table("users")
    op.execute(sa.schema.DropSequence(sa.Sequence("payment_derivation_index_seq")))
