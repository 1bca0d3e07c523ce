"""Add settlement failure tracking to membership payments.

Revision ID: 20260115_000001
Revises: 20260101_000001
Create Date: 2026-01-15

Payments whose activation is rejected are marked once and left out of
later settlement ticks until an operator resolves them.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20260115_000001"
down_revision = "20260101_000001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Add apply_failed_at and apply_last_error."""
    op.add_column(
        "membership_payments",
        sa.Column(
            "apply_failed_at",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="Set when activation was rejected; excluded from settlement",
        ),
    )
    op.add_column(
        "membership_payments",
        sa.Column("apply_last_error", sa.Text(), nullable=True),
    )
    op.create_index(
        "ix_membership_payments_apply_failed_at",
        "membership_payments",
        ["apply_failed_at"],
        postgresql_where=sa.text("apply_failed_at IS NOT NULL"),
    )


def downgrade() -> None:
    """Drop settlement failure tracking."""
    op.drop_index(
        "ix_membership_payments_apply_failed_at", table_name="membership_payments"
    )
    op.drop_column("membership_payments", "apply_last_error")
    op.drop_column("membership_payments", "apply_failed_at")
