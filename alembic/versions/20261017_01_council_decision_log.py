"""Council decision log

Revision ID: 20261017_01
Revises: None
Create Date: 2026-10-17
"""
# pylint: disable=no-member,invalid-name,wrong-import-order

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_01"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    op.create_table(
        "council_decision",
        sa.Column("council_decision_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("recommendation_id", sa.Text(), nullable=False),
        sa.Column("recommendation_type", sa.Text(), nullable=False),
        sa.Column("outcome", sa.Text(), nullable=False),
        sa.Column("rationale", sa.Text(), nullable=False),
        sa.Column("proposed_by", sa.Text(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("change_id", sa.Text(), nullable=True),
        sa.Column("change_payload", sa.Text(), nullable=True),
        sa.Column("decided_at_utc", sa.Text(), nullable=False),
        sa.Column("created_at_utc", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("recommendation_id", name="uq_council_decision_recommendation_id"),
        sa.CheckConstraint(
            "recommendation_type IN ('consolidation', 'termination')",
            name="ck_council_decision_recommendation_type",
        ),
        sa.CheckConstraint(
            "outcome IN ('approved', 'rejected', 'deferred')",
            name="ck_council_decision_outcome",
        ),
    )
    op.create_index("ix_council_decision_decided_at_utc", "council_decision", ["decided_at_utc"])


def downgrade() -> None:
    """Downgrade schema."""

    op.drop_index("ix_council_decision_decided_at_utc", table_name="council_decision")
    op.drop_table("council_decision")
