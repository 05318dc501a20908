"""Create connections, follows and notifications tables

Revision ID: 0001_relationship_tables
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_relationship_tables"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ACTIVE_STATES = sa.text("state IN ('pending', 'accepted')")


def upgrade() -> None:
    """Create relationship tables."""
    op.create_table(
        "connections",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("pair_key", sa.String(), nullable=False),
        sa.Column("requester_id", sa.String(), nullable=False),
        sa.Column("requester_type", sa.String(), nullable=False, server_default="individual"),
        sa.Column("recipient_id", sa.String(), nullable=False),
        sa.Column("recipient_type", sa.String(), nullable=False, server_default="individual"),
        sa.Column("state", sa.String(), nullable=False, server_default="pending"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_connections_pair_key_created_at", "connections", ["pair_key", "created_at"])
    op.create_index("ix_connections_recipient_state", "connections", ["recipient_id", "state"])
    op.create_index("ix_connections_requester_state", "connections", ["requester_id", "state"])
    op.create_index(
        "uq_connections_active_pair",
        "connections",
        ["pair_key"],
        unique=True,
        postgresql_where=ACTIVE_STATES,
    )

    op.create_table(
        "follows",
        sa.Column("follower_id", sa.String(), nullable=False),
        sa.Column("followee_id", sa.String(), nullable=False),
        sa.Column("follower_type", sa.String(), nullable=False, server_default="individual"),
        sa.Column("followee_type", sa.String(), nullable=False, server_default="individual"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("follower_id", "followee_id"),
    )
    op.create_index("ix_follows_followee_id", "follows", ["followee_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("actor_id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_actor_id", "notifications", ["actor_id"], unique=False)


def downgrade() -> None:
    """Drop relationship tables."""
    op.drop_index("ix_notifications_actor_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_follows_followee_id", table_name="follows")
    op.drop_table("follows")
    op.drop_index("uq_connections_active_pair", table_name="connections")
    op.drop_index("ix_connections_requester_state", table_name="connections")
    op.drop_index("ix_connections_recipient_state", table_name="connections")
    op.drop_index("ix_connections_pair_key_created_at", table_name="connections")
    op.drop_table("connections")
