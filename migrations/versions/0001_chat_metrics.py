"""chat metrics event log

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


message_type = postgresql.ENUM("user", "bot", name="chat_message_type", create_type=False)


def upgrade() -> None:
    message_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "chat_metrics",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("user_name", sa.String(length=255), nullable=False),
        sa.Column("user_role", sa.String(length=64), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("session_id", sa.String(length=128), nullable=False),
        sa.Column("message_type", message_type, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("flow", sa.String(length=64), nullable=False),
        sa.Column("selected_option", sa.String(length=255), nullable=True),
        sa.Column("was_helpful", sa.Boolean(), nullable=True),
        sa.Column(
            "ai_generated", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column(
            "tokens_used", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "response_time_ms", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
    )
    op.create_index("ix_chat_metrics_user_id", "chat_metrics", ["user_id"])
    op.create_index("ix_chat_metrics_session_id", "chat_metrics", ["session_id"])
    op.create_index("ix_chat_metrics_timestamp", "chat_metrics", ["timestamp"])


def downgrade() -> None:
    op.drop_index("ix_chat_metrics_timestamp", table_name="chat_metrics")
    op.drop_index("ix_chat_metrics_session_id", table_name="chat_metrics")
    op.drop_index("ix_chat_metrics_user_id", table_name="chat_metrics")
    op.drop_table("chat_metrics")
    message_type.drop(op.get_bind(), checkfirst=True)
