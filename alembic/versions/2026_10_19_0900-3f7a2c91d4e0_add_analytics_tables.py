"""add analytics tables

Revision ID: 3f7a2c91d4e0
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f7a2c91d4e0"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Upgrade schema: messages, aggregates and analytics tables."""
    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("message_id", sa.String(length=255), nullable=False),
        sa.Column("instance", sa.String(length=128), nullable=True),
        sa.Column("conversation_jid", sa.String(length=255), nullable=False),
        sa.Column("sender_jid", sa.String(length=255), nullable=False),
        sa.Column("sender_name", sa.String(length=255), nullable=True),
        sa.Column("message_type", sa.String(length=64), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("is_from_me", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_media", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("media_type", sa.String(length=32), nullable=True),
        sa.Column("quoted_message_id", sa.String(length=255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_messages_message_id", "messages", ["message_id"], unique=True)
    op.create_index("ix_messages_quoted_message_id", "messages", ["quoted_message_id"])
    op.create_index(
        "ix_messages_conversation_timestamp", "messages", ["conversation_jid", "timestamp"]
    )
    op.create_index("ix_messages_sender_timestamp", "messages", ["sender_jid", "timestamp"])

    op.create_table(
        "participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("jid", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("instance", sa.String(length=128), nullable=True),
        sa.Column("message_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("first_seen_at", sa.DateTime(), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_participants_jid", "participants", ["jid"], unique=True)
    op.create_index("ix_participants_last_seen_at", "participants", ["last_seen_at"])

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("jid", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("instance", sa.String(length=128), nullable=True),
        sa.Column("message_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_message_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_conversations_jid", "conversations", ["jid"], unique=True)

    op.create_table(
        "message_sentiment",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("message_id", sa.String(length=255), nullable=False),
        sa.Column("sentiment_label", sa.String(length=16), nullable=False),
        sa.Column("sentiment_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("emotions", postgresql.JSONB(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("model_used", sa.String(length=128), nullable=True),
        sa.Column("analyzed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_message_sentiment_message_id", "message_sentiment", ["message_id"], unique=True
    )

    op.create_table(
        "participant_relationships",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("participant_a_jid", sa.String(length=255), nullable=False),
        sa.Column("participant_b_jid", sa.String(length=255), nullable=False),
        sa.Column("relationship_strength", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_interactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_interaction_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "participant_a_jid",
            "participant_b_jid",
            name="uq_participant_relationships_pair",
        ),
        sa.CheckConstraint(
            "participant_a_jid < participant_b_jid",
            name="ck_participant_relationships_canonical_order",
        ),
    )
    op.create_index(
        "ix_participant_relationships_participant_a_jid",
        "participant_relationships",
        ["participant_a_jid"],
    )
    op.create_index(
        "ix_participant_relationships_participant_b_jid",
        "participant_relationships",
        ["participant_b_jid"],
    )

    op.create_table(
        "behavior_patterns",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("participant_jid", sa.String(length=255), nullable=False),
        sa.Column("pattern_type", sa.String(length=32), nullable=False),
        sa.Column("pattern_name", sa.String(length=255), nullable=True),
        sa.Column("pattern_data", postgresql.JSONB(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("observation_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("detected_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "last_observed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint(
            "participant_jid", "pattern_type", name="uq_behavior_patterns_type"
        ),
    )
    op.create_index(
        "ix_behavior_patterns_participant_jid", "behavior_patterns", ["participant_jid"]
    )

    op.create_table(
        "alerts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("alert_type", sa.String(length=64), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("participant_jid", sa.String(length=255), nullable=True),
        sa.Column("conversation_jid", sa.String(length=255), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("triggered_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("acknowledged_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
    )
    # at most one open alert per participant and type
    op.create_index(
        "uq_alerts_open_participant_type",
        "alerts",
        ["participant_jid", "alert_type"],
        unique=True,
        postgresql_where=sa.text("resolved_at IS NULL"),
    )

    op.create_table(
        "ai_insights",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("insight_type", sa.String(length=32), nullable=False),
        sa.Column("subject_type", sa.String(length=32), nullable=False),
        sa.Column("subject_id", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("severity", sa.String(length=16), nullable=False, server_default="info"),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("supporting_data", postgresql.JSONB(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("detected_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_ai_insights_subject_id", "ai_insights", ["subject_id"])


def downgrade() -> None:
    """Downgrade schema: drop analytics tables."""
    op.drop_index("ix_ai_insights_subject_id", table_name="ai_insights")
    op.drop_table("ai_insights")
    op.drop_index("uq_alerts_open_participant_type", table_name="alerts")
    op.drop_table("alerts")
    op.drop_index("ix_behavior_patterns_participant_jid", table_name="behavior_patterns")
    op.drop_table("behavior_patterns")
    op.drop_index(
        "ix_participant_relationships_participant_b_jid",
        table_name="participant_relationships",
    )
    op.drop_index(
        "ix_participant_relationships_participant_a_jid",
        table_name="participant_relationships",
    )
    op.drop_table("participant_relationships")
    op.drop_index("ix_message_sentiment_message_id", table_name="message_sentiment")
    op.drop_table("message_sentiment")
    op.drop_index("ix_conversations_jid", table_name="conversations")
    op.drop_table("conversations")
    op.drop_index("ix_participants_last_seen_at", table_name="participants")
    op.drop_index("ix_participants_jid", table_name="participants")
    op.drop_table("participants")
    op.drop_index("ix_messages_sender_timestamp", table_name="messages")
    op.drop_index("ix_messages_conversation_timestamp", table_name="messages")
    op.drop_index("ix_messages_quoted_message_id", table_name="messages")
    op.drop_index("ix_messages_message_id", table_name="messages")
    op.drop_table("messages")
