"""create waha gateway tables

Revision ID: 3a7c1e5d9b20
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3a7c1e5d9b20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _org_column() -> sa.Column:
    return sa.Column(
        "organization_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    """Upgrade schema: organizations, gateway sessions, chat tables, webhook ledger."""
    op.create_table(
        "organizations",
        _id_column(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("org_code", sa.String(length=64), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("org_code", name="uq_organizations_org_code"),
    )

    op.create_table(
        "channel_configs",
        _id_column(),
        _org_column(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "channel", sa.String(length=32), nullable=False, server_default="whatsapp"
        ),
        sa.Column(
            "is_default", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("settings", postgresql.JSONB(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_channel_configs_org_channel_default",
        "channel_configs",
        ["organization_id", "channel", "is_default"],
    )

    op.create_table(
        "n8n_workflows",
        _id_column(),
        _org_column(),
        sa.Column("n8n_workflow_id", sa.String(length=64), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=True),
        sa.Column("webhook_id", sa.String(length=512), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_n8n_workflows_n8n_workflow_id", "n8n_workflows", ["n8n_workflow_id"]
    )

    op.create_table(
        "waha_sessions",
        _id_column(),
        _org_column(),
        sa.Column(
            "channel_config_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("channel_configs.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "n8n_workflow_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("n8n_workflows.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("session_name", sa.String(length=255), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column(
            "status", sa.String(length=32), nullable=False, server_default="connecting"
        ),
        sa.Column(
            "is_authenticated", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "is_connected", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "health_status",
            sa.String(length=32),
            nullable=False,
            server_default="unknown",
        ),
        sa.Column("last_health_check", sa.DateTime(timezone=True), nullable=True),
        sa.Column("battery_level", sa.Integer(), nullable=True),
        sa.Column("config", postgresql.JSONB(), nullable=True),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "total_messages_sent", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "total_messages_received", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("total_media_sent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "total_media_received", sa.Integer(), nullable=False, server_default="0"
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "organization_id",
            "session_name",
            name="uq_waha_sessions_org_session_name",
        ),
    )
    op.create_index(
        "ix_waha_sessions_organization_id", "waha_sessions", ["organization_id"]
    )
    op.create_index("ix_waha_sessions_session_name", "waha_sessions", ["session_name"])

    op.create_table(
        "webhook_logs",
        _id_column(),
        sa.Column("message_id", sa.String(length=255), nullable=False),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("webhook_type", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index(
        "ix_webhook_logs_org_message_created",
        "webhook_logs",
        ["organization_id", "message_id", "created_at"],
    )

    op.create_table(
        "customers",
        _id_column(),
        _org_column(),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_customers_org_phone", "customers", ["organization_id", "phone"])

    op.create_table(
        "agents",
        _id_column(),
        _org_column(),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "bot_personalities",
        _id_column(),
        _org_column(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column(
            "status", sa.String(length=32), nullable=False, server_default="active"
        ),
        sa.Column(
            "is_default", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
    )

    op.create_table(
        "chat_sessions",
        _id_column(),
        _org_column(),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "agent_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("agents.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "bot_personality_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("bot_personalities.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_chat_sessions_customer_id", "chat_sessions", ["customer_id"])

    op.create_table(
        "messages",
        _id_column(),
        _org_column(),
        sa.Column(
            "session_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("chat_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_type", sa.String(length=16), nullable=False),
        sa.Column("sender_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("sender_name", sa.String(length=255), nullable=True),
        sa.Column("message_text", sa.Text(), nullable=True),
        sa.Column(
            "message_type", sa.String(length=32), nullable=False, server_default="text"
        ),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("waha_session_name", sa.String(length=255), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_messages_org_session_created",
        "messages",
        ["organization_id", "session_id", "created_at"],
    )
    op.execute(
        "CREATE INDEX ix_messages_org_waha_message_id "
        "ON messages (organization_id, (metadata->>'waha_message_id'))"
    )


def downgrade() -> None:
    """Downgrade schema: drop every table created above."""
    op.execute("DROP INDEX IF EXISTS ix_messages_org_waha_message_id")
    op.drop_index("ix_messages_org_session_created", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_chat_sessions_customer_id", table_name="chat_sessions")
    op.drop_table("chat_sessions")
    op.drop_table("bot_personalities")
    op.drop_table("agents")
    op.drop_index("ix_customers_org_phone", table_name="customers")
    op.drop_table("customers")
    op.drop_index("ix_webhook_logs_org_message_created", table_name="webhook_logs")
    op.drop_table("webhook_logs")
    op.drop_index("ix_waha_sessions_session_name", table_name="waha_sessions")
    op.drop_index("ix_waha_sessions_organization_id", table_name="waha_sessions")
    op.drop_table("waha_sessions")
    op.drop_index("ix_n8n_workflows_n8n_workflow_id", table_name="n8n_workflows")
    op.drop_table("n8n_workflows")
    op.drop_index(
        "ix_channel_configs_org_channel_default", table_name="channel_configs"
    )
    op.drop_table("channel_configs")
    op.drop_table("organizations")
