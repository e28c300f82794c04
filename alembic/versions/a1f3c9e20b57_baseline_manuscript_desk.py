"""baseline: clients, templates, manuscripts, notification log

Revision ID: a1f3c9e20b57
Revises:
Create Date: 2026-10-18 12:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "a1f3c9e20b57"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

manuscript_status = sa.Enum(
    "pending", "approved", "revision", "cancelled", "auto_approved", name="manuscriptstatus"
)
client_type = sa.Enum("template", "custom", name="clienttype")
notification_kind = sa.Enum("confirm_request", "revision_complete", "reminder", name="notificationkind")


def upgrade() -> None:
    op.create_table(
        "client",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("region", sa.String(100), nullable=False),
        sa.Column("business_type", sa.String(50), nullable=False),
        sa.Column("main_service", sa.Text(), nullable=True),
        sa.Column("differentiator", sa.Text(), nullable=True),
        sa.Column("contact", sa.String(32), nullable=True),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("client_type", client_type, nullable=False, server_default="template"),
        sa.Column("manager", sa.String(32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
    )
    op.create_index("ix_client_id", "client", ["id"])
    op.create_index("ix_client_name", "client", ["name"])
    op.create_index("ix_client_business_type", "client", ["business_type"])

    op.create_table(
        "template",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("business_type", sa.String(50), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("week", sa.Integer(), nullable=True),
        sa.Column("topic", sa.String(200), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("send_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("approve_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
    )
    op.create_index("ix_template_id", "template", ["id"])
    op.create_index("ix_template_business_type", "template", ["business_type"])

    op.create_table(
        "manuscript",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("client.id", ondelete="CASCADE"), nullable=False),
        sa.Column("template_id", sa.Integer(), sa.ForeignKey("template.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", manuscript_status, nullable=False, server_default="pending"),
        sa.Column("revision_request", sa.Text(), nullable=True),
        sa.Column("revision_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("confirm_token", sa.String(64), nullable=False),
        sa.Column("group_id", sa.String(36), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
    )
    op.create_index("ix_manuscript_id", "manuscript", ["id"])
    op.create_index("ix_manuscript_client_id", "manuscript", ["client_id"])
    op.create_index("ix_manuscript_template_id", "manuscript", ["template_id"])
    op.create_index("ix_manuscript_status", "manuscript", ["status"])
    op.create_index("ix_manuscript_confirm_token", "manuscript", ["confirm_token"], unique=True)
    op.create_index("ix_manuscript_group_id", "manuscript", ["group_id"])
    op.create_index("ix_manuscript_status_sent_at", "manuscript", ["status", "sent_at"])

    op.create_table(
        "notification_log",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("client.id", ondelete="SET NULL"), nullable=True),
        sa.Column("manuscript_id", sa.Integer(), sa.ForeignKey("manuscript.id", ondelete="SET NULL"), nullable=True),
        sa.Column("kind", notification_kind, nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("message_id", sa.String(128), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
    )
    op.create_index("ix_notification_log_client_id", "notification_log", ["client_id"])
    op.create_index("ix_notification_log_manuscript_id", "notification_log", ["manuscript_id"])


def downgrade() -> None:
    op.drop_table("notification_log")
    op.drop_table("manuscript")
    op.drop_table("template")
    op.drop_table("client")
    notification_kind.drop(op.get_bind(), checkfirst=True)
    manuscript_status.drop(op.get_bind(), checkfirst=True)
    client_type.drop(op.get_bind(), checkfirst=True)
