"""drawing_workflow_tables

Create users, project_assignments, projects, scope_items, drawings,
drawing_revisions, audit_logs and notifications.

Revision ID: a1c3e5f70001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c3e5f70001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="pm"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_code", sa.String(length=30), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_code"),
        )

    if "project_assignments" not in existing_tables:
        op.create_table(
            "project_assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "user_id", name="uq_project_assignment"),
        )
        op.create_index("ix_project_assignments_project_id", "project_assignments", ["project_id"])
        op.create_index("ix_project_assignments_user_id", "project_assignments", ["user_id"])

    if "scope_items" not in existing_tables:
        op.create_table(
            "scope_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("item_code", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "item_code", name="uq_scope_item_code"),
        )
        op.create_index("ix_scope_items_project_id", "scope_items", ["project_id"])

    if "drawings" not in existing_tables:
        op.create_table(
            "drawings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("scope_item_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="not_uploaded"),
            sa.Column("current_revision", sa.String(length=5), nullable=True),
            sa.Column("sent_to_client_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("client_response_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("client_comments", sa.Text(), nullable=True),
            sa.Column("approved_by", sa.Integer(), nullable=True),
            sa.Column("pm_override", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("pm_override_reason", sa.Text(), nullable=True),
            sa.Column("pm_override_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("pm_override_by", sa.Integer(), nullable=True),
            sa.Column("not_required_reason", sa.Text(), nullable=True),
            sa.Column("not_required_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("not_required_by", sa.Integer(), nullable=True),
            sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["scope_item_id"], ["scope_items.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["approved_by"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["pm_override_by"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["not_required_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_drawings_scope_item_id", "drawings", ["scope_item_id"], unique=True)
        op.create_index("ix_drawings_approved_by", "drawings", ["approved_by"])
        op.create_index("ix_drawings_pm_override_by", "drawings", ["pm_override_by"])

    if "drawing_revisions" not in existing_tables:
        op.create_table(
            "drawing_revisions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("drawing_id", sa.Integer(), nullable=False),
            sa.Column("revision", sa.String(length=5), nullable=False),
            sa.Column("file_url", sa.String(length=1000), nullable=False),
            sa.Column("file_name", sa.String(length=255), nullable=True),
            sa.Column("file_size", sa.Integer(), nullable=True),
            sa.Column("cad_file_url", sa.String(length=1000), nullable=True),
            sa.Column("cad_file_name", sa.String(length=255), nullable=True),
            sa.Column("client_markup_url", sa.String(length=1000), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("uploaded_by", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["drawing_id"], ["drawings.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("drawing_id", "revision", name="uq_drawing_revision_letter"),
        )
        op.create_index("ix_drawing_revisions_drawing_id", "drawing_revisions", ["drawing_id"])
        op.create_index("ix_drawing_revisions_uploaded_by", "drawing_revisions", ["uploaded_by"])
        op.create_index(
            "idx_drawing_revisions_drawing_created", "drawing_revisions", ["drawing_id", "created_at"],
        )

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor_id", sa.Integer(), nullable=True),
            sa.Column("details_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["actor_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_project", "audit_logs", ["project_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])
        op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("drawing_id", sa.Integer(), nullable=True),
            sa.Column("type", sa.String(length=30), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["drawing_id"], ["drawings.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
        op.create_index("ix_notifications_project_id", "notifications", ["project_id"])
        op.create_index("ix_notifications_drawing_id", "notifications", ["drawing_id"])


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    for table in (
        "notifications",
        "audit_logs",
        "drawing_revisions",
        "drawings",
        "scope_items",
        "project_assignments",
        "projects",
        "users",
    ):
        if table in existing_tables:
            op.drop_table(table)
