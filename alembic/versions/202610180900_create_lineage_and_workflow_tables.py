"""create_lineage_and_workflow_tables

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "202610180900"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "assets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True)),
        sa.Column("folder_id", postgresql.UUID(as_uuid=True)),
        sa.Column("asset_type", sa.String(length=50), nullable=False, server_default="image"),
        sa.Column("source_app", sa.String(length=50)),
        sa.Column("source_tool", sa.String(length=50)),
        sa.Column("file_url", sa.Text()),
        sa.Column("thumbnail_url", sa.Text()),
        sa.Column("text_content", sa.Text()),
        sa.Column("generation_params", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("credits_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("name", sa.String(length=255)),
        sa.Column("tags", postgresql.JSONB(), server_default=sa.text("'[]'::jsonb")),
        sa.Column("notes", sa.Text()),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status in ('active','archived','deleted')", name="ck_assets_status"),
        sa.CheckConstraint(
            "asset_type in ('image','video','audio','text','prompt','experiment','workflow','comparison')",
            name="ck_assets_asset_type",
        ),
    )
    op.create_index("ix_assets_user_id", "assets", ["user_id"])
    op.create_index("ix_assets_project_id", "assets", ["project_id"])
    op.create_index("idx_assets_user_status", "assets", ["user_id", "status"])

    op.create_table(
        "asset_relationships",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("parent_asset_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("assets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("child_asset_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("assets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("relationship_type", sa.String(length=50), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("parent_asset_id", "child_asset_id", name="uq_asset_relationships_pair"),
        sa.CheckConstraint("parent_asset_id <> child_asset_id", name="ck_asset_relationships_no_self_loop"),
        sa.CheckConstraint(
            "relationship_type in ('input','variation','enhancement','remix','iteration')",
            name="ck_asset_relationships_type",
        ),
    )
    op.create_index("idx_asset_rel_parent", "asset_relationships", ["parent_asset_id"])
    op.create_index("idx_asset_rel_child", "asset_relationships", ["child_asset_id"])

    op.create_table(
        "workflows",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("request_data", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("assigned_to", sa.String(length=16)),
        sa.Column("result_data", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb")),
        sa.Column("error_message", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint(
            "status in ('pending','in_progress','completed','failed','cancelled')",
            name="ck_workflows_status",
        ),
        sa.CheckConstraint("priority between 1 and 5", name="ck_workflows_priority"),
    )
    op.create_index("ix_workflows_user_id", "workflows", ["user_id"])
    op.create_index("idx_workflows_user_status", "workflows", ["user_id", "status", "created_at"])

    op.create_table(
        "workflow_tasks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("workflow_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False),
        sa.Column("task_type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("assigned_to", sa.String(length=16), nullable=False, server_default="kai"),
        sa.Column("input_data", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb")),
        sa.Column("output_data", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text()),
        sa.Column("execution_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint(
            "status in ('pending','in_progress','completed','failed')",
            name="ck_workflow_tasks_status",
        ),
        sa.CheckConstraint(
            "task_type in ('analyze','generate_image','generate_video','generate_lipsync','process','review','other')",
            name="ck_workflow_tasks_task_type",
        ),
    )
    op.create_index("idx_workflow_tasks_execution_order", "workflow_tasks", ["workflow_id", "execution_order"])

    op.create_table(
        "asset_versions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("asset_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("assets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("task_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("workflow_tasks.id", ondelete="SET NULL")),
        sa.Column("file_url", sa.Text()),
        sa.Column("thumbnail_url", sa.Text()),
        sa.Column("generation_params", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("credits_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("asset_id", "version_number", name="uq_asset_versions_number"),
        sa.CheckConstraint("version_number >= 1", name="ck_asset_versions_positive"),
    )
    op.create_index("idx_asset_versions", "asset_versions", ["asset_id", "version_number"])


def downgrade() -> None:
    op.drop_index("idx_asset_versions", table_name="asset_versions")
    op.drop_table("asset_versions")

    op.drop_index("idx_workflow_tasks_execution_order", table_name="workflow_tasks")
    op.drop_table("workflow_tasks")

    op.drop_index("idx_workflows_user_status", table_name="workflows")
    op.drop_index("ix_workflows_user_id", table_name="workflows")
    op.drop_table("workflows")

    op.drop_index("idx_asset_rel_child", table_name="asset_relationships")
    op.drop_index("idx_asset_rel_parent", table_name="asset_relationships")
    op.drop_table("asset_relationships")

    op.drop_index("idx_assets_user_status", table_name="assets")
    op.drop_index("ix_assets_project_id", table_name="assets")
    op.drop_index("ix_assets_user_id", table_name="assets")
    op.drop_table("assets")
