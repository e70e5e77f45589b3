"""Persistent records for assets, lineage and workflows."""

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def compile_jsonb_for_sqlite(element, compiler, **kw):
    return compiler.visit_JSON(element, **kw)


Base = declarative_base()


ASSET_STATUSES = ("active", "archived", "deleted")
ASSET_TYPES = ("image", "video", "audio", "text", "prompt", "experiment", "workflow", "comparison")
RELATIONSHIP_TYPES = ("input", "variation", "enhancement", "remix", "iteration")

WORKFLOW_STATUSES = ("pending", "in_progress", "completed", "failed", "cancelled")
WORKFLOW_TERMINAL_STATUSES = frozenset({"completed", "failed", "cancelled"})
TASK_STATUSES = ("pending", "in_progress", "completed", "failed")
TASK_TERMINAL_STATUSES = frozenset({"completed", "failed"})
TASK_TYPES = ("analyze", "generate_image", "generate_video", "generate_lipsync", "process", "review", "other")
ASSIGNEES = ("aria", "kai", "human")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _in_clause(values) -> str:
    return ",".join(f"'{value}'" for value in values)


class Asset(Base):
    """Generated media asset owned by a single user."""

    __tablename__ = "assets"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    project_id = Column(UUID(as_uuid=True), nullable=True, index=True)  # projects live outside this service
    folder_id = Column(UUID(as_uuid=True), nullable=True)

    asset_type = Column(String(50), nullable=False, default="image")
    source_app = Column(String(50))
    source_tool = Column(String(50))

    file_url = Column(Text)
    thumbnail_url = Column(Text)
    text_content = Column(Text)
    generation_params = Column(JSONB, nullable=False, default=dict)
    credits_used = Column(Integer, nullable=False, default=0)

    # Mutable metadata
    name = Column(String(255))
    tags = Column(JSONB, default=list)
    notes = Column(Text)

    status = Column(String(16), nullable=False, default="active")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    versions = relationship(
        "AssetVersion",
        back_populates="asset",
        cascade="all, delete-orphan",
        order_by="AssetVersion.version_number",
    )

    __table_args__ = (
        Index("idx_assets_user_status", "user_id", "status"),
        CheckConstraint(f"status in ({_in_clause(ASSET_STATUSES)})", name="ck_assets_status"),
        CheckConstraint(f"asset_type in ({_in_clause(ASSET_TYPES)})", name="ck_assets_asset_type"),
    )


class AssetRelationship(Base):
    """Directed lineage edge; the child was derived from or relates to the parent."""

    __tablename__ = "asset_relationships"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    parent_asset_id = Column(UUID(as_uuid=True), ForeignKey("assets.id", ondelete="CASCADE"), nullable=False)
    child_asset_id = Column(UUID(as_uuid=True), ForeignKey("assets.id", ondelete="CASCADE"), nullable=False)
    relationship_type = Column(String(50), nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    parent_asset = relationship("Asset", foreign_keys=[parent_asset_id])
    child_asset = relationship("Asset", foreign_keys=[child_asset_id])

    __table_args__ = (
        UniqueConstraint("parent_asset_id", "child_asset_id", name="uq_asset_relationships_pair"),
        CheckConstraint("parent_asset_id <> child_asset_id", name="ck_asset_relationships_no_self_loop"),
        CheckConstraint(
            f"relationship_type in ({_in_clause(RELATIONSHIP_TYPES)})",
            name="ck_asset_relationships_type",
        ),
        Index("idx_asset_rel_parent", "parent_asset_id"),
        Index("idx_asset_rel_child", "child_asset_id"),
    )


class AssetVersion(Base):
    """Numbered revision of an asset's content."""

    __tablename__ = "asset_versions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    asset_id = Column(UUID(as_uuid=True), ForeignKey("assets.id", ondelete="CASCADE"), nullable=False)
    version_number = Column(Integer, nullable=False)
    # Producing task, when the version was recorded by orchestration.
    task_id = Column(UUID(as_uuid=True), ForeignKey("workflow_tasks.id", ondelete="SET NULL"), nullable=True)

    file_url = Column(Text)
    thumbnail_url = Column(Text)
    generation_params = Column(JSONB, nullable=False, default=dict)
    credits_used = Column(Integer, nullable=False, default=0)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    asset = relationship("Asset", back_populates="versions")

    __table_args__ = (
        UniqueConstraint("asset_id", "version_number", name="uq_asset_versions_number"),
        CheckConstraint("version_number >= 1", name="ck_asset_versions_positive"),
        Index("idx_asset_versions", "asset_id", "version_number"),
    )


class Workflow(Base):
    """User-submitted unit of orchestrated work."""

    __tablename__ = "workflows"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text)
    request_data = Column(JSONB, nullable=False, default=dict)
    status = Column(String(16), nullable=False, default="pending")
    priority = Column(Integer, nullable=False, default=3)
    assigned_to = Column(String(16))
    result_data = Column(JSONB, default=dict)
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True))

    tasks = relationship(
        "WorkflowTask",
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by=lambda: [WorkflowTask.execution_order, WorkflowTask.created_at],
    )

    __table_args__ = (
        Index("idx_workflows_user_status", "user_id", "status", "created_at"),
        CheckConstraint(f"status in ({_in_clause(WORKFLOW_STATUSES)})", name="ck_workflows_status"),
        CheckConstraint("priority between 1 and 5", name="ck_workflows_priority"),
    )


class WorkflowTask(Base):
    """Single tracked task within a workflow."""

    __tablename__ = "workflow_tasks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    workflow_id = Column(UUID(as_uuid=True), ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False)
    task_type = Column(String(32), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text)
    assigned_to = Column(String(16), nullable=False, default="kai")
    input_data = Column(JSONB, default=dict)
    output_data = Column(JSONB, default=dict)
    status = Column(String(16), nullable=False, default="pending")
    error_message = Column(Text)
    execution_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    workflow = relationship("Workflow", back_populates="tasks")

    __table_args__ = (
        Index("idx_workflow_tasks_execution_order", "workflow_id", "execution_order"),
        CheckConstraint(f"status in ({_in_clause(TASK_STATUSES)})", name="ck_workflow_tasks_status"),
        CheckConstraint(f"task_type in ({_in_clause(TASK_TYPES)})", name="ck_workflow_tasks_task_type"),
    )
