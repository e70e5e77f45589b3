"""Identity-scoped entry point used by the API routers and the CLI.

Every operation takes the caller's ``user_id`` explicitly and resolves
ownership before reading or writing. Records owned by someone else are
reported exactly like missing ones (``NotFoundError``). Writes run inside a
``critical_section`` so each call commits as a single unit or not at all.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from assetflow.database import hold_transaction_lock
from assetflow.errors import NotFoundError, ValidationError
from assetflow.lineage.service import DerivedAssetSpec, RelationshipService, parse_uuid
from assetflow.lineage.store import LineageStore
from assetflow.locking import (
    KeyedLock,
    asset_key,
    critical_section,
    lineage_key,
    workflow_key,
)
from assetflow.metadata import (
    ASSET_STATUSES,
    WORKFLOW_STATUSES,
    Asset,
    AssetRelationship,
    AssetVersion,
    Workflow,
    WorkflowTask,
)
from assetflow.orchestration import state_machine
from assetflow.orchestration.progress import compute_progress
from assetflow.serializers import (
    serialize_asset,
    serialize_relation_info,
    serialize_task,
    serialize_version,
    serialize_workflow,
)
from assetflow.settings import settings

logger = logging.getLogger(__name__)


class OrchestrationFacade:
    """Composes the lineage store, relationship service, state machine and progress."""

    def __init__(self, db: Session, locks: KeyedLock | None = None):
        self.db = db
        self.locks = locks
        self.store = LineageStore(db)
        self.relationships = RelationshipService(db, self.store)

    def _section(self, *keys: str):
        return critical_section(self.db, *keys, locks=self.locks)

    # ------------------------------------------------------------------
    # Lineage
    # ------------------------------------------------------------------

    def create_relationship(
        self,
        user_id: UUID,
        parent_asset_id: Any,
        child_asset_id: Any,
        relationship_type: Any,
        notes: Any = None,
    ) -> AssetRelationship:
        with self._section(lineage_key(user_id)):
            relationship = self.relationships.create_relationship(
                user_id,
                parent_asset_id,
                child_asset_id,
                relationship_type,
                notes,
            )
        return relationship

    def delete_relationship(self, user_id: UUID, parent_asset_id: Any, child_asset_id: Any) -> dict:
        with self._section(lineage_key(user_id)):
            parent_id, child_id = self.relationships.delete_relationship(
                user_id,
                parent_asset_id,
                child_asset_id,
            )
        return {
            "parent_asset_id": str(parent_id),
            "child_asset_id": str(child_id),
            "action": "deleted",
        }

    def create_asset(self, user_id: UUID, attrs: dict | None) -> Asset:
        with self._section():
            asset = self.relationships.create_asset(user_id, attrs)
        return asset

    def _asset_or_404(self, user_id: UUID, asset_id: Any) -> Asset:
        return self.store.require_asset(user_id, parse_uuid(asset_id, "asset_id"))

    def get_asset(self, user_id: UUID, asset_id: Any) -> dict:
        asset = self._asset_or_404(user_id, asset_id)
        parents, children = self.store.direct_relations(asset.id)
        payload = serialize_asset(asset)
        payload["parent_assets"] = [serialize_relation_info(rel, row) for rel, row in parents]
        payload["child_assets"] = [serialize_relation_info(rel, row) for rel, row in children]
        payload["versions"] = [serialize_version(row) for row in self.store.list_versions(asset.id)]
        return payload

    def update_asset_status(self, user_id: UUID, asset_id: Any, status: Any) -> Asset:
        target = str(status or "").strip().lower()
        if target not in ASSET_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ASSET_STATUSES)}")
        parsed_id = parse_uuid(asset_id, "asset_id")
        # Status changes alter which edges are live, so they share the graph lock.
        with self._section(lineage_key(user_id), asset_key(parsed_id)):
            hold_transaction_lock(self.db, lineage_key(user_id))
            asset = self.store.require_asset(user_id, parsed_id, for_update=True)
            if asset.status != target:
                logger.info("Asset %s status %s -> %s", asset.id, asset.status, target)
                asset.status = target
                self.db.flush()
        return asset

    def list_versions(self, user_id: UUID, asset_id: Any) -> list[AssetVersion]:
        asset = self._asset_or_404(user_id, asset_id)
        return self.store.list_versions(asset.id)

    def create_version(self, user_id: UUID, asset_id: Any, attrs: dict | None) -> AssetVersion:
        parsed_id = parse_uuid(asset_id, "asset_id")
        with self._section(asset_key(parsed_id)):
            version = self.relationships.create_version(user_id, parsed_id, attrs)
        return version

    def get_lineage(self, user_id: UUID, asset_id: Any, max_depth: Optional[int] = None) -> dict:
        asset = self._asset_or_404(user_id, asset_id)
        if max_depth is not None and max_depth < 1:
            raise ValidationError("depth must be >= 1")
        depth = min(max_depth or settings.lineage_max_depth, settings.lineage_max_depth)
        return {
            "asset_id": str(asset.id),
            "ancestors": [serialize_asset(row) for row in self.store.ancestors_of(user_id, asset.id, max_depth=depth)],
            "descendants": [serialize_asset(row) for row in self.store.descendants_of(user_id, asset.id, max_depth=depth)],
        }

    def audit_lineage(self, user_id: UUID | None = None) -> list[list[str]]:
        return [[str(node) for node in cycle] for cycle in self.store.find_cycles(user_id)]

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    def _workflow_or_404(self, user_id: UUID, workflow_id: Any) -> Workflow:
        parsed_id = parse_uuid(workflow_id, "workflow_id")
        workflow = (
            self.db.query(Workflow)
            .filter(Workflow.id == parsed_id, Workflow.user_id == user_id)
            .first()
        )
        if workflow is None:
            raise NotFoundError("Workflow not found")
        return workflow

    def _task_workflow_id(self, user_id: UUID, task_id: Any) -> tuple[UUID, UUID]:
        parsed_id = parse_uuid(task_id, "task_id")
        row = (
            self.db.query(WorkflowTask.workflow_id)
            .join(Workflow, Workflow.id == WorkflowTask.workflow_id)
            .filter(WorkflowTask.id == parsed_id, Workflow.user_id == user_id)
            .first()
        )
        if row is None:
            raise NotFoundError("Task not found")
        return parsed_id, row[0]

    def submit_workflow(
        self,
        user_id: UUID,
        *,
        title: Any,
        request_data: Any,
        description: Any = None,
        priority: Any = None,
        assigned_to: Any = None,
        tasks: Any = None,
    ) -> Workflow:
        with self._section():
            workflow = state_machine.create_workflow(
                self.db,
                user_id=user_id,
                title=title,
                request_data=request_data,
                description=description,
                priority=priority,
                assigned_to=assigned_to,
                tasks=tasks,
            )
        return workflow

    def list_workflows(
        self,
        user_id: UUID,
        *,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[int, list[Workflow]]:
        status_value = str(status or "").strip().lower() or None
        if status_value and status_value not in WORKFLOW_STATUSES:
            raise ValidationError("Invalid workflow status filter")
        limit = max(1, min(int(limit), settings.workflow_list_limit_max))
        query = self.db.query(Workflow).filter(Workflow.user_id == user_id)
        if status_value:
            query = query.filter(Workflow.status == status_value)
        total = int(query.order_by(None).count() or 0)
        rows = (
            query.order_by(Workflow.created_at.desc(), Workflow.id.desc())
            .limit(limit)
            .offset(max(0, int(offset)))
            .all()
        )
        return total, rows

    def get_workflow_status(self, user_id: UUID, workflow_id: Any) -> dict:
        parsed_id = parse_uuid(workflow_id, "workflow_id")
        # One statement, so status, tasks and progress come from the same snapshot.
        workflow = (
            self.db.query(Workflow)
            .options(joinedload(Workflow.tasks))
            .filter(Workflow.id == parsed_id, Workflow.user_id == user_id)
            .populate_existing()
            .first()
        )
        if workflow is None:
            raise NotFoundError("Workflow not found")
        tasks = list(workflow.tasks)
        return {
            "workflow": serialize_workflow(workflow),
            "progress": compute_progress(tasks).to_dict(),
            "tasks": [serialize_task(task) for task in tasks],
            "result_data": workflow.result_data or {},
        }

    def add_task(self, user_id: UUID, workflow_id: Any, task: dict) -> WorkflowTask:
        workflow = self._workflow_or_404(user_id, workflow_id)
        with self._section(workflow_key(workflow.id)):
            locked = state_machine.lock_workflow(self.db, workflow_id=workflow.id, user_id=user_id)
            row = state_machine.add_task(self.db, workflow=locked, task=task)
        return row

    def start_task(self, user_id: UUID, task_id: Any) -> WorkflowTask:
        parsed_task_id, workflow_id = self._task_workflow_id(user_id, task_id)
        with self._section(workflow_key(workflow_id)):
            workflow = state_machine.lock_workflow(self.db, workflow_id=workflow_id, user_id=user_id)
            task = state_machine.get_task(self.db, workflow=workflow, task_id=parsed_task_id)
            state_machine.start_task(self.db, workflow=workflow, task=task)
        return task

    def complete_task(
        self,
        user_id: UUID,
        task_id: Any,
        *,
        output_data: dict | None = None,
        derived_asset: dict | None = None,
    ) -> tuple[WorkflowTask, Optional[Asset], list[AssetRelationship]]:
        spec = DerivedAssetSpec.from_payload(derived_asset) if derived_asset is not None else None
        parsed_task_id, workflow_id = self._task_workflow_id(user_id, task_id)
        keys = [workflow_key(workflow_id)]
        if spec is not None:
            keys.append(lineage_key(user_id))
        with self._section(*keys):
            workflow = state_machine.lock_workflow(self.db, workflow_id=workflow_id, user_id=user_id)
            task = state_machine.get_task(self.db, workflow=workflow, task_id=parsed_task_id)
            asset, edges = state_machine.complete_task(
                self.db,
                workflow=workflow,
                task=task,
                output_data=output_data,
                derived_asset=spec,
                relationships=self.relationships,
            )
        return task, asset, edges

    def fail_task(self, user_id: UUID, task_id: Any, error_message: str | None = None) -> WorkflowTask:
        parsed_task_id, workflow_id = self._task_workflow_id(user_id, task_id)
        with self._section(workflow_key(workflow_id)):
            workflow = state_machine.lock_workflow(self.db, workflow_id=workflow_id, user_id=user_id)
            task = state_machine.get_task(self.db, workflow=workflow, task_id=parsed_task_id)
            state_machine.fail_task(self.db, workflow=workflow, task=task, error_message=error_message)
        return task

    def transition_workflow(
        self,
        user_id: UUID,
        workflow_id: Any,
        status: Any,
        *,
        result_data: dict | None = None,
        error_message: str | None = None,
    ) -> Workflow:
        workflow = self._workflow_or_404(user_id, workflow_id)
        with self._section(workflow_key(workflow.id)):
            locked = state_machine.lock_workflow(self.db, workflow_id=workflow.id, user_id=user_id)
            state_machine.transition_workflow(
                self.db,
                workflow=locked,
                status=status,
                result_data=result_data,
                error_message=error_message,
            )
        return locked

    def recompute_workflow_status(self, user_id: UUID, workflow_id: Any) -> tuple[Workflow, bool]:
        workflow = self._workflow_or_404(user_id, workflow_id)
        with self._section(workflow_key(workflow.id)):
            locked = state_machine.lock_workflow(self.db, workflow_id=workflow.id, user_id=user_id)
            changed = state_machine.recompute_workflow_status(self.db, workflow=locked)
        return locked, changed

    def delete_workflow(self, user_id: UUID, workflow_id: Any) -> dict:
        workflow = self._workflow_or_404(user_id, workflow_id)
        deleted_id = str(workflow.id)
        with self._section(workflow_key(workflow.id)):
            locked = state_machine.lock_workflow(self.db, workflow_id=workflow.id, user_id=user_id)
            task_ids = [task.id for task in locked.tasks]
            if task_ids:
                # Versions outlive the workflow that produced them.
                self.db.query(AssetVersion).filter(AssetVersion.task_id.in_(task_ids)).update(
                    {AssetVersion.task_id: None},
                    synchronize_session=False,
                )
            self.db.delete(locked)
        logger.info("Deleted workflow %s and %d task(s)", deleted_id, len(task_ids))
        return {"deleted": True, "workflow_id": deleted_id}
