"""Workflow and task lifecycle tracking.

Workflow: pending -> in_progress -> {completed, failed, cancelled}; a pending
workflow may also be cancelled directly. Task: pending -> in_progress ->
{completed, failed}. Terminal records never move again.

Workflow status is owned by the caller; ``recompute_workflow_status`` derives
it from the tasks only when explicitly invoked. Functions here mutate the
session and never commit.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from assetflow.errors import (
    AlreadyTerminalError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from assetflow.lineage.service import DerivedAssetSpec, RelationshipService
from assetflow.metadata import (
    ASSIGNEES,
    TASK_TERMINAL_STATUSES,
    TASK_TYPES,
    WORKFLOW_STATUSES,
    WORKFLOW_TERMINAL_STATUSES,
    Asset,
    AssetRelationship,
    Workflow,
    WorkflowTask,
)

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 3
DEFAULT_WORKFLOW_ASSIGNEE = "aria"
DEFAULT_TASK_ASSIGNEE = "kai"

_WORKFLOW_TRANSITIONS = {
    "pending": {"in_progress", "cancelled"},
    "in_progress": {"completed", "failed", "cancelled"},
}


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _optional_text(value) -> Optional[str]:
    text = str(value or "").strip()
    return text or None


def _normalize_assignee(value, *, default: str | None) -> Optional[str]:
    assignee = str(value or "").strip().lower()
    if not assignee:
        return default
    if assignee not in ASSIGNEES:
        raise ValidationError(f"assigned_to must be one of: {', '.join(ASSIGNEES)}")
    return assignee


def _normalize_priority(value) -> int:
    # Out-of-range or missing priorities fall back to the default.
    try:
        priority = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PRIORITY
    if 1 <= priority <= 5:
        return priority
    return DEFAULT_PRIORITY


def normalize_task_definition(task: dict) -> dict:
    if not isinstance(task, dict):
        raise ValidationError("Each task must be an object")
    title = str(task.get("title") or "").strip()
    if not title:
        raise ValidationError("Each task requires title")
    task_type = str(task.get("task_type") or task.get("type") or "").strip().lower()
    if task_type not in TASK_TYPES:
        raise ValidationError(f"Task {title} task_type must be one of: {', '.join(TASK_TYPES)}")
    input_data = task.get("input_data")
    if input_data is None:
        input_data = {}
    if not isinstance(input_data, dict):
        raise ValidationError(f"Task {title} input_data must be an object")
    execution_order = task.get("execution_order")
    if execution_order is not None:
        try:
            execution_order = int(execution_order)
        except (TypeError, ValueError):
            raise ValidationError(f"Task {title} execution_order must be an integer")
    return {
        "title": title,
        "task_type": task_type,
        "description": _optional_text(task.get("description")),
        "assigned_to": _normalize_assignee(task.get("assigned_to"), default=DEFAULT_TASK_ASSIGNEE),
        "input_data": input_data,
        "execution_order": execution_order,
    }


def lock_workflow(db: Session, *, workflow_id: UUID, user_id: UUID) -> Workflow:
    workflow = (
        db.query(Workflow)
        .filter(Workflow.id == workflow_id, Workflow.user_id == user_id)
        .with_for_update()
        .first()
    )
    if workflow is None:
        raise NotFoundError("Workflow not found")
    return workflow


def load_tasks(db: Session, workflow_id: UUID) -> list[WorkflowTask]:
    return (
        db.query(WorkflowTask)
        .filter(WorkflowTask.workflow_id == workflow_id)
        .order_by(WorkflowTask.execution_order.asc(), WorkflowTask.created_at.asc())
        .all()
    )


def _require_open_workflow(workflow: Workflow) -> None:
    if workflow.status in WORKFLOW_TERMINAL_STATUSES:
        raise AlreadyTerminalError(f"Workflow is already {workflow.status}")


def create_workflow(
    db: Session,
    *,
    user_id: UUID,
    title: str,
    request_data: dict | None,
    description: str | None = None,
    priority=None,
    assigned_to: str | None = None,
    tasks: list[dict] | None = None,
) -> Workflow:
    title = str(title or "").strip()
    if not title:
        raise ValidationError("Missing required field: title")
    if request_data is None:
        raise ValidationError("Missing required field: request_data")
    if not isinstance(request_data, dict):
        raise ValidationError("request_data must be an object")
    if tasks is not None and not isinstance(tasks, list):
        raise ValidationError("tasks must be an array")
    normalized_tasks = [normalize_task_definition(task) for task in tasks or []]

    workflow = Workflow(
        user_id=user_id,
        title=title,
        description=_optional_text(description),
        request_data=request_data,
        status="pending",
        priority=_normalize_priority(priority),
        assigned_to=_normalize_assignee(assigned_to, default=DEFAULT_WORKFLOW_ASSIGNEE),
        result_data={},
    )
    db.add(workflow)
    db.flush()

    for index, task in enumerate(normalized_tasks):
        if task["execution_order"] is None:
            task["execution_order"] = index
        db.add(WorkflowTask(workflow_id=workflow.id, status="pending", **task))
    db.flush()
    logger.info("Created workflow %s with %d task(s)", workflow.id, len(normalized_tasks))
    return workflow


def add_task(db: Session, *, workflow: Workflow, task: dict) -> WorkflowTask:
    _require_open_workflow(workflow)
    normalized = normalize_task_definition(task)
    if normalized["execution_order"] is None:
        current_max = (
            db.query(func.max(WorkflowTask.execution_order))
            .filter(WorkflowTask.workflow_id == workflow.id)
            .scalar()
        )
        normalized["execution_order"] = 0 if current_max is None else int(current_max) + 1
    row = WorkflowTask(workflow_id=workflow.id, status="pending", **normalized)
    db.add(row)
    db.flush()
    return row


def get_task(db: Session, *, workflow: Workflow, task_id: UUID) -> WorkflowTask:
    task = (
        db.query(WorkflowTask)
        .filter(WorkflowTask.id == task_id, WorkflowTask.workflow_id == workflow.id)
        .first()
    )
    if task is None:
        raise NotFoundError("Task not found")
    return task


def start_task(db: Session, *, workflow: Workflow, task: WorkflowTask) -> WorkflowTask:
    """pending -> in_progress; the first start also moves a pending workflow forward."""
    _require_open_workflow(workflow)
    if task.status in TASK_TERMINAL_STATUSES:
        raise AlreadyTerminalError(f"Task is already {task.status}")
    if task.status != "pending":
        raise InvalidTransitionError(f"Task cannot start from {task.status}")

    now = _now_utc()
    task.status = "in_progress"
    task.started_at = now
    if workflow.status == "pending":
        workflow.status = "in_progress"
        workflow.updated_at = now
    db.flush()
    logger.info("Task %s of workflow %s started", task.id, workflow.id)
    return task


def _require_running_task(workflow: Workflow, task: WorkflowTask, target: str) -> None:
    _require_open_workflow(workflow)
    if task.status in TASK_TERMINAL_STATUSES:
        raise AlreadyTerminalError(f"Task is already {task.status}")
    if task.status != "in_progress":
        raise InvalidTransitionError(f"Task must be in_progress before it can be {target}")


def complete_task(
    db: Session,
    *,
    workflow: Workflow,
    task: WorkflowTask,
    output_data: dict | None = None,
    derived_asset: DerivedAssetSpec | None = None,
    relationships: RelationshipService | None = None,
) -> tuple[Optional[Asset], list[AssetRelationship]]:
    """in_progress -> completed, recording the task's artifact first when declared.

    If recording the artifact raises, the task is left untouched and the
    error propagates to the enclosing critical section.
    """
    _require_running_task(workflow, task, "completed")
    if output_data is not None and not isinstance(output_data, dict):
        raise ValidationError("output_data must be an object")

    asset = None
    edges: list[AssetRelationship] = []
    if derived_asset is not None:
        service = relationships or RelationshipService(db)
        asset, edges = service.record_derived_asset(
            workflow.user_id,
            task,
            derived_asset.parent_asset_ids,
            derived_asset.asset,
            derived_asset.relationship_type,
        )

    now = _now_utc()
    task.status = "completed"
    task.completed_at = now
    task.error_message = None
    payload = dict(output_data or {})
    if asset is not None:
        payload.setdefault("asset_id", str(asset.id))
    if payload:
        task.output_data = payload
    db.flush()
    logger.info("Task %s of workflow %s completed", task.id, workflow.id)
    return asset, edges


def fail_task(db: Session, *, workflow: Workflow, task: WorkflowTask, error_message: str | None = None) -> WorkflowTask:
    _require_running_task(workflow, task, "failed")
    task.status = "failed"
    task.completed_at = _now_utc()
    task.error_message = _optional_text(error_message) or "Task failed"
    db.flush()
    logger.info("Task %s of workflow %s failed: %s", task.id, workflow.id, task.error_message)
    return task


def _enter_status(workflow: Workflow, status: str, *, result_data=None, error_message=None) -> None:
    now = _now_utc()
    workflow.status = status
    workflow.updated_at = now
    if status in WORKFLOW_TERMINAL_STATUSES and workflow.completed_at is None:
        workflow.completed_at = now
    if status == "completed" and result_data is not None:
        workflow.result_data = result_data
    if status == "failed":
        workflow.error_message = _optional_text(error_message) or "Workflow failed"


def transition_workflow(
    db: Session,
    *,
    workflow: Workflow,
    status: str,
    result_data: dict | None = None,
    error_message: str | None = None,
) -> Workflow:
    """Apply a caller-requested workflow status change."""
    target = str(status or "").strip().lower()
    if target not in WORKFLOW_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(WORKFLOW_STATUSES)}")
    if result_data is not None and not isinstance(result_data, dict):
        raise ValidationError("result_data must be an object")
    _require_open_workflow(workflow)
    if target not in _WORKFLOW_TRANSITIONS.get(workflow.status, set()):
        raise InvalidTransitionError(f"Workflow cannot move from {workflow.status} to {target}")

    previous = workflow.status
    _enter_status(workflow, target, result_data=result_data, error_message=error_message)
    db.flush()
    logger.info("Workflow %s moved %s -> %s", workflow.id, previous, target)
    return workflow


def derive_workflow_status(statuses: list[str], current: str) -> str:
    """Status implied by task states; a pending workflow stays pending until a task leaves pending."""
    if not statuses:
        return current
    if all(status == "completed" for status in statuses):
        return "completed"
    has_open = any(status in {"pending", "in_progress"} for status in statuses)
    if not has_open and any(status == "failed" for status in statuses):
        return "failed"
    if current == "pending" and all(status == "pending" for status in statuses):
        return "pending"
    return "in_progress"


def recompute_workflow_status(db: Session, *, workflow: Workflow) -> bool:
    """Set workflow status from its tasks. Returns True when it changed."""
    _require_open_workflow(workflow)
    tasks = load_tasks(db, workflow.id)
    target = derive_workflow_status([str(task.status or "") for task in tasks], workflow.status)
    if target == workflow.status:
        return False

    error_message = None
    if target == "failed":
        error_message = next(
            (task.error_message for task in tasks if task.status == "failed" and task.error_message),
            "One or more tasks failed",
        )
    previous = workflow.status
    _enter_status(workflow, target, error_message=error_message)
    db.flush()
    logger.info("Workflow %s recomputed %s -> %s", workflow.id, previous, target)
    return True
