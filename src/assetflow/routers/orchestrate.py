"""Workflow orchestration endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from assetflow.auth.dependencies import resolve_identity
from assetflow.dependencies import get_facade
from assetflow.models.requests import (
    CompleteTaskRequest,
    FailTaskRequest,
    SubmitWorkflowRequest,
    TaskDefinition,
    WorkflowTransitionRequest,
)
from assetflow.orchestration import OrchestrationFacade
from assetflow.ratelimit import limiter
from assetflow.serializers import (
    serialize_asset,
    serialize_relationship,
    serialize_task,
    serialize_workflow,
)

router = APIRouter(prefix="/api/v1/orchestrate", tags=["orchestrate"])


@router.post("/submit", status_code=201)
@limiter.limit("30/minute")
async def submit_workflow(
    request: Request,
    body: SubmitWorkflowRequest,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    """Record a new workflow request in pending state."""
    workflow = facade.submit_workflow(
        user_id,
        title=body.title,
        request_data=body.request_data,
        description=body.description,
        priority=body.priority,
        assigned_to=body.assigned_to,
        tasks=[task.model_dump(exclude_none=True) for task in body.tasks],
    )
    workflow_id = str(workflow.id)
    return {
        "success": True,
        "workflow": serialize_workflow(workflow),
        "message": "Workflow submitted successfully.",
        "next_steps": [f"Check status: GET /api/v1/orchestrate/status/{workflow_id}"],
    }


@router.get("/status/{workflow_id}")
async def get_workflow_status(
    workflow_id: str,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    """Workflow record, task list and progress derived from current task rows."""
    return {"success": True, **facade.get_workflow_status(user_id, workflow_id)}


@router.get("/workflows")
async def list_workflows(
    status: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    total, rows = facade.list_workflows(user_id, status=status, limit=limit, offset=offset)
    return {
        "success": True,
        "total": total,
        "limit": limit,
        "offset": offset,
        "workflows": [serialize_workflow(row) for row in rows],
    }


@router.post("/workflows/{workflow_id}/tasks", status_code=201)
async def add_workflow_task(
    workflow_id: str,
    body: TaskDefinition,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    task = facade.add_task(user_id, workflow_id, body.model_dump(exclude_none=True))
    return {"success": True, "data": serialize_task(task)}


@router.post("/workflows/{workflow_id}/transition")
async def transition_workflow(
    workflow_id: str,
    body: WorkflowTransitionRequest,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    """Set the workflow's authoritative status."""
    workflow = facade.transition_workflow(
        user_id,
        workflow_id,
        body.status,
        result_data=body.result_data,
        error_message=body.error_message,
    )
    return {"success": True, "data": serialize_workflow(workflow)}


@router.post("/workflows/{workflow_id}/recompute")
async def recompute_workflow_status(
    workflow_id: str,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    """Derive the workflow status from its tasks and store it."""
    workflow, changed = facade.recompute_workflow_status(user_id, workflow_id)
    return {"success": True, "data": {"workflow": serialize_workflow(workflow), "changed": changed}}


@router.delete("/workflows/{workflow_id}")
async def delete_workflow(
    workflow_id: str,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    """Delete a workflow and its tasks; produced assets are kept."""
    return {"success": True, "data": facade.delete_workflow(user_id, workflow_id)}


@router.post("/tasks/{task_id}/start")
async def start_task(
    task_id: str,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    task = facade.start_task(user_id, task_id)
    return {"success": True, "data": serialize_task(task)}


@router.post("/tasks/{task_id}/complete")
async def complete_task(
    task_id: str,
    body: Optional[CompleteTaskRequest] = None,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    """Mark a running task completed, recording its derived asset when declared."""
    body = body or CompleteTaskRequest()
    derived = body.derived_asset.model_dump() if body.derived_asset is not None else None
    task, asset, edges = facade.complete_task(
        user_id,
        task_id,
        output_data=body.output_data,
        derived_asset=derived,
    )
    return {
        "success": True,
        "data": {
            "task": serialize_task(task),
            "asset": serialize_asset(asset) if asset is not None else None,
            "relationships": [serialize_relationship(edge) for edge in edges],
        },
    }


@router.post("/tasks/{task_id}/fail")
async def fail_task(
    task_id: str,
    body: Optional[FailTaskRequest] = None,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    body = body or FailTaskRequest()
    task = facade.fail_task(user_id, task_id, body.error_message)
    return {"success": True, "data": serialize_task(task)}
