"""JSON-shaped views of persisted records, shared by routers and the CLI."""

from assetflow.metadata import Asset, AssetRelationship, AssetVersion, Workflow, WorkflowTask


def _str_or_none(value):
    return str(value) if value is not None else None


def serialize_asset(asset: Asset) -> dict:
    return {
        "id": str(asset.id),
        "user_id": str(asset.user_id),
        "project_id": _str_or_none(asset.project_id),
        "folder_id": _str_or_none(asset.folder_id),
        "asset_type": asset.asset_type,
        "source_app": asset.source_app,
        "source_tool": asset.source_tool,
        "file_url": asset.file_url,
        "thumbnail_url": asset.thumbnail_url,
        "text_content": asset.text_content,
        "generation_params": asset.generation_params or {},
        "credits_used": asset.credits_used or 0,
        "name": asset.name,
        "tags": list(asset.tags or []),
        "notes": asset.notes,
        "status": asset.status,
        "created_at": asset.created_at,
        "updated_at": asset.updated_at,
    }


def serialize_relation_info(relationship: AssetRelationship, asset: Asset) -> dict:
    return {
        "id": str(asset.id),
        "asset_type": asset.asset_type,
        "thumbnail_url": asset.thumbnail_url,
        "name": asset.name,
        "relationship_type": relationship.relationship_type,
        "created_at": relationship.created_at,
    }


def serialize_relationship(relationship: AssetRelationship) -> dict:
    return {
        "id": str(relationship.id),
        "parent_asset_id": str(relationship.parent_asset_id),
        "child_asset_id": str(relationship.child_asset_id),
        "relationship_type": relationship.relationship_type,
        "notes": relationship.notes,
        "created_at": relationship.created_at,
    }


def serialize_version(version: AssetVersion) -> dict:
    return {
        "id": str(version.id),
        "asset_id": str(version.asset_id),
        "version_number": version.version_number,
        "task_id": _str_or_none(version.task_id),
        "file_url": version.file_url,
        "thumbnail_url": version.thumbnail_url,
        "generation_params": version.generation_params or {},
        "credits_used": version.credits_used or 0,
        "notes": version.notes,
        "created_at": version.created_at,
    }


def serialize_workflow(workflow: Workflow) -> dict:
    return {
        "id": str(workflow.id),
        "title": workflow.title,
        "description": workflow.description,
        "status": workflow.status,
        "assigned_to": workflow.assigned_to,
        "priority": workflow.priority,
        "request_data": workflow.request_data or {},
        "created_at": workflow.created_at,
        "updated_at": workflow.updated_at,
        "completed_at": workflow.completed_at,
        "error_message": workflow.error_message,
    }


def serialize_task(task: WorkflowTask) -> dict:
    return {
        "id": str(task.id),
        "workflow_id": str(task.workflow_id),
        "title": task.title,
        "description": task.description,
        "type": task.task_type,
        "status": task.status,
        "assigned_to": task.assigned_to,
        "execution_order": task.execution_order,
        "input_data": task.input_data or {},
        "output_data": task.output_data or {},
        "created_at": task.created_at,
        "started_at": task.started_at,
        "completed_at": task.completed_at,
        "error_message": task.error_message,
    }
