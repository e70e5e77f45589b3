"""Pydantic request models for API endpoints.

Identifier fields are plain optional strings: the lineage and orchestration
services validate them so that missing or malformed values surface as
VALIDATION_ERROR with the same messages the CLI sees.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class CreateRelationshipRequest(BaseModel):
    parent_asset_id: Optional[str] = None
    child_asset_id: Optional[str] = None
    relationship_type: Optional[str] = None
    notes: Optional[str] = None


class CreateAssetRequest(BaseModel):
    asset_type: Optional[str] = None
    source_app: Optional[str] = None
    source_tool: Optional[str] = None
    file_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    text_content: Optional[str] = None
    generation_params: Optional[dict[str, Any]] = None
    credits_used: Optional[int] = None
    name: Optional[str] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = None
    project_id: Optional[str] = None
    folder_id: Optional[str] = None


class UpdateAssetStatusRequest(BaseModel):
    status: Optional[str] = None


class CreateAssetVersionRequest(BaseModel):
    file_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    generation_params: Optional[dict[str, Any]] = None
    credits_used: Optional[int] = None
    notes: Optional[str] = None


class TaskDefinition(BaseModel):
    title: Optional[str] = None
    task_type: Optional[str] = None
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    input_data: Optional[dict[str, Any]] = None
    execution_order: Optional[int] = None


class SubmitWorkflowRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    request_data: Optional[dict[str, Any]] = None
    priority: Optional[int] = None
    assigned_to: Optional[str] = None
    tasks: list[TaskDefinition] = Field(default_factory=list)


class DerivedAssetRequest(BaseModel):
    parent_asset_ids: list[str] = Field(default_factory=list)
    relationship_type: Optional[str] = None
    asset: dict[str, Any] = Field(default_factory=dict)


class CompleteTaskRequest(BaseModel):
    output_data: Optional[dict[str, Any]] = None
    derived_asset: Optional[DerivedAssetRequest] = None


class FailTaskRequest(BaseModel):
    error_message: Optional[str] = None


class WorkflowTransitionRequest(BaseModel):
    status: Optional[str] = None
    result_data: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
