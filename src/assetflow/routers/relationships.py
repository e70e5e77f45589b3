"""Asset relationship endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from assetflow.auth.dependencies import resolve_identity
from assetflow.dependencies import get_facade
from assetflow.models.requests import CreateRelationshipRequest
from assetflow.orchestration import OrchestrationFacade
from assetflow.ratelimit import limiter
from assetflow.serializers import serialize_relationship

router = APIRouter(prefix="/api/v1/relationships", tags=["relationships"])


@router.post("", status_code=201)
@limiter.limit("120/minute")
async def create_relationship(
    request: Request,
    body: CreateRelationshipRequest,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    """Create a parent -> child lineage edge between two of the caller's assets."""
    relationship = facade.create_relationship(
        user_id,
        body.parent_asset_id,
        body.child_asset_id,
        body.relationship_type,
        body.notes,
    )
    return {"success": True, "data": serialize_relationship(relationship)}


@router.delete("")
async def delete_relationship(
    parent_asset_id: str | None = Query(default=None),
    child_asset_id: str | None = Query(default=None),
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    """Delete the edge between two of the caller's assets."""
    result = facade.delete_relationship(user_id, parent_asset_id, child_asset_id)
    return {"success": True, "data": result}
