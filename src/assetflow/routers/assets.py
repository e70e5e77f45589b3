"""Asset, version and lineage endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from assetflow.auth.dependencies import resolve_identity
from assetflow.dependencies import get_facade
from assetflow.models.requests import (
    CreateAssetRequest,
    CreateAssetVersionRequest,
    UpdateAssetStatusRequest,
)
from assetflow.orchestration import OrchestrationFacade
from assetflow.serializers import serialize_asset, serialize_version

router = APIRouter(prefix="/api/v1/assets", tags=["assets"])


@router.post("", status_code=201)
async def create_asset(
    body: CreateAssetRequest,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    """Register an asset; its first version is recorded alongside it."""
    asset = facade.create_asset(user_id, body.model_dump(exclude_none=True))
    return {"success": True, "data": serialize_asset(asset)}


@router.get("/{asset_id}")
async def get_asset(
    asset_id: str,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    """Asset with direct parents, children and versions."""
    return {"success": True, "data": facade.get_asset(user_id, asset_id)}


@router.patch("/{asset_id}/status")
async def update_asset_status(
    asset_id: str,
    body: UpdateAssetStatusRequest,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    """Archive, restore or soft-delete an asset."""
    asset = facade.update_asset_status(user_id, asset_id, body.status)
    return {"success": True, "data": serialize_asset(asset)}


@router.get("/{asset_id}/versions")
async def list_asset_versions(
    asset_id: str,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    versions = facade.list_versions(user_id, asset_id)
    return {"success": True, "data": [serialize_version(row) for row in versions]}


@router.post("/{asset_id}/versions", status_code=201)
async def create_asset_version(
    asset_id: str,
    body: CreateAssetVersionRequest,
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    version = facade.create_version(user_id, asset_id, body.model_dump(exclude_none=True))
    return {"success": True, "data": serialize_version(version)}


@router.get("/{asset_id}/lineage")
async def get_asset_lineage(
    asset_id: str,
    depth: int | None = Query(default=None, ge=1),
    user_id: UUID = Depends(resolve_identity),
    facade: OrchestrationFacade = Depends(get_facade),
):
    """Transitive ancestors and descendants, nearest first."""
    return {"success": True, "data": facade.get_lineage(user_id, asset_id, max_depth=depth)}
