"""Relationship service: request validation and atomic artifact recording.

Sits in front of ``LineageStore``. It rejects malformed input before touching
the database and exposes ``record_derived_asset``, which the workflow state
machine calls when a task completes with an artifact. None of these methods
commit; the caller's critical section decides whether everything lands or
nothing does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from assetflow.errors import SelfLoopError, ValidationError
from assetflow.lineage.store import LineageStore
from assetflow.metadata import (
    ASSET_TYPES,
    RELATIONSHIP_TYPES,
    Asset,
    AssetRelationship,
    AssetVersion,
    WorkflowTask,
)

logger = logging.getLogger(__name__)

# Fields a caller may set when creating an asset; everything else is managed here.
ASSET_CREATE_FIELDS = (
    "asset_type",
    "source_app",
    "source_tool",
    "file_url",
    "thumbnail_url",
    "text_content",
    "generation_params",
    "credits_used",
    "name",
    "tags",
    "notes",
    "project_id",
    "folder_id",
)
VERSION_FIELDS = ("file_url", "thumbnail_url", "generation_params", "credits_used", "notes")


def parse_uuid(raw_value: Any, field_name: str) -> UUID:
    if isinstance(raw_value, UUID):
        return raw_value
    text = str(raw_value or "").strip()
    if not text:
        raise ValidationError(f"{field_name} is required")
    try:
        return UUID(text)
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"{field_name} must be a valid UUID")


def normalize_relationship_type(raw_value: Any) -> str:
    value = str(raw_value or "").strip().lower()
    if not value:
        raise ValidationError("relationship_type is required")
    if value not in RELATIONSHIP_TYPES:
        raise ValidationError(
            f"relationship_type must be one of: {', '.join(RELATIONSHIP_TYPES)}"
        )
    return value


def _clean_notes(notes: Any) -> Optional[str]:
    text = str(notes or "").strip()
    return text or None


def normalize_asset_attrs(attrs: dict | None) -> dict:
    """Validate and whitelist attributes for a new asset."""
    if attrs is None:
        attrs = {}
    if not isinstance(attrs, dict):
        raise ValidationError("asset must be an object")
    unknown = sorted(set(attrs) - set(ASSET_CREATE_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown asset field(s): {', '.join(unknown)}")

    normalized = {key: attrs[key] for key in ASSET_CREATE_FIELDS if attrs.get(key) is not None}
    asset_type = str(normalized.get("asset_type") or "image").strip().lower()
    if asset_type not in ASSET_TYPES:
        raise ValidationError(f"asset_type must be one of: {', '.join(ASSET_TYPES)}")
    normalized["asset_type"] = asset_type

    params = normalized.get("generation_params", {})
    if not isinstance(params, dict):
        raise ValidationError("generation_params must be an object")
    normalized["generation_params"] = params

    try:
        credits = int(normalized.get("credits_used") or 0)
    except (TypeError, ValueError):
        raise ValidationError("credits_used must be an integer")
    if credits < 0:
        raise ValidationError("credits_used must be >= 0")
    normalized["credits_used"] = credits

    for key in ("project_id", "folder_id"):
        if key in normalized:
            normalized[key] = parse_uuid(normalized[key], key)
    if "notes" in normalized:
        normalized["notes"] = _clean_notes(normalized["notes"])
    if "tags" in normalized and not isinstance(normalized["tags"], list):
        raise ValidationError("tags must be an array")
    return normalized


@dataclass
class DerivedAssetSpec:
    """Artifact declared by a completing task."""

    parent_asset_ids: list[UUID] = field(default_factory=list)
    relationship_type: str = "input"
    asset: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict | None) -> "DerivedAssetSpec":
        if not isinstance(payload, dict):
            raise ValidationError("derived_asset must be an object")
        raw_parents = payload.get("parent_asset_ids")
        if raw_parents is None:
            raw_parents = []
        if not isinstance(raw_parents, list):
            raise ValidationError("parent_asset_ids must be an array")
        parents: list[UUID] = []
        for raw_parent in raw_parents:
            parent_id = parse_uuid(raw_parent, "parent_asset_ids")
            if parent_id not in parents:
                parents.append(parent_id)
        return cls(
            parent_asset_ids=parents,
            relationship_type=normalize_relationship_type(payload.get("relationship_type") or "input"),
            asset=normalize_asset_attrs(payload.get("asset")),
        )


class RelationshipService:
    """Validated lineage mutations on top of the store."""

    def __init__(self, db: Session, store: LineageStore | None = None):
        self.db = db
        self.store = store or LineageStore(db)

    def create_relationship(
        self,
        user_id: UUID,
        parent_asset_id: Any,
        child_asset_id: Any,
        relationship_type: Any,
        notes: Any = None,
    ) -> AssetRelationship:
        if not parent_asset_id or not child_asset_id or not relationship_type:
            raise ValidationError("parent_asset_id, child_asset_id, and relationship_type are required")
        parent_id = parse_uuid(parent_asset_id, "parent_asset_id")
        child_id = parse_uuid(child_asset_id, "child_asset_id")
        if parent_id == child_id:
            raise SelfLoopError()
        rel_type = normalize_relationship_type(relationship_type)

        relationship = self.store.create_relationship(
            user_id,
            parent_id,
            child_id,
            rel_type,
            notes=_clean_notes(notes),
        )
        logger.info("Created %s relationship %s -> %s", rel_type, parent_id, child_id)
        return relationship

    def delete_relationship(self, user_id: UUID, parent_asset_id: Any, child_asset_id: Any) -> tuple[UUID, UUID]:
        if not parent_asset_id or not child_asset_id:
            raise ValidationError("parent_asset_id and child_asset_id are required")
        parent_id = parse_uuid(parent_asset_id, "parent_asset_id")
        child_id = parse_uuid(child_asset_id, "child_asset_id")
        self.store.delete_relationship(user_id, parent_id, child_id)
        logger.info("Deleted relationship %s -> %s", parent_id, child_id)
        return parent_id, child_id

    def create_asset(self, user_id: UUID, attrs: dict | None) -> Asset:
        asset = self.store.create_asset(user_id, **normalize_asset_attrs(attrs))
        self.store.add_version(asset, **{key: getattr(asset, key) for key in VERSION_FIELDS})
        return asset

    def create_version(self, user_id: UUID, asset_id: Any, attrs: dict | None) -> AssetVersion:
        """Append the next version of an existing active asset."""
        attrs = attrs or {}
        if not attrs.get("file_url"):
            raise ValidationError("File URL is required")
        if not attrs.get("generation_params"):
            raise ValidationError("Generation parameters are required")
        if not isinstance(attrs.get("generation_params"), dict):
            raise ValidationError("generation_params must be an object")
        asset = self.store.require_asset(
            user_id,
            parse_uuid(asset_id, "asset_id"),
            active_only=True,
            for_update=True,
        )
        version = self.store.add_version(
            asset,
            file_url=attrs.get("file_url"),
            thumbnail_url=attrs.get("thumbnail_url"),
            generation_params=attrs.get("generation_params"),
            credits_used=attrs.get("credits_used") or 0,
            notes=_clean_notes(attrs.get("notes")),
        )
        logger.info("Recorded version %s of asset %s", version.version_number, asset.id)
        return version

    def record_derived_asset(
        self,
        user_id: UUID,
        producing_task: WorkflowTask | None,
        parent_asset_ids: list[UUID],
        new_asset_attrs: dict | None,
        relationship_type: str,
    ) -> tuple[Asset, list[AssetRelationship]]:
        """Create an asset, its first version and one edge per parent.

        Every row is flushed into the caller's transaction; any failure
        propagates so the caller rolls the whole unit back.
        """
        rel_type = normalize_relationship_type(relationship_type)
        asset = self.store.create_asset(user_id, **normalize_asset_attrs(new_asset_attrs))
        task_id = producing_task.id if producing_task is not None else None
        self.store.add_version(
            asset,
            task_id=task_id,
            **{key: getattr(asset, key) for key in VERSION_FIELDS},
        )

        relationships = []
        for parent_id in parent_asset_ids:
            relationships.append(
                self.store.create_relationship(user_id, parent_id, asset.id, rel_type)
            )
        logger.info(
            "Recorded derived asset %s from %d parent(s) for task %s",
            asset.id,
            len(relationships),
            task_id,
        )
        return asset, relationships
