"""Asset lineage graph: store and relationship service."""

from assetflow.lineage.store import LineageStore
from assetflow.lineage.service import DerivedAssetSpec, RelationshipService

__all__ = ["DerivedAssetSpec", "LineageStore", "RelationshipService"]
