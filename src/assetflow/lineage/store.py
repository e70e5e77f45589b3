"""Lineage store: assets, relationship edges and version history.

The store works on a caller-provided session and never commits; callers wrap
mutations in ``assetflow.locking.critical_section`` so that the cycle check
and the edge insert, or the version-number read and the version insert,
happen as one unit.

Soft-deleted assets are invisible to every graph operation: their edges are
dropped from the live edge set used for traversal and cycle checks.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session, aliased

from assetflow.database import hold_transaction_lock
from assetflow.errors import (
    CycleDetectedError,
    DuplicateRelationshipError,
    NotFoundError,
    SelfLoopError,
)
from assetflow.locking import lineage_key
from assetflow.metadata import Asset, AssetRelationship, AssetVersion

logger = logging.getLogger(__name__)

Edge = tuple[UUID, UUID]


class LineageStore:
    """Session-bound access to the asset lineage graph."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def get_asset(
        self,
        user_id: UUID,
        asset_id: UUID,
        *,
        active_only: bool = False,
        include_deleted: bool = False,
        for_update: bool = False,
    ) -> Optional[Asset]:
        query = self.db.query(Asset).filter(Asset.id == asset_id, Asset.user_id == user_id)
        if active_only:
            query = query.filter(Asset.status == "active")
        elif not include_deleted:
            query = query.filter(Asset.status != "deleted")
        if for_update:
            query = query.with_for_update()
        return query.first()

    def require_asset(self, user_id: UUID, asset_id: UUID, *, label: str = "Asset", **kwargs) -> Asset:
        asset = self.get_asset(user_id, asset_id, **kwargs)
        if asset is None:
            raise NotFoundError(f"{label} not found or not accessible")
        return asset

    def create_asset(self, user_id: UUID, **attrs) -> Asset:
        asset = Asset(user_id=user_id, status="active", **attrs)
        self.db.add(asset)
        self.db.flush()
        return asset

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def live_edges(self, user_id: UUID | None = None) -> list[Edge]:
        """Snapshot of edges whose endpoints are both non-deleted, in one query."""
        parent = aliased(Asset)
        child = aliased(Asset)
        query = (
            self.db.query(AssetRelationship.parent_asset_id, AssetRelationship.child_asset_id)
            .join(parent, parent.id == AssetRelationship.parent_asset_id)
            .join(child, child.id == AssetRelationship.child_asset_id)
            .filter(parent.status != "deleted", child.status != "deleted")
        )
        if user_id is not None:
            query = query.filter(parent.user_id == user_id)
        return [(row[0], row[1]) for row in query.all()]

    def get_relationship(self, parent_id: UUID, child_id: UUID) -> Optional[AssetRelationship]:
        return (
            self.db.query(AssetRelationship)
            .filter(
                AssetRelationship.parent_asset_id == parent_id,
                AssetRelationship.child_asset_id == child_id,
            )
            .first()
        )

    def create_relationship(
        self,
        user_id: UUID,
        parent_id: UUID,
        child_id: UUID,
        relationship_type: str,
        notes: str | None = None,
    ) -> AssetRelationship:
        """Insert a parent->child edge after ownership, uniqueness and cycle checks."""
        if parent_id == child_id:
            raise SelfLoopError()

        # Serializes cycle check and insert with writers in other processes.
        hold_transaction_lock(self.db, lineage_key(user_id))
        self.require_asset(user_id, parent_id, label="Parent asset", active_only=True, for_update=True)
        self.require_asset(user_id, child_id, label="Child asset", active_only=True, for_update=True)

        if self.get_relationship(parent_id, child_id) is not None:
            logger.warning("Rejected duplicate relationship %s -> %s", parent_id, child_id)
            raise DuplicateRelationshipError()

        # parent -> child closes a cycle iff parent is already a descendant of child.
        if self.is_reachable(child_id, parent_id, self.live_edges(user_id)):
            logger.warning("Rejected relationship %s -> %s: would create a cycle", parent_id, child_id)
            raise CycleDetectedError()

        relationship = AssetRelationship(
            parent_asset_id=parent_id,
            child_asset_id=child_id,
            relationship_type=relationship_type,
            notes=notes,
        )
        self.db.add(relationship)
        self.db.flush()
        return relationship

    def delete_relationship(self, user_id: UUID, parent_id: UUID, child_id: UUID) -> None:
        parent = self.get_asset(user_id, parent_id, include_deleted=True)
        child = self.get_asset(user_id, child_id, include_deleted=True)
        if parent is None or child is None:
            raise NotFoundError("One or both assets not found or not accessible")
        relationship = self.get_relationship(parent_id, child_id)
        if relationship is None:
            raise NotFoundError("Relationship not found")
        self.db.delete(relationship)
        self.db.flush()

    def direct_relations(self, asset_id: UUID) -> tuple[list, list]:
        """Immediate (relationship, asset) pairs as parents and children, excluding deleted assets."""
        parents = (
            self.db.query(AssetRelationship, Asset)
            .join(Asset, Asset.id == AssetRelationship.parent_asset_id)
            .filter(AssetRelationship.child_asset_id == asset_id, Asset.status != "deleted")
            .order_by(AssetRelationship.created_at.asc())
            .all()
        )
        children = (
            self.db.query(AssetRelationship, Asset)
            .join(Asset, Asset.id == AssetRelationship.child_asset_id)
            .filter(AssetRelationship.parent_asset_id == asset_id, Asset.status != "deleted")
            .order_by(AssetRelationship.created_at.asc())
            .all()
        )
        return list(parents), list(children)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    @staticmethod
    def _adjacency(edges: Iterable[Edge], *, reverse: bool = False) -> dict[UUID, list[UUID]]:
        adjacency: dict[UUID, list[UUID]] = defaultdict(list)
        for parent_id, child_id in edges:
            if reverse:
                adjacency[child_id].append(parent_id)
            else:
                adjacency[parent_id].append(child_id)
        return adjacency

    @staticmethod
    def _walk(adjacency: dict[UUID, list[UUID]], start: UUID, max_depth: int | None = None) -> list[UUID]:
        """Breadth-first closure from start, excluding start itself."""
        visited = {start}
        order: list[UUID] = []
        frontier = deque([(start, 0)])
        while frontier:
            node, depth = frontier.popleft()
            if max_depth is not None and depth >= max_depth:
                continue
            for neighbor in adjacency.get(node, ()):
                if neighbor in visited:
                    continue
                visited.add(neighbor)
                order.append(neighbor)
                frontier.append((neighbor, depth + 1))
        return order

    def is_reachable(self, source: UUID, target: UUID, edges: Iterable[Edge]) -> bool:
        """True when target is reachable from source along parent->child edges."""
        return target in self._walk(self._adjacency(edges), source)

    def _load_assets(self, ids: list[UUID]) -> list[Asset]:
        if not ids:
            return []
        rows = {
            row.id: row
            for row in self.db.query(Asset).filter(Asset.id.in_(ids), Asset.status != "deleted").all()
        }
        return [rows[asset_id] for asset_id in ids if asset_id in rows]

    def ancestors_of(self, user_id: UUID, asset_id: UUID, *, max_depth: int | None = None) -> list[Asset]:
        """Transitive parents, nearest first."""
        adjacency = self._adjacency(self.live_edges(user_id), reverse=True)
        return self._load_assets(self._walk(adjacency, asset_id, max_depth))

    def descendants_of(self, user_id: UUID, asset_id: UUID, *, max_depth: int | None = None) -> list[Asset]:
        """Transitive children, nearest first."""
        adjacency = self._adjacency(self.live_edges(user_id))
        return self._load_assets(self._walk(adjacency, asset_id, max_depth))

    def find_cycles(self, user_id: UUID | None = None) -> list[list[UUID]]:
        """Return one node path per back edge found in the live edge set."""
        adjacency = self._adjacency(self.live_edges(user_id))
        nodes = set(adjacency)
        for targets in adjacency.values():
            nodes.update(targets)

        white, grey, black = 0, 1, 2
        color = {node: white for node in nodes}
        cycles: list[list[UUID]] = []
        for root in sorted(nodes, key=str):
            if color[root] != white:
                continue
            path = [root]
            color[root] = grey
            stack = [(root, iter(adjacency.get(root, ())))]
            while stack:
                node, children = stack[-1]
                advanced = False
                for child in children:
                    if color[child] == grey:
                        cycles.append(path[path.index(child):] + [child])
                    elif color[child] == white:
                        color[child] = grey
                        path.append(child)
                        stack.append((child, iter(adjacency.get(child, ()))))
                        advanced = True
                        break
                if not advanced:
                    color[node] = black
                    path.pop()
                    stack.pop()
        return cycles

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def next_version_number(self, asset_id: UUID) -> int:
        current = (
            self.db.query(func.max(AssetVersion.version_number))
            .filter(AssetVersion.asset_id == asset_id)
            .scalar()
        )
        return int(current or 0) + 1

    def add_version(self, asset: Asset, *, task_id: UUID | None = None, **attrs) -> AssetVersion:
        """Append the next version; caller must hold the asset's critical section."""
        version = AssetVersion(
            asset_id=asset.id,
            version_number=self.next_version_number(asset.id),
            task_id=task_id,
            file_url=attrs.get("file_url"),
            thumbnail_url=attrs.get("thumbnail_url"),
            generation_params=attrs.get("generation_params") or {},
            credits_used=int(attrs.get("credits_used") or 0),
            notes=attrs.get("notes"),
        )
        self.db.add(version)
        self.db.flush()
        return version

    def list_versions(self, asset_id: UUID) -> list[AssetVersion]:
        return (
            self.db.query(AssetVersion)
            .filter(AssetVersion.asset_id == asset_id)
            .order_by(AssetVersion.version_number.desc())
            .all()
        )
