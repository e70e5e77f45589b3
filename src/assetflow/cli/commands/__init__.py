"""CLI commands package."""

from . import lineage, workflows

__all__ = [
    'lineage',
    'workflows',
]
