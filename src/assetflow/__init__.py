"""AssetFlow - workflow orchestration tracking and asset lineage."""

__version__ = "0.1.0"
