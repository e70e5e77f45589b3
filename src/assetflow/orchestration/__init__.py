"""Workflow orchestration tracking: state machine, progress and query facade."""

from assetflow.orchestration.facade import OrchestrationFacade
from assetflow.orchestration.progress import WorkflowProgress, compute_progress

__all__ = ["OrchestrationFacade", "WorkflowProgress", "compute_progress"]
