"""Shared dependencies for FastAPI endpoints."""

from fastapi import Depends
from sqlalchemy.orm import Session

from assetflow.database import get_db
from assetflow.orchestration import OrchestrationFacade


def get_facade(db: Session = Depends(get_db)) -> OrchestrationFacade:
    """Build the request-scoped orchestration facade."""
    return OrchestrationFacade(db)
