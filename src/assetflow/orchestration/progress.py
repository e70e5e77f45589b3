"""Workflow progress derived from current task rows."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable


@dataclass(frozen=True)
class WorkflowProgress:
    percentage: int
    total_tasks: int
    completed: int
    in_progress: int
    failed: int
    pending: int

    def to_dict(self) -> dict:
        return asdict(self)


def _percent(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    # Half-up, so 1 of 8 tasks reads 13% rather than Python's banker's 12%.
    ratio = Decimal(100 * completed) / Decimal(total)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_progress(statuses: Iterable) -> WorkflowProgress:
    """Aggregate task statuses (strings or objects with ``status``)."""
    total = completed = in_progress = failed = 0
    for item in statuses:
        status = item if isinstance(item, str) else getattr(item, "status", None)
        status = str(status or "").strip().lower()
        total += 1
        if status == "completed":
            completed += 1
        elif status == "in_progress":
            in_progress += 1
        elif status == "failed":
            failed += 1

    return WorkflowProgress(
        percentage=_percent(completed, total),
        total_tasks=total,
        completed=completed,
        in_progress=in_progress,
        failed=failed,
        pending=total - completed - failed - in_progress,
    )
