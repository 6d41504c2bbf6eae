"""Live reference counting that gates guardrail deletion."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Session

from .. import models
from ..errors import ConflictError


@dataclass(frozen=True)
class ReferenceCounts:
    tool_count: int
    workload_tool_count: int

    @property
    def total(self) -> int:
        return self.tool_count + self.workload_tool_count


def count_references(db: Session, guardrail_id: UUID) -> ReferenceCounts:
    """Count associations in both stores that point at the guardrail."""

    tool_count = db.scalar(
        sa.select(sa.func.count())
        .select_from(models.ToolGuardrail)
        .where(models.ToolGuardrail.guardrail_id == guardrail_id)
    )
    workload_tool_count = db.scalar(
        sa.select(sa.func.count())
        .select_from(models.WorkloadToolGuardrail)
        .where(models.WorkloadToolGuardrail.guardrail_id == guardrail_id)
    )
    return ReferenceCounts(tool_count=tool_count or 0, workload_tool_count=workload_tool_count or 0)


def ensure_unreferenced(db: Session, guardrail: models.Guardrail) -> ReferenceCounts:
    counts = count_references(db, guardrail.id)
    if counts.total > 0:
        raise ConflictError(
            f"Cannot delete: guardrail has {counts.total} reference(s) "
            f"({counts.tool_count} tool(s), {counts.workload_tool_count} workload-tool relationship(s))",
            details={
                "namespace": guardrail.namespace,
                "name": guardrail.name,
                "tool_count": counts.tool_count,
                "workload_tool_count": counts.workload_tool_count,
            },
        )
    return counts
