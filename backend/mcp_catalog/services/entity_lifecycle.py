from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.orm import Session

from .. import models
from ..catalog import TOOL_KIND, WORKLOAD_KIND, EntityKey, parse_entity_ref
from ..errors import ValidationError
from .inheritance import on_tool_added_to_workload

# purpose: hooks the entity CRUD store calls when tools or workloads change
# status: active
# depends_on: services.inheritance
# note: this subsystem never discovers deletions on its own

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurgeCounts:
    tool_associations: int = 0
    workload_tool_associations: int = 0


def on_tool_removed_from_workload(
    db: Session,
    workload_namespace: str,
    workload_name: str,
    tool_namespace: str,
    tool_name: str,
) -> int:
    """Drop every association of the pairing, inherited or not."""

    removed = (
        db.query(models.WorkloadToolGuardrail)
        .filter(
            models.WorkloadToolGuardrail.workload_namespace == workload_namespace,
            models.WorkloadToolGuardrail.workload_name == workload_name,
            models.WorkloadToolGuardrail.tool_namespace == tool_namespace,
            models.WorkloadToolGuardrail.tool_name == tool_name,
        )
        .delete(synchronize_session=False)
    )
    logger.info(
        "Purged %d association(s) for workload %s/%s tool %s/%s",
        removed,
        workload_namespace,
        workload_name,
        tool_namespace,
        tool_name,
    )
    return removed


def on_entity_deleted(db: Session, kind: str, namespace: str, name: str) -> PurgeCounts:
    """Purge associations orphaned by a deleted tool or workload."""

    if kind == TOOL_KIND:
        tool_removed = (
            db.query(models.ToolGuardrail)
            .filter(
                models.ToolGuardrail.tool_namespace == namespace,
                models.ToolGuardrail.tool_name == name,
            )
            .delete(synchronize_session=False)
        )
        workload_removed = (
            db.query(models.WorkloadToolGuardrail)
            .filter(
                models.WorkloadToolGuardrail.tool_namespace == namespace,
                models.WorkloadToolGuardrail.tool_name == name,
            )
            .delete(synchronize_session=False)
        )
        counts = PurgeCounts(tool_associations=tool_removed, workload_tool_associations=workload_removed)
    elif kind == WORKLOAD_KIND:
        workload_removed = (
            db.query(models.WorkloadToolGuardrail)
            .filter(
                models.WorkloadToolGuardrail.workload_namespace == namespace,
                models.WorkloadToolGuardrail.workload_name == name,
            )
            .delete(synchronize_session=False)
        )
        counts = PurgeCounts(workload_tool_associations=workload_removed)
    else:
        raise ValidationError(
            f"Unsupported entity kind '{kind}'",
            details={"kind": kind, "supported": [TOOL_KIND, WORKLOAD_KIND]},
        )

    logger.info(
        "Purged associations for deleted %s %s/%s (%d tool, %d workload-tool)",
        kind,
        namespace,
        name,
        counts.tool_associations,
        counts.workload_tool_associations,
    )
    return counts


def sync_workload_dependencies(
    db: Session,
    workload_namespace: str,
    workload_name: str,
    previous_refs: Iterable[str],
    current_refs: Iterable[str],
) -> dict[str, list[EntityKey]]:
    """Reconcile associations after a workload's dependency list changed.

    Newly adopted tools are propagated, dropped tools are purged. Tools present
    in both lists are left alone.
    """

    previous = {parse_entity_ref(ref) for ref in previous_refs}
    current = {parse_entity_ref(ref) for ref in current_refs}
    added = sorted(current - previous, key=str)
    dropped = sorted(previous - current, key=str)

    for tool in dropped:
        on_tool_removed_from_workload(db, workload_namespace, workload_name, tool.namespace, tool.name)
    for tool in added:
        on_tool_added_to_workload(db, workload_namespace, workload_name, tool.namespace, tool.name)
    return {"added": added, "dropped": dropped}
