"""Copy tool-level guardrails into a workload when it adopts the tool.

The copy is a snapshot taken at adoption time. Later attach or detach calls
on the tool do not reach workloads that already adopted it; re-running the
propagation only fills in rows that are missing.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from .. import models
from ..catalog import TOOL_KIND, WORKLOAD_KIND, EntityCatalog
from ..errors import NotFoundError
from .tool_guardrails import list_tool_guardrails

logger = logging.getLogger(__name__)


def on_tool_added_to_workload(
    db: Session,
    workload_namespace: str,
    workload_name: str,
    tool_namespace: str,
    tool_name: str,
    *,
    catalog: EntityCatalog | None = None,
) -> list[models.WorkloadToolGuardrail]:
    """Materialise the tool's associations as source='tool' rows for the pairing.

    Insert-if-absent on the natural key, so repeated calls are no-ops for rows
    already copied. Returns only the rows created by this call. All rows are
    written in the caller's unit of work.
    """

    if catalog is not None:
        if not catalog.exists(WORKLOAD_KIND, workload_namespace, workload_name):
            raise NotFoundError.for_ref("Workload", workload_namespace, workload_name)
        if not catalog.exists(TOOL_KIND, tool_namespace, tool_name):
            raise NotFoundError.for_ref("Tool", tool_namespace, tool_name)
        if not catalog.workload_depends_on(workload_namespace, workload_name, tool_namespace, tool_name):
            raise NotFoundError(
                f"Tool '{tool_namespace}/{tool_name}' is not a dependency of workload "
                f"'{workload_namespace}/{workload_name}'",
            )

    tool_rows = list_tool_guardrails(db, tool_namespace, tool_name)
    if not tool_rows:
        return []

    present = {
        guardrail_id
        for (guardrail_id,) in db.query(models.WorkloadToolGuardrail.guardrail_id).filter(
            models.WorkloadToolGuardrail.workload_namespace == workload_namespace,
            models.WorkloadToolGuardrail.workload_name == workload_name,
            models.WorkloadToolGuardrail.tool_namespace == tool_namespace,
            models.WorkloadToolGuardrail.tool_name == tool_name,
        )
    }

    created: list[models.WorkloadToolGuardrail] = []
    for row in tool_rows:
        if row.guardrail_id in present:
            continue
        copy = models.WorkloadToolGuardrail(
            workload_namespace=workload_namespace,
            workload_name=workload_name,
            tool_namespace=tool_namespace,
            tool_name=tool_name,
            guardrail_id=row.guardrail_id,
            execution_timing=row.execution_timing,
            source=models.SOURCE_TOOL,
            parameters=row.parameters,
        )
        db.add(copy)
        present.add(row.guardrail_id)
        created.append(copy)
    db.flush()

    logger.info(
        "Inherited %d guardrail(s) from tool %s/%s into workload %s/%s",
        len(created),
        tool_namespace,
        tool_name,
        workload_namespace,
        workload_name,
    )
    return created
