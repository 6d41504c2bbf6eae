from __future__ import annotations

import logging

from sqlalchemy.orm import Session, joinedload

from .. import models, schemas
from ..catalog import TOOL_KIND, WORKLOAD_KIND, EntityCatalog
from ..errors import ConflictError, NotFoundError, ProtectedAssociationError
from .guardrail_registry import get_guardrail
from .tool_guardrails import validate_execution_timing

# purpose: guardrails on a (workload, tool) pairing, tagged with provenance
# status: active
# depends_on: services.guardrail_registry, catalog.EntityCatalog
# note: rows with source='tool' come from inheritance and cannot be removed here

logger = logging.getLogger(__name__)


def _pair_filter(query, workload_namespace, workload_name, tool_namespace, tool_name):
    return query.filter(
        models.WorkloadToolGuardrail.workload_namespace == workload_namespace,
        models.WorkloadToolGuardrail.workload_name == workload_name,
        models.WorkloadToolGuardrail.tool_namespace == tool_namespace,
        models.WorkloadToolGuardrail.tool_name == tool_name,
    )


def find_workload_tool_guardrail(
    db: Session,
    workload_namespace: str,
    workload_name: str,
    tool_namespace: str,
    tool_name: str,
    guardrail_id,
) -> models.WorkloadToolGuardrail | None:
    query = _pair_filter(
        db.query(models.WorkloadToolGuardrail),
        workload_namespace,
        workload_name,
        tool_namespace,
        tool_name,
    )
    return query.filter(models.WorkloadToolGuardrail.guardrail_id == guardrail_id).first()


def _require_association(
    db: Session,
    workload_namespace: str,
    workload_name: str,
    tool_namespace: str,
    tool_name: str,
    guardrail_namespace: str,
    guardrail_name: str,
) -> models.WorkloadToolGuardrail:
    guardrail = get_guardrail(db, guardrail_namespace, guardrail_name)
    association = find_workload_tool_guardrail(
        db, workload_namespace, workload_name, tool_namespace, tool_name, guardrail.id
    )
    if association is None:
        raise NotFoundError(
            f"Guardrail '{guardrail_namespace}/{guardrail_name}' is not attached to workload "
            f"'{workload_namespace}/{workload_name}' tool '{tool_namespace}/{tool_name}'",
        )
    return association


def list_workload_tool_guardrails(
    db: Session,
    workload_namespace: str,
    workload_name: str,
    tool_namespace: str,
    tool_name: str,
) -> list[models.WorkloadToolGuardrail]:
    """Return inherited and workload-added rows together; each row carries its source."""

    query = _pair_filter(
        db.query(models.WorkloadToolGuardrail).options(joinedload(models.WorkloadToolGuardrail.guardrail)),
        workload_namespace,
        workload_name,
        tool_namespace,
        tool_name,
    )
    return query.all()


def add_guardrail_to_workload_tool(
    db: Session,
    catalog: EntityCatalog,
    workload_namespace: str,
    workload_name: str,
    tool_namespace: str,
    tool_name: str,
    payload: schemas.GuardrailAttach,
) -> models.WorkloadToolGuardrail:
    """Add a guardrail at the workload level. The row is always source='workload'."""

    timing = validate_execution_timing(payload.execution_timing)
    guardrail = get_guardrail(db, payload.guardrail_namespace, payload.guardrail_name)
    if not catalog.exists(WORKLOAD_KIND, workload_namespace, workload_name):
        raise NotFoundError.for_ref("Workload", workload_namespace, workload_name)
    if not catalog.exists(TOOL_KIND, tool_namespace, tool_name):
        raise NotFoundError.for_ref("Tool", tool_namespace, tool_name)
    if not catalog.workload_depends_on(workload_namespace, workload_name, tool_namespace, tool_name):
        raise NotFoundError(
            f"Tool '{tool_namespace}/{tool_name}' is not a dependency of workload "
            f"'{workload_namespace}/{workload_name}'",
        )
    existing = find_workload_tool_guardrail(
        db, workload_namespace, workload_name, tool_namespace, tool_name, guardrail.id
    )
    if existing is not None:
        raise ConflictError(
            f"Guardrail '{guardrail.namespace}/{guardrail.name}' is already attached to workload "
            f"'{workload_namespace}/{workload_name}' tool '{tool_namespace}/{tool_name}'",
            details={"source": existing.source},
        )

    association = models.WorkloadToolGuardrail(
        workload_namespace=workload_namespace,
        workload_name=workload_name,
        tool_namespace=tool_namespace,
        tool_name=tool_name,
        guardrail_id=guardrail.id,
        execution_timing=timing,
        source=models.SOURCE_WORKLOAD,
        parameters=payload.parameters,
    )
    db.add(association)
    db.flush()
    logger.info(
        "Guardrail added to workload tool",
        extra={
            "workload": f"{workload_namespace}/{workload_name}",
            "tool": f"{tool_namespace}/{tool_name}",
            "guardrail": guardrail.name,
        },
    )
    return association


def remove_guardrail_from_workload_tool(
    db: Session,
    workload_namespace: str,
    workload_name: str,
    tool_namespace: str,
    tool_name: str,
    guardrail_namespace: str,
    guardrail_name: str,
) -> None:
    association = _require_association(
        db,
        workload_namespace,
        workload_name,
        tool_namespace,
        tool_name,
        guardrail_namespace,
        guardrail_name,
    )
    if association.source == models.SOURCE_TOOL:
        raise ProtectedAssociationError(
            f"Guardrail '{guardrail_namespace}/{guardrail_name}' is inherited from tool "
            f"'{tool_namespace}/{tool_name}' and cannot be removed at the workload level",
            details={"source": association.source},
        )
    db.delete(association)
    db.flush()
    logger.info(
        "Guardrail removed from workload tool",
        extra={
            "workload": f"{workload_namespace}/{workload_name}",
            "tool": f"{tool_namespace}/{tool_name}",
            "guardrail": guardrail_name,
        },
    )


def update_workload_tool_guardrail(
    db: Session,
    workload_namespace: str,
    workload_name: str,
    tool_namespace: str,
    tool_name: str,
    guardrail_namespace: str,
    guardrail_name: str,
    payload: schemas.WorkloadToolGuardrailUpdate,
) -> models.WorkloadToolGuardrail:
    """Edit timing or parameters in place.

    Inherited rows may be edited too: they are the workload's own snapshot.
    The source tag never changes.
    """

    if payload.execution_timing is not None:
        validate_execution_timing(payload.execution_timing)
    association = _require_association(
        db,
        workload_namespace,
        workload_name,
        tool_namespace,
        tool_name,
        guardrail_namespace,
        guardrail_name,
    )
    if payload.execution_timing is not None:
        association.execution_timing = payload.execution_timing
    if "parameters" in payload.model_fields_set:
        association.parameters = payload.parameters
    db.add(association)
    db.flush()
    logger.info(
        "Workload tool guardrail updated",
        extra={
            "workload": f"{workload_namespace}/{workload_name}",
            "tool": f"{tool_namespace}/{tool_name}",
            "guardrail": guardrail_name,
            "source": association.source,
        },
    )
    return association
