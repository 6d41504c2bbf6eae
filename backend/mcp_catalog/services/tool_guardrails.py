from __future__ import annotations

import logging

from sqlalchemy.orm import Session, joinedload

from .. import models, schemas
from ..catalog import TOOL_KIND, EntityCatalog
from ..errors import ConflictError, NotFoundError, ValidationError
from .guardrail_registry import get_guardrail

# purpose: attach guardrails directly to tools
# status: active
# depends_on: services.guardrail_registry, catalog.EntityCatalog
# note: no ordering between guardrails on the same tool is defined

logger = logging.getLogger(__name__)


def validate_execution_timing(value: str | None) -> str:
    if value not in models.EXECUTION_TIMINGS:
        raise ValidationError(
            'execution_timing must be "pre-execution" or "post-execution"',
            details={"execution_timing": value},
        )
    return value


def _find_association(
    db: Session,
    tool_namespace: str,
    tool_name: str,
    guardrail_id,
) -> models.ToolGuardrail | None:
    return (
        db.query(models.ToolGuardrail)
        .filter(
            models.ToolGuardrail.tool_namespace == tool_namespace,
            models.ToolGuardrail.tool_name == tool_name,
            models.ToolGuardrail.guardrail_id == guardrail_id,
        )
        .first()
    )


def list_tool_guardrails(db: Session, tool_namespace: str, tool_name: str) -> list[models.ToolGuardrail]:
    return (
        db.query(models.ToolGuardrail)
        .options(joinedload(models.ToolGuardrail.guardrail))
        .filter(
            models.ToolGuardrail.tool_namespace == tool_namespace,
            models.ToolGuardrail.tool_name == tool_name,
        )
        .all()
    )


def attach_guardrail_to_tool(
    db: Session,
    catalog: EntityCatalog,
    tool_namespace: str,
    tool_name: str,
    payload: schemas.GuardrailAttach,
) -> models.ToolGuardrail:
    """Link a guardrail to a tool. The (tool, guardrail) pair must be new."""

    timing = validate_execution_timing(payload.execution_timing)
    guardrail = get_guardrail(db, payload.guardrail_namespace, payload.guardrail_name)
    if not catalog.exists(TOOL_KIND, tool_namespace, tool_name):
        raise NotFoundError.for_ref("Tool", tool_namespace, tool_name)
    if _find_association(db, tool_namespace, tool_name, guardrail.id) is not None:
        raise ConflictError(
            f"Guardrail '{guardrail.namespace}/{guardrail.name}' is already attached to tool "
            f"'{tool_namespace}/{tool_name}'",
            details={
                "tool": f"{tool_namespace}/{tool_name}",
                "guardrail": f"{guardrail.namespace}/{guardrail.name}",
            },
        )

    association = models.ToolGuardrail(
        tool_namespace=tool_namespace,
        tool_name=tool_name,
        guardrail_id=guardrail.id,
        execution_timing=timing,
        parameters=payload.parameters,
    )
    db.add(association)
    db.flush()
    logger.info(
        "Guardrail attached to tool",
        extra={"tool": f"{tool_namespace}/{tool_name}", "guardrail": guardrail.name, "timing": timing},
    )
    return association


def detach_guardrail_from_tool(
    db: Session,
    tool_namespace: str,
    tool_name: str,
    guardrail_namespace: str,
    guardrail_name: str,
) -> None:
    """Remove a tool association. Workloads that already inherited it keep their copy."""

    guardrail = get_guardrail(db, guardrail_namespace, guardrail_name)
    association = _find_association(db, tool_namespace, tool_name, guardrail.id)
    if association is None:
        raise NotFoundError(
            f"Guardrail '{guardrail_namespace}/{guardrail_name}' is not attached to tool "
            f"'{tool_namespace}/{tool_name}'",
        )
    db.delete(association)
    db.flush()
    logger.info(
        "Guardrail detached from tool",
        extra={"tool": f"{tool_namespace}/{tool_name}", "guardrail": guardrail_name},
    )
