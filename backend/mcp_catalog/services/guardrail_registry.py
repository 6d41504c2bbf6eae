from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import pydantic
from sqlalchemy.orm import Session, joinedload

from .. import models, schemas
from ..errors import ConflictError, NotFoundError, ValidationError
from .reference_guard import ensure_unreferenced

# purpose: own the canonical guardrail records (create, rename, disable, delete)
# status: active
# depends_on: services.reference_guard

logger = logging.getLogger(__name__)


def parse_create_payload(data: Any) -> schemas.GuardrailCreate:
    """Validate raw input (JSON body or YAML document) as a create payload."""

    if isinstance(data, schemas.GuardrailCreate):
        return data
    if not isinstance(data, dict):
        raise ValidationError("Guardrail definition must be an object with metadata and spec")
    try:
        return schemas.GuardrailCreate.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError.from_errors(exc.errors()) from exc


def find_guardrail(db: Session, namespace: str, name: str) -> models.Guardrail | None:
    return (
        db.query(models.Guardrail)
        .filter(models.Guardrail.namespace == namespace, models.Guardrail.name == name)
        .first()
    )


def get_guardrail(db: Session, namespace: str, name: str) -> models.Guardrail:
    guardrail = find_guardrail(db, namespace, name)
    if guardrail is None:
        raise NotFoundError.for_ref("Guardrail", namespace, name)
    return guardrail


def list_guardrails(
    db: Session,
    *,
    namespace: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> tuple[list[models.Guardrail], int]:
    query = db.query(models.Guardrail)
    if namespace:
        query = query.filter(models.Guardrail.namespace == namespace)
    total = query.count()
    query = query.order_by(models.Guardrail.namespace.asc(), models.Guardrail.name.asc())
    if offset:
        query = query.offset(max(offset, 0))
    if limit is not None:
        query = query.limit(max(limit, 1))
    return query.all(), total


def create_guardrail(db: Session, payload: schemas.GuardrailCreate | dict) -> models.Guardrail:
    """Persist a new guardrail; the (namespace, name) pair must be free."""

    payload = parse_create_payload(payload)
    namespace = payload.metadata.namespace
    name = payload.metadata.name
    if find_guardrail(db, namespace, name) is not None:
        raise ConflictError(
            f"Guardrail '{namespace}/{name}' already exists",
            details={"namespace": namespace, "name": name},
        )

    now = datetime.now(timezone.utc)
    guardrail = models.Guardrail(
        namespace=namespace,
        name=name,
        description=payload.metadata.description,
        deployment=payload.spec.deployment,
        parameters=payload.spec.parameters,
        disabled=payload.spec.disabled,
        created_at=now,
        updated_at=now,
    )
    db.add(guardrail)
    db.flush()
    logger.info("Guardrail created", extra={"namespace": namespace, "guardrail": name})
    return guardrail


def get_guardrail_with_usage(db: Session, namespace: str, name: str) -> schemas.GuardrailWithUsage:
    """Return the guardrail plus every association that references it.

    The usage view is computed on read and is not stored anywhere.
    """

    guardrail = get_guardrail(db, namespace, name)
    tool_rows = (
        db.query(models.ToolGuardrail)
        .options(joinedload(models.ToolGuardrail.guardrail))
        .filter(models.ToolGuardrail.guardrail_id == guardrail.id)
        .all()
    )
    workload_rows = (
        db.query(models.WorkloadToolGuardrail)
        .options(joinedload(models.WorkloadToolGuardrail.guardrail))
        .filter(models.WorkloadToolGuardrail.guardrail_id == guardrail.id)
        .all()
    )
    base = schemas.GuardrailOut.model_validate(guardrail)
    return schemas.GuardrailWithUsage(
        **base.model_dump(),
        usage=schemas.GuardrailUsage(
            tools=[schemas.ToolGuardrailOut.model_validate(row) for row in tool_rows],
            workload_tools=[schemas.WorkloadToolGuardrailOut.model_validate(row) for row in workload_rows],
        ),
    )


def update_guardrail(
    db: Session,
    namespace: str,
    name: str,
    payload: schemas.GuardrailUpdate,
) -> models.Guardrail:
    """Apply a partial update. A rename re-checks the (namespace, name) key
    before any field is touched, so a collision leaves the record unchanged."""

    guardrail = get_guardrail(db, namespace, name)
    metadata = payload.metadata
    spec = payload.spec

    new_name = metadata.name if metadata and metadata.name else guardrail.name
    if new_name != guardrail.name:
        existing = find_guardrail(db, namespace, new_name)
        if existing is not None and existing.id != guardrail.id:
            raise ConflictError(
                f"Guardrail '{namespace}/{new_name}' already exists",
                details={"namespace": namespace, "name": new_name},
            )
        logger.info(
            "Renaming guardrail",
            extra={"namespace": namespace, "old_name": guardrail.name, "new_name": new_name},
        )
        guardrail.name = new_name

    if metadata is not None and metadata.description is not None:
        guardrail.description = metadata.description
    if spec is not None:
        if spec.deployment is not None:
            guardrail.deployment = spec.deployment
        if "parameters" in spec.model_fields_set:
            guardrail.parameters = spec.parameters
        if spec.disabled is not None:
            guardrail.disabled = spec.disabled
    guardrail.updated_at = datetime.now(timezone.utc)
    db.add(guardrail)
    db.flush()
    logger.info("Guardrail updated", extra={"namespace": namespace, "guardrail": guardrail.name})
    return guardrail


def set_guardrail_disabled(db: Session, namespace: str, name: str, disabled: bool) -> models.Guardrail:
    return update_guardrail(
        db,
        namespace,
        name,
        schemas.GuardrailUpdate(spec=schemas.GuardrailSpecUpdate(disabled=disabled)),
    )


def delete_guardrail(db: Session, namespace: str, name: str) -> None:
    """Delete the guardrail once no association references it."""

    guardrail = get_guardrail(db, namespace, name)
    ensure_unreferenced(db, guardrail)
    db.delete(guardrail)
    db.flush()
    logger.info("Guardrail deleted", extra={"namespace": namespace, "guardrail": name})
