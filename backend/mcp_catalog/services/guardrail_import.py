from __future__ import annotations

import logging
from typing import Any

import yaml
from sqlalchemy.orm import Session

from .. import schemas
from ..database import unit_of_work
from ..errors import CatalogError, ValidationError
from .guardrail_registry import create_guardrail

# purpose: bulk guardrail import from multi-document YAML with per-item results
# status: active
# depends_on: services.guardrail_registry

logger = logging.getLogger(__name__)


def parse_guardrail_documents(content: str) -> list[Any]:
    """Split a YAML stream into guardrail definitions; empty documents are skipped."""

    if not content or not content.strip():
        raise ValidationError("Request body must contain YAML content")
    try:
        documents = [doc for doc in yaml.safe_load_all(content) if doc is not None]
    except yaml.YAMLError as exc:
        raise ValidationError(f"Invalid YAML: {exc}") from exc
    if not documents:
        raise ValidationError("YAML must contain at least one guardrail with metadata and spec")
    return documents


def _document_field(document: Any, field: str, default: str) -> str:
    if isinstance(document, dict):
        metadata = document.get("metadata")
        if isinstance(metadata, dict) and metadata.get(field):
            return str(metadata[field])
    return default


def preview_import(documents: list[Any]) -> schemas.GuardrailImportPreview:
    return schemas.GuardrailImportPreview(
        count=len(documents),
        guardrails=[
            schemas.GuardrailImportPreviewItem(
                name=_document_field(document, "name", "unnamed"),
                namespace=_document_field(document, "namespace", "default"),
                description=_document_field(document, "description", ""),
            )
            for document in documents
        ],
    )


def import_guardrails(db: Session, documents: list[Any]) -> schemas.GuardrailImportResult:
    """Create each definition in its own transaction.

    A failing item is reported and the batch continues.
    """

    created: list[schemas.GuardrailOut] = []
    failures: list[schemas.GuardrailImportFailure] = []
    for document in documents:
        name = _document_field(document, "name", "unnamed")
        try:
            with unit_of_work(db):
                guardrail = create_guardrail(db, document)
                created.append(schemas.GuardrailOut.model_validate(guardrail))
        except CatalogError as exc:
            failures.append(schemas.GuardrailImportFailure(name=name, error=exc.message))

    logger.info("Guardrail import finished: %d imported, %d failed", len(created), len(failures))
    return schemas.GuardrailImportResult(
        imported=len(created),
        failed=len(failures),
        guardrails=created,
        errors=failures,
    )
