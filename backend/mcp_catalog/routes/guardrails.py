from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db, unit_of_work
from ..errors import ValidationError
from ..rbac import GUARDRAIL_KIND, require_mutation
from ..services import guardrail_import, guardrail_registry

router = APIRouter(prefix="/api/mcp-entity-api/guardrails", tags=["guardrails"])

# purpose: guardrail registry endpoints (list, create, bulk import, get with usage, update, delete)
# status: active


@router.get("", response_model=schemas.GuardrailList)
def list_guardrails(
    namespace: str | None = Query(None),
    limit: int | None = Query(None, ge=1, le=1000),
    offset: int | None = Query(None, ge=0),
    db: Session = Depends(get_db),
) -> schemas.GuardrailList:
    items, total = guardrail_registry.list_guardrails(db, namespace=namespace, limit=limit, offset=offset)
    return schemas.GuardrailList(
        items=[schemas.GuardrailOut.model_validate(item) for item in items],
        total_count=total,
    )


@router.post(
    "",
    response_model=schemas.GuardrailOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_mutation(GUARDRAIL_KIND, "create"))],
)
def create_guardrail(
    payload: schemas.GuardrailCreate,
    db: Session = Depends(get_db),
) -> schemas.GuardrailOut:
    with unit_of_work(db):
        guardrail = guardrail_registry.create_guardrail(db, payload)
        out = schemas.GuardrailOut.model_validate(guardrail)
    return out


@router.post(
    "/import",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_mutation(GUARDRAIL_KIND, "create"))],
)
async def import_guardrails(
    request: Request,
    preview: bool = Query(False),
    db: Session = Depends(get_db),
):
    raw = await request.body()
    try:
        content = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationError("Request body must be UTF-8 encoded YAML") from exc
    documents = guardrail_import.parse_guardrail_documents(content)

    if preview:
        summary = guardrail_import.preview_import(documents)
        return JSONResponse(status_code=status.HTTP_200_OK, content=summary.model_dump(mode="json"))

    result = guardrail_import.import_guardrails(db, documents)
    if len(documents) == 1 and result.imported == 1:
        return JSONResponse(
            status_code=status.HTTP_201_CREATED,
            content=result.guardrails[0].model_dump(mode="json"),
        )
    if result.imported == 0:
        message = (
            result.errors[0].error
            if len(result.errors) == 1
            else f"All {len(result.errors)} guardrails failed validation"
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": ValidationError.error_type, "message": message, **result.model_dump(mode="json")},
        )
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=result.model_dump(mode="json"))


@router.get("/{namespace}/{name}", response_model=schemas.GuardrailWithUsage)
def get_guardrail(namespace: str, name: str, db: Session = Depends(get_db)) -> schemas.GuardrailWithUsage:
    return guardrail_registry.get_guardrail_with_usage(db, namespace, name)


@router.put(
    "/{namespace}/{name}",
    response_model=schemas.GuardrailOut,
    dependencies=[Depends(require_mutation(GUARDRAIL_KIND, "update"))],
)
def update_guardrail(
    namespace: str,
    name: str,
    payload: schemas.GuardrailUpdate,
    db: Session = Depends(get_db),
) -> schemas.GuardrailOut:
    with unit_of_work(db):
        guardrail = guardrail_registry.update_guardrail(db, namespace, name, payload)
        out = schemas.GuardrailOut.model_validate(guardrail)
    return out


@router.delete(
    "/{namespace}/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_mutation(GUARDRAIL_KIND, "delete"))],
)
def delete_guardrail(namespace: str, name: str, db: Session = Depends(get_db)) -> Response:
    with unit_of_work(db):
        guardrail_registry.delete_guardrail(db, namespace, name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
