from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .. import schemas
from ..catalog import EntityCatalog, get_entity_catalog
from ..database import get_db, unit_of_work
from ..rbac import TOOL_KIND, require_mutation
from ..services import tool_guardrails

router = APIRouter(prefix="/api/mcp-entity-api/tools", tags=["tool-guardrails"])


@router.get(
    "/{namespace}/{name}/guardrails",
    response_model=schemas.ToolGuardrailList,
)
def list_tool_guardrails(namespace: str, name: str, db: Session = Depends(get_db)):
    rows = tool_guardrails.list_tool_guardrails(db, namespace, name)
    return schemas.ToolGuardrailList(
        items=[schemas.ToolGuardrailOut.model_validate(row) for row in rows],
        total_count=len(rows),
    )


@router.post(
    "/{namespace}/{name}/guardrails",
    response_model=schemas.ToolGuardrailOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_mutation(TOOL_KIND, "update"))],
)
def attach_guardrail(
    namespace: str,
    name: str,
    payload: schemas.GuardrailAttach,
    db: Session = Depends(get_db),
    catalog: EntityCatalog = Depends(get_entity_catalog),
):
    with unit_of_work(db):
        association = tool_guardrails.attach_guardrail_to_tool(db, catalog, namespace, name, payload)
        out = schemas.ToolGuardrailOut.model_validate(association)
    return out


@router.delete(
    "/{namespace}/{name}/guardrails/{guardrail_namespace}/{guardrail_name}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_mutation(TOOL_KIND, "delete"))],
)
def detach_guardrail(
    namespace: str,
    name: str,
    guardrail_namespace: str,
    guardrail_name: str,
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        tool_guardrails.detach_guardrail_from_tool(db, namespace, name, guardrail_namespace, guardrail_name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
