from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from .. import schemas
from ..catalog import TOOL_KIND, WORKLOAD_KIND
from ..database import get_db, unit_of_work
from ..errors import ValidationError
from ..rbac import MutationGate, extract_token, get_mutation_gate
from ..services import entity_lifecycle

router = APIRouter(prefix="/api/mcp-entity-api/entities", tags=["entities"])

# purpose: hook the entity CRUD store calls after deleting a tool or workload
# status: active
# depends_on: services.entity_lifecycle

PURGEABLE_KINDS = (TOOL_KIND, WORKLOAD_KIND)


def require_entity_delete(kind: str, request: Request, gate: MutationGate = Depends(get_mutation_gate)) -> None:
    if kind not in PURGEABLE_KINDS:
        raise ValidationError(
            f"Unsupported entity kind '{kind}'",
            details={"kind": kind, "supported": list(PURGEABLE_KINDS)},
        )
    gate.require(extract_token(request), kind, "delete")


require_entity_delete.mutation_gate = ("<kind>", "delete")


@router.post(
    "/{kind}/{namespace}/{name}/deleted",
    response_model=schemas.EntityPurgeResult,
    dependencies=[Depends(require_entity_delete)],
)
def entity_deleted(kind: str, namespace: str, name: str, db: Session = Depends(get_db)):
    with unit_of_work(db):
        counts = entity_lifecycle.on_entity_deleted(db, kind, namespace, name)
    return schemas.EntityPurgeResult(
        kind=kind,
        namespace=namespace,
        name=name,
        tool_associations_removed=counts.tool_associations,
        workload_tool_associations_removed=counts.workload_tool_associations,
    )
