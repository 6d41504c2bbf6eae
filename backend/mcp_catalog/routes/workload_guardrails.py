from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .. import schemas
from ..catalog import EntityCatalog, build_entity_ref, get_entity_catalog
from ..database import get_db, unit_of_work
from ..rbac import WORKLOAD_KIND, require_mutation
from ..services import entity_lifecycle, inheritance, workload_tool_guardrails

router = APIRouter(prefix="/api/mcp-entity-api/workloads", tags=["workload-guardrails"])

# purpose: guardrails on workload/tool pairings, including inherited copies
# status: active

PAIR_PATH = "/{namespace}/{name}/tools/{tool_namespace}/{tool_name}"


@router.get(
    PAIR_PATH + "/guardrails",
    response_model=schemas.WorkloadToolGuardrailList,
)
def list_guardrails(
    namespace: str,
    name: str,
    tool_namespace: str,
    tool_name: str,
    db: Session = Depends(get_db),
):
    rows = workload_tool_guardrails.list_workload_tool_guardrails(db, namespace, name, tool_namespace, tool_name)
    return schemas.WorkloadToolGuardrailList(
        items=[schemas.WorkloadToolGuardrailOut.model_validate(row) for row in rows],
        total_count=len(rows),
    )


@router.post(
    PAIR_PATH + "/guardrails",
    response_model=schemas.WorkloadToolGuardrailOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_mutation(WORKLOAD_KIND, "update"))],
)
def add_guardrail(
    namespace: str,
    name: str,
    tool_namespace: str,
    tool_name: str,
    payload: schemas.GuardrailAttach,
    db: Session = Depends(get_db),
    catalog: EntityCatalog = Depends(get_entity_catalog),
):
    with unit_of_work(db):
        association = workload_tool_guardrails.add_guardrail_to_workload_tool(
            db, catalog, namespace, name, tool_namespace, tool_name, payload
        )
        out = schemas.WorkloadToolGuardrailOut.model_validate(association)
    return out


@router.put(
    PAIR_PATH + "/guardrails/{guardrail_namespace}/{guardrail_name}",
    response_model=schemas.WorkloadToolGuardrailOut,
    dependencies=[Depends(require_mutation(WORKLOAD_KIND, "update"))],
)
def update_guardrail(
    namespace: str,
    name: str,
    tool_namespace: str,
    tool_name: str,
    guardrail_namespace: str,
    guardrail_name: str,
    payload: schemas.WorkloadToolGuardrailUpdate,
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        association = workload_tool_guardrails.update_workload_tool_guardrail(
            db,
            namespace,
            name,
            tool_namespace,
            tool_name,
            guardrail_namespace,
            guardrail_name,
            payload,
        )
        out = schemas.WorkloadToolGuardrailOut.model_validate(association)
    return out


@router.delete(
    PAIR_PATH + "/guardrails/{guardrail_namespace}/{guardrail_name}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_mutation(WORKLOAD_KIND, "delete"))],
)
def remove_guardrail(
    namespace: str,
    name: str,
    tool_namespace: str,
    tool_name: str,
    guardrail_namespace: str,
    guardrail_name: str,
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        workload_tool_guardrails.remove_guardrail_from_workload_tool(
            db, namespace, name, tool_namespace, tool_name, guardrail_namespace, guardrail_name
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    PAIR_PATH + "/inherit",
    response_model=schemas.InheritanceResult,
    dependencies=[Depends(require_mutation(WORKLOAD_KIND, "update"))],
)
def inherit_tool_guardrails(
    namespace: str,
    name: str,
    tool_namespace: str,
    tool_name: str,
    db: Session = Depends(get_db),
    catalog: EntityCatalog = Depends(get_entity_catalog),
):
    """Copy the tool's current guardrails into the pairing; safe to repeat."""

    with unit_of_work(db):
        created = inheritance.on_tool_added_to_workload(
            db, namespace, name, tool_namespace, tool_name, catalog=catalog
        )
        out = schemas.InheritanceResult(
            workload_namespace=namespace,
            workload_name=name,
            tool_namespace=tool_namespace,
            tool_name=tool_name,
            created=[schemas.WorkloadToolGuardrailOut.model_validate(row) for row in created],
        )
    return out


@router.post(
    PAIR_PATH + "/removed",
    response_model=schemas.ToolRemovalResult,
    dependencies=[Depends(require_mutation(WORKLOAD_KIND, "update"))],
)
def tool_removed_from_workload(
    namespace: str,
    name: str,
    tool_namespace: str,
    tool_name: str,
    db: Session = Depends(get_db),
):
    """Drop every association of the pairing, inherited rows included."""

    with unit_of_work(db):
        removed = entity_lifecycle.on_tool_removed_from_workload(db, namespace, name, tool_namespace, tool_name)
    return schemas.ToolRemovalResult(
        workload_namespace=namespace,
        workload_name=name,
        tool_namespace=tool_namespace,
        tool_name=tool_name,
        workload_tool_associations_removed=removed,
    )


@router.post(
    "/{namespace}/{name}/dependencies",
    response_model=schemas.DependencySyncResult,
    dependencies=[Depends(require_mutation(WORKLOAD_KIND, "update"))],
)
def sync_dependencies(
    namespace: str,
    name: str,
    payload: schemas.WorkloadDependencyChange,
    db: Session = Depends(get_db),
):
    """Reconcile associations after the workload's dependsOn list changed."""

    with unit_of_work(db):
        changes = entity_lifecycle.sync_workload_dependencies(
            db, namespace, name, payload.previous, payload.current
        )
    return schemas.DependencySyncResult(
        workload_namespace=namespace,
        workload_name=name,
        added=[build_entity_ref(key.namespace, key.name) for key in changes["added"]],
        dropped=[build_entity_ref(key.namespace, key.name) for key in changes["dropped"]],
    )
