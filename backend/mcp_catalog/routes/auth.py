from fastapi import APIRouter, Depends, Request

from .. import schemas
from ..rbac import MutationGate, extract_token, get_mutation_gate

router = APIRouter(prefix="/api/mcp-entity-api/auth", tags=["auth"])


@router.get("/can-edit/{entity_type}", response_model=schemas.CanEditOut)
def can_edit(entity_type: str, request: Request, gate: MutationGate = Depends(get_mutation_gate)):
    """Report whether the caller could create ``entity_type``. Never raises on denial."""

    decision = gate.check(extract_token(request), entity_type, "create")
    if decision.allowed:
        return schemas.CanEditOut(can_edit=True)
    return schemas.CanEditOut(can_edit=False, reason=decision.reason)
