from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Iterable, Protocol

from fastapi import Depends
from sqlalchemy.orm import Session

from . import models
from .database import get_db

# purpose: answer existence and dependency questions about tools and workloads
# status: active
# depends_on: mcp_entities (owned by the entity CRUD store)

logger = logging.getLogger(__name__)

TOOL_KIND = "mcp-tool"
WORKLOAD_KIND = "mcp-workload"


@dataclass(frozen=True)
class EntityKey:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


def parse_entity_ref(ref: str, default_namespace: str = "default") -> EntityKey:
    """Parse ``component:ns/name``, ``ns/name`` or ``name`` into a key."""

    value = ref.strip()
    if ":" in value:
        value = value.split(":", 1)[1]
    if "/" in value:
        namespace, name = value.split("/", 1)
        return EntityKey(namespace or default_namespace, name)
    return EntityKey(default_namespace, value)


def build_entity_ref(namespace: str, name: str) -> str:
    return f"component:{namespace}/{name}"


class EntityCatalog(Protocol):
    def exists(self, kind: str, namespace: str, name: str) -> bool:
        ...

    def workload_depends_on(
        self,
        workload_namespace: str,
        workload_name: str,
        tool_namespace: str,
        tool_name: str,
    ) -> bool:
        ...


class DatabaseEntityCatalog:
    """Read tool and workload records straight from the ``mcp_entities`` table."""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, kind: str, namespace: str, name: str) -> models.McpEntity | None:
        query = self.db.query(models.McpEntity).filter(
            models.McpEntity.namespace == namespace,
            models.McpEntity.name == name,
        )
        if kind == WORKLOAD_KIND:
            query = query.filter(models.McpEntity.entity_type.in_(models.WORKLOAD_ENTITY_TYPES))
        else:
            query = query.filter(models.McpEntity.entity_type == kind)
        return query.first()

    def exists(self, kind: str, namespace: str, name: str) -> bool:
        return self._get(kind, namespace, name) is not None

    def dependencies(self, workload_namespace: str, workload_name: str) -> list[EntityKey]:
        entity = self._get(WORKLOAD_KIND, workload_namespace, workload_name)
        if entity is None:
            return []
        try:
            payload = json.loads(entity.entity_json)
        except json.JSONDecodeError:
            logger.warning("Workload %s has unreadable entity_json", entity.entity_ref)
            return []
        refs: Iterable[str] = (payload.get("spec") or {}).get("dependsOn") or []
        return [parse_entity_ref(ref) for ref in refs]

    def workload_depends_on(
        self,
        workload_namespace: str,
        workload_name: str,
        tool_namespace: str,
        tool_name: str,
    ) -> bool:
        target = EntityKey(tool_namespace, tool_name)
        return target in self.dependencies(workload_namespace, workload_name)


def get_entity_catalog(db: Session = Depends(get_db)) -> EntityCatalog:
    return DatabaseEntityCatalog(db)
