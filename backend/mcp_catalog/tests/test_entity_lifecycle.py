import pytest

from mcp_catalog import models
from mcp_catalog.catalog import DatabaseEntityCatalog, EntityKey, build_entity_ref, parse_entity_ref
from mcp_catalog.database import unit_of_work
from mcp_catalog.errors import ConflictError, ValidationError
from mcp_catalog.services import entity_lifecycle
from mcp_catalog.tests.conftest import create_guardrail, seed_tool, seed_workload

API = "/api/mcp-entity-api"


def _wire(client, db):
    """fetch carries auth; wf1 inherited it and added audit on top."""

    seed_tool(db, "default", "fetch")
    seed_workload(db, "default", "wf1", depends_on=[build_entity_ref("default", "fetch")])
    create_guardrail(client, "auth")
    create_guardrail(client, "audit")
    client.post(
        f"{API}/tools/default/fetch/guardrails",
        json={"guardrail_name": "auth", "execution_timing": "pre-execution"},
    )
    client.post(f"{API}/workloads/default/wf1/tools/default/fetch/inherit")
    resp = client.post(
        f"{API}/workloads/default/wf1/tools/default/fetch/guardrails",
        json={"guardrail_name": "audit", "execution_timing": "post-execution"},
    )
    assert resp.status_code == 201, resp.text


def test_tool_deletion_purges_and_unblocks_guardrail_delete(client, db):
    _wire(client, db)
    assert client.delete(f"{API}/guardrails/default/auth").status_code == 409

    resp = client.post(f"{API}/entities/mcp-tool/default/fetch/deleted")
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["tool_associations_removed"] == 1
    assert body["workload_tool_associations_removed"] == 2

    assert client.delete(f"{API}/guardrails/default/auth").status_code == 204
    assert client.delete(f"{API}/guardrails/default/audit").status_code == 204


def test_workload_deletion_keeps_tool_associations(client, db):
    _wire(client, db)
    resp = client.post(f"{API}/entities/mcp-workload/default/wf1/deleted")
    assert resp.status_code == 200
    body = resp.json()
    assert body["tool_associations_removed"] == 0
    assert body["workload_tool_associations_removed"] == 2
    assert len(client.get(f"{API}/tools/default/fetch/guardrails").json()["items"]) == 1


def test_entity_deletion_rejects_other_kinds(client):
    resp = client.post(f"{API}/entities/mcp-guardrail/default/auth/deleted")
    assert resp.status_code == 400
    assert resp.json()["error"] == "ValidationError"


def test_entity_deletion_checks_the_kind_permission(client, authorizer):
    client.post(f"{API}/entities/mcp-tool/default/fetch/deleted")
    assert authorizer.calls[-1] == ("mcp-admin", "mcp-tool", "delete")
    client.post(f"{API}/entities/mcp-workload/default/wf1/deleted")
    assert authorizer.calls[-1] == ("mcp-user", "mcp-workload", "delete")


def test_sync_workload_dependencies(client, db):
    _wire(client, db)
    seed_tool(db, "default", "search")
    client.post(
        f"{API}/tools/default/search/guardrails",
        json={"guardrail_name": "auth", "execution_timing": "post-execution"},
    )

    with unit_of_work(db):
        changes = entity_lifecycle.sync_workload_dependencies(
            db,
            "default",
            "wf1",
            previous_refs=[build_entity_ref("default", "fetch")],
            current_refs=["component:default/search"],
        )
    assert changes == {"added": [EntityKey("default", "search")], "dropped": [EntityKey("default", "fetch")]}

    rows = db.query(models.WorkloadToolGuardrail).filter_by(workload_name="wf1").all()
    assert [(row.tool_name, row.source, row.execution_timing) for row in rows] == [
        ("search", "tool", "post-execution")
    ]


def test_tool_removed_from_workload_drops_inherited_rows(client, db):
    _wire(client, db)
    with unit_of_work(db):
        removed = entity_lifecycle.on_tool_removed_from_workload(db, "default", "wf1", "default", "fetch")
    assert removed == 2
    assert client.get(f"{API}/workloads/default/wf1/tools/default/fetch/guardrails").json()["items"] == []


def test_tool_removed_route_unpins_guardrail(client, db, authorizer):
    _wire(client, db)
    assert client.delete(f"{API}/workloads/default/wf1/tools/default/fetch/guardrails/default/auth").status_code == 403

    resp = client.post(f"{API}/workloads/default/wf1/tools/default/fetch/removed")
    assert resp.status_code == 200, resp.text
    assert resp.json()["workload_tool_associations_removed"] == 2
    assert authorizer.calls[-1] == ("mcp-user", "mcp-workload", "update")

    client.delete(f"{API}/tools/default/fetch/guardrails/default/auth")
    assert client.delete(f"{API}/guardrails/default/auth").status_code == 204


def test_dependency_sync_route(client, db, authorizer):
    _wire(client, db)
    seed_tool(db, "default", "search")
    client.post(
        f"{API}/tools/default/search/guardrails",
        json={"guardrail_name": "auth", "execution_timing": "post-execution"},
    )

    resp = client.post(
        f"{API}/workloads/default/wf1/dependencies",
        json={"previous": ["component:default/fetch"], "current": ["component:default/search"]},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json() == {
        "workload_namespace": "default",
        "workload_name": "wf1",
        "added": ["component:default/search"],
        "dropped": ["component:default/fetch"],
    }
    assert authorizer.calls[-1] == ("mcp-user", "mcp-workload", "update")

    fetch_rows = client.get(f"{API}/workloads/default/wf1/tools/default/fetch/guardrails").json()
    assert fetch_rows["total_count"] == 0
    search_rows = client.get(f"{API}/workloads/default/wf1/tools/default/search/guardrails").json()["items"]
    assert [(row["guardrail"]["name"], row["source"]) for row in search_rows] == [("auth", "tool")]


def test_dependency_sync_route_is_gated(client, db, authorizer):
    _wire(client, db)
    authorizer.allowed = False
    resp = client.post(
        f"{API}/workloads/default/wf1/dependencies",
        json={"previous": ["component:default/fetch"], "current": []},
    )
    assert resp.status_code == 403
    assert client.get(f"{API}/workloads/default/wf1/tools/default/fetch/guardrails").json()["total_count"] == 2


def test_on_entity_deleted_unknown_kind(db):
    with pytest.raises(ValidationError):
        entity_lifecycle.on_entity_deleted(db, "service", "default", "x")


def test_unit_of_work_maps_constraint_violation_to_conflict(client, db):
    seed_tool(db, "default", "fetch")
    guardrail_id = create_guardrail(client, "auth")["id"]
    client.post(
        f"{API}/tools/default/fetch/guardrails",
        json={"guardrail_name": "auth", "execution_timing": "pre-execution"},
    )
    stored = db.query(models.Guardrail).filter_by(name="auth").one()
    assert str(stored.id) == guardrail_id

    with pytest.raises(ConflictError):
        with unit_of_work(db):
            db.add(
                models.ToolGuardrail(
                    tool_namespace="default",
                    tool_name="fetch",
                    guardrail_id=stored.id,
                    execution_timing="post-execution",
                )
            )
    assert db.query(models.ToolGuardrail).count() == 1


def test_entity_refs_and_catalog(db):
    assert parse_entity_ref("component:team-a/fetch") == EntityKey("team-a", "fetch")
    assert parse_entity_ref("team-a/fetch") == EntityKey("team-a", "fetch")
    assert parse_entity_ref("fetch") == EntityKey("default", "fetch")
    assert str(EntityKey("team-a", "fetch")) == "team-a/fetch"

    seed_tool(db, "team-a", "fetch")
    seed_workload(db, "default", "wf1", depends_on=["component:team-a/fetch", "search"])
    catalog = DatabaseEntityCatalog(db)
    assert catalog.exists("mcp-tool", "team-a", "fetch")
    assert not catalog.exists("mcp-workload", "team-a", "fetch")
    assert catalog.exists("mcp-workload", "default", "wf1")
    assert catalog.dependencies("default", "wf1") == [
        EntityKey("team-a", "fetch"),
        EntityKey("default", "search"),
    ]
    assert catalog.workload_depends_on("default", "wf1", "team-a", "fetch")
    assert not catalog.workload_depends_on("default", "wf1", "default", "fetch")
