from mcp_catalog import models
from mcp_catalog.database import unit_of_work
from mcp_catalog.services import guardrail_registry
from mcp_catalog.tests.conftest import TestingSessionLocal, create_guardrail, guardrail_payload

BASE = "/api/mcp-entity-api/guardrails"


def test_health(client):
    resp = client.get("/api/mcp-entity-api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_create_and_get_guardrail(client):
    created = create_guardrail(client, "rate-limiter", parameters='{"rpm": 60}')
    assert created["namespace"] == "default"
    assert created["name"] == "rate-limiter"
    assert created["parameters"] == '{"rpm": 60}'
    assert created["disabled"] is False

    resp = client.get(f"{BASE}/default/rate-limiter")
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == created["id"]
    assert body["usage"] == {"tools": [], "workload_tools": []}


def test_get_missing_guardrail_is_not_found(client):
    resp = client.get(f"{BASE}/default/nope")
    assert resp.status_code == 404
    body = resp.json()
    assert body["error"] == "NotFoundError"
    assert "default/nope" in body["message"]


def test_duplicate_create_conflicts(client):
    create_guardrail(client, "pii-filter")
    resp = client.post(BASE, json=guardrail_payload("pii-filter"))
    assert resp.status_code == 409
    assert resp.json()["error"] == "ConflictError"

    # same name in another namespace is a different guardrail
    create_guardrail(client, "pii-filter", namespace="team-a")


def test_create_rejects_out_of_bounds_fields(client):
    too_long = guardrail_payload("bounded")
    too_long["metadata"]["description"] = "x" * 1001
    resp = client.post(BASE, json=too_long)
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "ValidationError"
    assert any(item["field"] == "metadata.description" for item in body["details"]["fields"])

    bad_name = guardrail_payload("Bad_Name")
    assert client.post(BASE, json=bad_name).status_code == 400

    empty_deployment = guardrail_payload("empty-deploy")
    empty_deployment["spec"]["deployment"] = ""
    assert client.post(BASE, json=empty_deployment).status_code == 400

    extra = guardrail_payload("extra-field")
    extra["spec"]["image"] = "nope"
    assert client.post(BASE, json=extra).status_code == 400

    big_params = guardrail_payload("big-params", parameters="x" * 10001)
    assert client.post(BASE, json=big_params).status_code == 400

    assert client.get(f"{BASE}").json()["total_count"] == 0


def test_list_filters_and_paginates(client):
    for name in ("alpha", "bravo", "charlie"):
        create_guardrail(client, name)
    create_guardrail(client, "delta", namespace="team-a")

    resp = client.get(BASE)
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_count"] == 4
    assert [item["name"] for item in body["items"]] == ["alpha", "bravo", "charlie", "delta"]

    scoped = client.get(BASE, params={"namespace": "team-a"}).json()
    assert scoped["total_count"] == 1
    assert scoped["items"][0]["name"] == "delta"

    page = client.get(BASE, params={"limit": 2, "offset": 1}).json()
    assert page["total_count"] == 4
    assert [item["name"] for item in page["items"]] == ["bravo", "charlie"]


def test_update_fields_and_rename(client):
    create_guardrail(client, "old-name", parameters="a=1")
    resp = client.put(
        f"{BASE}/default/old-name",
        json={"metadata": {"name": "new-name", "description": "renamed"}, "spec": {"disabled": True}},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["name"] == "new-name"
    assert body["description"] == "renamed"
    assert body["disabled"] is True
    assert body["parameters"] == "a=1"

    assert client.get(f"{BASE}/default/old-name").status_code == 404
    assert client.get(f"{BASE}/default/new-name").status_code == 200

    cleared = client.put(f"{BASE}/default/new-name", json={"spec": {"parameters": None}})
    assert cleared.json()["parameters"] is None


def test_rename_onto_existing_name_changes_nothing(client):
    create_guardrail(client, "first")
    create_guardrail(client, "second")

    resp = client.put(
        f"{BASE}/default/first",
        json={"metadata": {"name": "second", "description": "should not stick"}},
    )
    assert resp.status_code == 409

    first = client.get(f"{BASE}/default/first").json()
    assert first["description"] == "first guardrail"
    second = client.get(f"{BASE}/default/second").json()
    assert second["id"] != first["id"]


def test_delete_unreferenced_guardrail(client):
    create_guardrail(client, "short-lived")
    resp = client.delete(f"{BASE}/default/short-lived")
    assert resp.status_code == 204
    assert client.get(f"{BASE}/default/short-lived").status_code == 404
    assert client.delete(f"{BASE}/default/short-lived").status_code == 404


def test_set_guardrail_disabled_service():
    db = TestingSessionLocal()
    try:
        with unit_of_work(db):
            guardrail_registry.create_guardrail(db, guardrail_payload("toggle"))
        with unit_of_work(db):
            guardrail_registry.set_guardrail_disabled(db, "default", "toggle", True)
        stored = db.query(models.Guardrail).filter_by(name="toggle").one()
        assert stored.disabled is True
        assert stored.updated_at >= stored.created_at
    finally:
        db.close()
