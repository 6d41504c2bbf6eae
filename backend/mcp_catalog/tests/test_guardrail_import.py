import pytest

from mcp_catalog.errors import ValidationError
from mcp_catalog.services.guardrail_import import parse_guardrail_documents, preview_import

IMPORT = "/api/mcp-entity-api/guardrails/import"

TWO_GUARDRAILS = """
apiVersion: mcp-catalog.io/v1
kind: Guardrail
metadata:
  name: pii-filter
  namespace: default
  description: Redacts personal data from tool output
spec:
  deployment: registry.example.com/pii-filter:2.1
  parameters: '{"mode": "redact"}'
---
metadata:
  name: rate-limiter
  description: Caps calls per minute
spec:
  deployment: registry.example.com/rate-limiter:1.0
"""

BROKEN = """
metadata:
  name: Not_Valid
  description: bad name
spec:
  deployment: registry.example.com/x:1
"""


def _post_yaml(client, body, **params):
    return client.post(
        IMPORT,
        content=body.encode("utf-8"),
        params=params,
        headers={"Content-Type": "application/yaml"},
    )


def test_preview_does_not_write(client):
    resp = _post_yaml(client, TWO_GUARDRAILS, preview="true")
    assert resp.status_code == 200
    body = resp.json()
    assert body["preview"] is True
    assert body["count"] == 2
    assert [g["name"] for g in body["guardrails"]] == ["pii-filter", "rate-limiter"]
    assert body["guardrails"][1]["namespace"] == "default"

    assert client.get("/api/mcp-entity-api/guardrails").json()["total_count"] == 0


def test_import_many(client):
    resp = _post_yaml(client, TWO_GUARDRAILS)
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["imported"] == 2
    assert body["failed"] == 0
    assert body["errors"] == []
    assert {g["name"] for g in body["guardrails"]} == {"pii-filter", "rate-limiter"}


def test_import_single_returns_guardrail(client):
    single = TWO_GUARDRAILS.split("---")[0]
    resp = _post_yaml(client, single)
    assert resp.status_code == 201
    assert resp.json()["name"] == "pii-filter"
    assert resp.json()["parameters"] == '{"mode": "redact"}'


def test_partial_failure_keeps_successful_items(client):
    _post_yaml(client, TWO_GUARDRAILS.split("---")[0])
    resp = _post_yaml(client, TWO_GUARDRAILS + "---" + BROKEN)
    assert resp.status_code == 201
    body = resp.json()
    assert body["imported"] == 1
    assert body["failed"] == 2
    failures = {item["name"]: item["error"] for item in body["errors"]}
    assert "already exists" in failures["pii-filter"]
    assert failures["Not_Valid"].startswith("Validation failed")

    assert client.get("/api/mcp-entity-api/guardrails").json()["total_count"] == 2


def test_all_failures_is_bad_request(client):
    resp = _post_yaml(client, BROKEN + "---\n- just\n- a list\n")
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "ValidationError"
    assert body["imported"] == 0
    assert body["failed"] == 2
    assert body["errors"][1]["name"] == "unnamed"


def test_invalid_yaml_and_empty_body(client):
    resp = _post_yaml(client, "metadata: [unclosed")
    assert resp.status_code == 400
    assert resp.json()["message"].startswith("Invalid YAML")

    assert _post_yaml(client, "   ").status_code == 400
    assert _post_yaml(client, "---\n---\n").status_code == 400


def test_parse_and_preview_helpers():
    documents = parse_guardrail_documents(TWO_GUARDRAILS + "---\n")
    assert len(documents) == 2
    preview = preview_import([{"spec": {}}])
    assert preview.guardrails[0].name == "unnamed"
    assert preview.guardrails[0].description == ""
    with pytest.raises(ValidationError):
        parse_guardrail_documents("")
