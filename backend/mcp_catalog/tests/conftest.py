import os
os.environ["TESTING"] = "1"
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("MCP_AUTHORIZER", "allow-all")
import json
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[2]))

from mcp_catalog.main import app
from mcp_catalog import models
from mcp_catalog.database import Base, enable_sqlite_foreign_keys, get_db
from mcp_catalog.rbac import StaticAuthorizer, get_authorizer

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
enable_sqlite_foreign_keys(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

AUTH_HEADERS = {"Authorization": "Bearer test-token"}


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def authorizer():
    """Allow-all authorizer; tests flip ``allowed`` or swap it to simulate policy."""

    static = StaticAuthorizer(allowed=True)
    app.dependency_overrides[get_authorizer] = lambda: static
    yield static
    app.dependency_overrides.pop(get_authorizer, None)


@pytest.fixture
def client(authorizer):
    with TestClient(app) as c:
        c.headers.update(AUTH_HEADERS)
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def seed_entity(db, entity_type, namespace, name, depends_on=None):
    """Insert a row the entity CRUD store would own."""

    spec = {"type": entity_type}
    if depends_on is not None:
        spec["dependsOn"] = list(depends_on)
    entity = models.McpEntity(
        id=f"{entity_type}:{namespace}/{name}",
        entity_ref=f"{entity_type}:{namespace}/{name}",
        entity_type=entity_type,
        namespace=namespace,
        name=name,
        entity_json=json.dumps(
            {
                "apiVersion": "backstage.io/v1alpha1",
                "kind": "Component",
                "metadata": {"name": name, "namespace": namespace},
                "spec": spec,
            }
        ),
    )
    db.add(entity)
    db.commit()
    return entity


def seed_tool(db, namespace, name):
    return seed_entity(db, "mcp-tool", namespace, name)


def seed_workload(db, namespace, name, depends_on=()):
    return seed_entity(db, "mcp-workload", namespace, name, depends_on=depends_on)


def guardrail_payload(name, namespace="default", **spec):
    body = {
        "metadata": {"name": name, "namespace": namespace, "description": f"{name} guardrail"},
        "spec": {"deployment": f"registry.example.com/{name}:1.0", **spec},
    }
    return body


def create_guardrail(client, name, namespace="default", **spec):
    resp = client.post("/api/mcp-entity-api/guardrails", json=guardrail_payload(name, namespace, **spec))
    assert resp.status_code == 201, resp.text
    return resp.json()
