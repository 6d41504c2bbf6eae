from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol

import requests
from fastapi import Depends, Request

from .catalog import TOOL_KIND, WORKLOAD_KIND
from .errors import AuthorizationUnavailableError, PermissionDeniedError, UnauthorizedError

# purpose: single authorization seam every mutating route passes through
# status: active
# note: provider failures deny the mutation (fail closed)

logger = logging.getLogger(__name__)

GUARDRAIL_KIND = "mcp-guardrail"
ENTITY_KINDS = (GUARDRAIL_KIND, TOOL_KIND, WORKLOAD_KIND)
OPERATIONS = ("create", "update", "delete")

_KIND_TO_RESOURCE: dict[str, str] = {
    GUARDRAIL_KIND: "mcpguardrails",
    TOOL_KIND: "mcptools",
    WORKLOAD_KIND: "mcpworkloads",
}

_API_GROUP = "mcp-catalog.io"


@dataclass(frozen=True)
class RoleConfig:
    """Role required to mutate each entity kind."""

    guardrail: str = "mcp-admin"
    tool: str = "mcp-admin"
    workload: str = "mcp-user"

    @classmethod
    def from_env(cls) -> "RoleConfig":
        return cls(
            guardrail=os.getenv("MCP_ROLE_GUARDRAIL", "mcp-admin"),
            tool=os.getenv("MCP_ROLE_TOOL", "mcp-admin"),
            workload=os.getenv("MCP_ROLE_WORKLOAD", "mcp-user"),
        )

    def for_kind(self, entity_kind: str) -> str:
        if entity_kind == GUARDRAIL_KIND:
            return self.guardrail
        if entity_kind == TOOL_KIND:
            return self.tool
        if entity_kind == WORKLOAD_KIND:
            return self.workload
        raise ValueError(f"Unknown entity kind: {entity_kind}")


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: str

    @classmethod
    def allow(cls) -> "AuthorizationDecision":
        return cls(allowed=True, reason="allowed")

    @classmethod
    def deny(cls, reason: str = "denied") -> "AuthorizationDecision":
        return cls(allowed=False, reason=reason)

    @classmethod
    def unavailable(cls) -> "AuthorizationDecision":
        return cls(allowed=False, reason="provider-unavailable")

    @property
    def provider_failed(self) -> bool:
        return self.reason == "provider-unavailable"


class Authorizer(Protocol):
    def authorize(
        self,
        token: str,
        required_role: str,
        entity_kind: str,
        operation: str,
    ) -> AuthorizationDecision:
        ...


class StaticAuthorizer:
    """Answer every request the same way. Used by tests and local development."""

    def __init__(self, allowed: bool = True):
        self.allowed = allowed
        self.calls: list[tuple[str, str, str]] = []

    def authorize(self, token, required_role, entity_kind, operation):
        self.calls.append((required_role, entity_kind, operation))
        if self.allowed:
            return AuthorizationDecision.allow()
        return AuthorizationDecision.deny()


class SubjectAccessReviewAuthorizer:
    """Ask the Kubernetes API whether the token's user may mutate the entity kind.

    The caller token is first resolved to a user with a TokenReview, then a
    SubjectAccessReview checks the verb against the ``mcp-catalog.io``
    resource for the kind. Transport and HTTP errors propagate so the
    fail-closed wrapper can tell them apart from a policy denial.
    """

    def __init__(
        self,
        api_url: str,
        service_token: str | None = None,
        ca_path: str | bool = True,
        namespace: str = "default",
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.service_token = service_token
        self.ca_path = ca_path
        self.namespace = namespace
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_env(cls) -> "SubjectAccessReviewAuthorizer":
        host = os.getenv("KUBERNETES_SERVICE_HOST")
        port = os.getenv("KUBERNETES_SERVICE_PORT", "443")
        default_url = f"https://{host}:{port}" if host else "https://kubernetes.default.svc"
        token_path = os.getenv(
            "KUBERNETES_TOKEN_PATH", "/var/run/secrets/kubernetes.io/serviceaccount/token"
        )
        ca_path = os.getenv(
            "KUBERNETES_CA_PATH", "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt"
        )
        service_token = None
        if os.path.exists(token_path):
            with open(token_path, encoding="utf-8") as handle:
                service_token = handle.read().strip()
        return cls(
            api_url=os.getenv("KUBERNETES_API_URL", default_url),
            service_token=service_token,
            ca_path=ca_path if os.path.exists(ca_path) else True,
            namespace=os.getenv("MCP_RBAC_NAMESPACE", "default"),
            timeout=float(os.getenv("MCP_AUTH_TIMEOUT", "5")),
        )

    def _post(self, path: str, body: dict) -> dict:
        headers = {"Accept": "application/json"}
        if self.service_token:
            headers["Authorization"] = f"Bearer {self.service_token}"
        resp = self.session.post(
            self.api_url + path,
            json=body,
            headers=headers,
            timeout=self.timeout,
            verify=self.ca_path,
        )
        resp.raise_for_status()
        return resp.json()

    def authorize(self, token, required_role, entity_kind, operation):
        review = self._post(
            "/apis/authentication.k8s.io/v1/tokenreviews",
            {
                "apiVersion": "authentication.k8s.io/v1",
                "kind": "TokenReview",
                "spec": {"token": token},
            },
        )
        status = review.get("status") or {}
        user = status.get("user") or {}
        if not status.get("authenticated") or not user.get("username"):
            return AuthorizationDecision.deny("unauthenticated")

        access = self._post(
            "/apis/authorization.k8s.io/v1/subjectaccessreviews",
            {
                "apiVersion": "authorization.k8s.io/v1",
                "kind": "SubjectAccessReview",
                "spec": {
                    "user": user["username"],
                    "groups": user.get("groups") or [],
                    "extra": {f"{_API_GROUP}/required-role": [required_role]},
                    "resourceAttributes": {
                        "group": _API_GROUP,
                        "resource": _KIND_TO_RESOURCE[entity_kind],
                        "verb": operation,
                        "namespace": self.namespace,
                    },
                },
            },
        )
        if (access.get("status") or {}).get("allowed") is True:
            return AuthorizationDecision.allow()
        return AuthorizationDecision.deny()


class FailClosedAuthorizer:
    """Turn any provider failure into a denial the caller can recognise."""

    def __init__(self, inner: Authorizer):
        self.inner = inner

    def authorize(self, token, required_role, entity_kind, operation):
        try:
            return self.inner.authorize(token, required_role, entity_kind, operation)
        except Exception:
            logger.exception(
                "Authorization provider failed; denying %s on %s",
                operation,
                entity_kind,
                extra={"entity_kind": entity_kind, "operation": operation, "required_role": required_role},
            )
            return AuthorizationDecision.unavailable()


class MutationGate:
    def __init__(self, authorizer: Authorizer, roles: RoleConfig | None = None):
        if not isinstance(authorizer, FailClosedAuthorizer):
            authorizer = FailClosedAuthorizer(authorizer)
        self.authorizer = authorizer
        self.roles = roles or RoleConfig()

    def check(self, token: str | None, entity_kind: str, operation: str) -> AuthorizationDecision:
        """Return the decision without raising."""

        if entity_kind not in ENTITY_KINDS or operation not in OPERATIONS:
            return AuthorizationDecision.deny("invalid-request")
        if not token:
            return AuthorizationDecision.deny("no-token")
        required_role = self.roles.for_kind(entity_kind)
        return self.authorizer.authorize(token, required_role, entity_kind, operation)

    def require(self, token: str | None, entity_kind: str, operation: str) -> None:
        """Raise unless the caller may perform ``operation`` on ``entity_kind``."""

        if not token:
            logger.warning("No token provided for %s on %s", operation, entity_kind)
            raise UnauthorizedError()
        decision = self.check(token, entity_kind, operation)
        if decision.allowed:
            logger.info("Authorization granted for %s on %s", operation, entity_kind)
            return
        if decision.provider_failed:
            raise AuthorizationUnavailableError(
                "Authorization service unavailable - access denied",
                details={"entity_kind": entity_kind, "operation": operation},
            )
        logger.warning(
            "Authorization denied for %s on %s (%s)", operation, entity_kind, decision.reason
        )
        raise PermissionDeniedError(
            f"User lacks required role '{self.roles.for_kind(entity_kind)}' for {operation} operation on {entity_kind}",
            details={"entity_kind": entity_kind, "operation": operation, "reason": decision.reason},
        )


def extract_token(request: Request) -> str | None:
    """Read the caller token from ``Authorization: Bearer`` or the console proxy header."""

    header = request.headers.get("authorization")
    if header and header.startswith("Bearer "):
        token = header[len("Bearer "):].strip()
        if token:
            return token
    forwarded = request.headers.get("x-forwarded-access-token")
    if forwarded and forwarded.strip():
        return forwarded.strip()
    return None


@lru_cache
def get_authorizer() -> Authorizer:
    mode = os.getenv("MCP_AUTHORIZER", "kubernetes")
    if mode == "allow-all":
        return StaticAuthorizer(allowed=True)
    if mode == "deny-all":
        return StaticAuthorizer(allowed=False)
    return SubjectAccessReviewAuthorizer.from_env()


def get_mutation_gate(authorizer: Authorizer = Depends(get_authorizer)) -> MutationGate:
    return MutationGate(authorizer, RoleConfig.from_env())


def require_mutation(entity_kind: str, operation: str):
    """Build a route dependency enforcing the gate for one kind and operation."""

    def _dependency(request: Request, gate: MutationGate = Depends(get_mutation_gate)) -> None:
        gate.require(extract_token(request), entity_kind, operation)

    _dependency.mutation_gate = (entity_kind, operation)
    return _dependency
