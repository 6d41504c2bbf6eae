from datetime import datetime
from typing import Optional, Literal, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# purpose: request and response shapes for the guardrail catalog API
# status: active

NAME_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"

ExecutionTiming = Literal["pre-execution", "post-execution"]
GuardrailSource = Literal["tool", "workload"]


class GuardrailMetadata(BaseModel):
    name: str = Field(..., min_length=1, max_length=63, pattern=NAME_PATTERN)
    namespace: str = Field("default", min_length=1, max_length=63, pattern=NAME_PATTERN)
    description: str = Field(..., min_length=1, max_length=1000)
    model_config = ConfigDict(extra="forbid")


class GuardrailSpec(BaseModel):
    type: Optional[Literal["mcp-guardrail"]] = None
    deployment: str = Field(..., min_length=1, max_length=2000)
    parameters: Optional[str] = Field(None, max_length=10000)
    disabled: bool = False
    model_config = ConfigDict(extra="forbid")


class GuardrailCreate(BaseModel):
    """Create input, also the shape of one document in a YAML import."""

    api_version: Optional[str] = Field(None, alias="apiVersion")
    kind: Optional[str] = None
    metadata: GuardrailMetadata
    spec: GuardrailSpec
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class GuardrailMetadataUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=63, pattern=NAME_PATTERN)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    model_config = ConfigDict(extra="forbid")


class GuardrailSpecUpdate(BaseModel):
    deployment: Optional[str] = Field(None, min_length=1, max_length=2000)
    parameters: Optional[str] = Field(None, max_length=10000)
    disabled: Optional[bool] = None
    model_config = ConfigDict(extra="forbid")


class GuardrailUpdate(BaseModel):
    metadata: Optional[GuardrailMetadataUpdate] = None
    spec: Optional[GuardrailSpecUpdate] = None
    model_config = ConfigDict(extra="forbid")


class GuardrailOut(BaseModel):
    id: UUID
    namespace: str
    name: str
    description: str
    deployment: str
    parameters: Optional[str] = None
    disabled: bool
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class GuardrailList(BaseModel):
    items: List[GuardrailOut]
    total_count: int


class GuardrailAttach(BaseModel):
    guardrail_namespace: str = Field("default", min_length=1, max_length=63)
    guardrail_name: str = Field(..., min_length=1, max_length=63)
    execution_timing: str
    parameters: Optional[str] = Field(None, max_length=10000)


class WorkloadToolGuardrailUpdate(BaseModel):
    execution_timing: Optional[str] = None
    parameters: Optional[str] = Field(None, max_length=10000)


class ToolGuardrailOut(BaseModel):
    id: UUID
    tool_namespace: str
    tool_name: str
    execution_timing: ExecutionTiming
    parameters: Optional[str] = None
    created_at: datetime
    guardrail: GuardrailOut
    model_config = ConfigDict(from_attributes=True)


class WorkloadToolGuardrailOut(BaseModel):
    id: UUID
    workload_namespace: str
    workload_name: str
    tool_namespace: str
    tool_name: str
    execution_timing: ExecutionTiming
    source: GuardrailSource
    parameters: Optional[str] = None
    created_at: datetime
    guardrail: GuardrailOut
    model_config = ConfigDict(from_attributes=True)


class ToolGuardrailList(BaseModel):
    items: List[ToolGuardrailOut]
    total_count: int


class WorkloadToolGuardrailList(BaseModel):
    items: List[WorkloadToolGuardrailOut]
    total_count: int


class GuardrailUsage(BaseModel):
    tools: List[ToolGuardrailOut] = []
    workload_tools: List[WorkloadToolGuardrailOut] = []


class GuardrailWithUsage(GuardrailOut):
    usage: GuardrailUsage


class GuardrailImportPreviewItem(BaseModel):
    name: str
    namespace: str
    description: str


class GuardrailImportPreview(BaseModel):
    preview: bool = True
    count: int
    guardrails: List[GuardrailImportPreviewItem]


class GuardrailImportFailure(BaseModel):
    name: str
    error: str


class GuardrailImportResult(BaseModel):
    imported: int
    failed: int
    guardrails: List[GuardrailOut]
    errors: List[GuardrailImportFailure]


class InheritanceResult(BaseModel):
    workload_namespace: str
    workload_name: str
    tool_namespace: str
    tool_name: str
    created: List[WorkloadToolGuardrailOut]


class EntityPurgeResult(BaseModel):
    kind: str
    namespace: str
    name: str
    tool_associations_removed: int
    workload_tool_associations_removed: int


class CanEditOut(BaseModel):
    can_edit: bool
    reason: Optional[str] = None


class WorkloadDependencyChange(BaseModel):
    previous: List[str] = Field(default_factory=list)
    current: List[str] = Field(default_factory=list)
    model_config = ConfigDict(extra="forbid")


class DependencySyncResult(BaseModel):
    workload_namespace: str
    workload_name: str
    added: List[str]
    dropped: List[str]


class ToolRemovalResult(BaseModel):
    workload_namespace: str
    workload_name: str
    tool_namespace: str
    tool_name: str
    workload_tool_associations_removed: int
