import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base

EXECUTION_TIMINGS = ("pre-execution", "post-execution")
SOURCE_TOOL = "tool"
SOURCE_WORKLOAD = "workload"
GUARDRAIL_SOURCES = (SOURCE_TOOL, SOURCE_WORKLOAD)

WORKLOAD_ENTITY_TYPES = ("mcp-workload", "service", "workflow")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Guardrail(Base):
    __tablename__ = "mcp_guardrails"

    # purpose: canonical protection-policy records addressed by (namespace, name)
    # status: active

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    namespace = Column(String(63), nullable=False, default="default")
    name = Column(String(63), nullable=False)
    description = Column(String(1000), nullable=False)
    deployment = Column(String(2000), nullable=False)
    parameters = Column(Text, nullable=True)
    disabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    tool_associations = relationship("ToolGuardrail", back_populates="guardrail", passive_deletes="all")
    workload_tool_associations = relationship(
        "WorkloadToolGuardrail", back_populates="guardrail", passive_deletes="all"
    )

    __table_args__ = (
        sa.UniqueConstraint("namespace", "name", name="uq_mcp_guardrail_namespace_name"),
    )


class ToolGuardrail(Base):
    __tablename__ = "mcp_tool_guardrails"

    # purpose: attach guardrails directly to a tool with execution timing
    # depends_on: mcp_guardrails

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tool_namespace = Column(String(63), nullable=False)
    tool_name = Column(String(63), nullable=False)
    guardrail_id = Column(
        UUID(as_uuid=True),
        ForeignKey("mcp_guardrails.id", ondelete="RESTRICT"),
        nullable=False,
    )
    execution_timing = Column(String(16), nullable=False)
    parameters = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    guardrail = relationship("Guardrail", back_populates="tool_associations")

    __table_args__ = (
        sa.UniqueConstraint(
            "tool_namespace",
            "tool_name",
            "guardrail_id",
            name="uq_mcp_tool_guardrail",
        ),
        sa.CheckConstraint(
            "execution_timing IN ('pre-execution', 'post-execution')",
            name="ck_mcp_tool_guardrail_timing",
        ),
        sa.Index("ix_mcp_tool_guardrails_tool", "tool_namespace", "tool_name"),
    )


class WorkloadToolGuardrail(Base):
    __tablename__ = "mcp_workload_tool_guardrails"

    # purpose: attach guardrails to a (workload, tool) pairing, tagged by provenance
    # depends_on: mcp_guardrails
    # note: source='tool' rows are written only by inheritance propagation

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    workload_namespace = Column(String(63), nullable=False)
    workload_name = Column(String(63), nullable=False)
    tool_namespace = Column(String(63), nullable=False)
    tool_name = Column(String(63), nullable=False)
    guardrail_id = Column(
        UUID(as_uuid=True),
        ForeignKey("mcp_guardrails.id", ondelete="RESTRICT"),
        nullable=False,
    )
    execution_timing = Column(String(16), nullable=False)
    source = Column(String(16), nullable=False, default=SOURCE_WORKLOAD)
    parameters = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    guardrail = relationship("Guardrail", back_populates="workload_tool_associations")

    __table_args__ = (
        sa.UniqueConstraint(
            "workload_namespace",
            "workload_name",
            "tool_namespace",
            "tool_name",
            "guardrail_id",
            name="uq_mcp_workload_tool_guardrail",
        ),
        sa.CheckConstraint(
            "execution_timing IN ('pre-execution', 'post-execution')",
            name="ck_mcp_workload_tool_guardrail_timing",
        ),
        sa.CheckConstraint(
            "source IN ('tool', 'workload')",
            name="ck_mcp_workload_tool_guardrail_source",
        ),
        sa.Index(
            "ix_mcp_workload_tool_guardrails_pair",
            "workload_namespace",
            "workload_name",
            "tool_namespace",
            "tool_name",
        ),
    )


class McpEntity(Base):
    __tablename__ = "mcp_entities"

    # purpose: tool and workload records owned by the entity CRUD store
    # status: read-only from the guardrail subsystem

    id = Column(String, primary_key=True)
    entity_ref = Column(String, unique=True, nullable=False)
    entity_type = Column(String, nullable=False, index=True)
    namespace = Column(String, nullable=False)
    name = Column(String, nullable=False)
    entity_json = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (sa.Index("ix_mcp_entities_namespace_name", "namespace", "name"),)
