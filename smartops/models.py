from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .nodes.base import NodeBlueprint, NodeKind


class AutomationStatus(str, Enum):
    OPERATIONAL = "operational"
    MONITORING = "monitoring"
    WARNING = "warning"
    ERROR = "error"


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class AssetStatus(str, Enum):
    PENDING = "pending"
    DOWNLOADED = "downloaded"
    FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_status(value: str | None) -> AutomationStatus:
    """Map a free-form status string onto the health taxonomy."""
    if not value:
        return AutomationStatus.OPERATIONAL
    normalized = value.lower()
    if "monitor" in normalized:
        return AutomationStatus.MONITORING
    if "warn" in normalized or "watch" in normalized:
        return AutomationStatus.WARNING
    if "error" in normalized or "down" in normalized or "offline" in normalized:
        return AutomationStatus.ERROR
    return AutomationStatus.OPERATIONAL


class AutomationRecord(BaseModel):
    code: str
    status: str = AutomationStatus.OPERATIONAL.value
    endpoint_url: str | None = None
    last_run_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ExecutionRecord(BaseModel):
    id: int
    automation_code: str
    status: ExecutionStatus
    started_at: datetime
    finished_at: datetime | None = None
    logs: str | None = None
    result: Any = None


class SourceAsset(BaseModel):
    external_id: str
    file_name: str
    folder_path: str = ""
    size: int = 0
    group: str | None = None
    period: str | None = None
    local_path: str | None = None
    status: AssetStatus = AssetStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)


class StepOutcome(BaseModel):
    """What a node handler reports back to the runner."""

    status: AutomationStatus = AutomationStatus.OPERATIONAL
    summary: str
    result: dict[str, Any] = Field(default_factory=dict)
    logs: str = ""


class NodeView(BaseModel):
    code: str
    name: str
    headline: str
    description: str
    dependencies: list[str]
    status: AutomationStatus
    status_label: str
    sequence: int
    kind: NodeKind
    endpoint_template: str | None = None
    endpoint_url: str | None = None
    connected: bool
    last_run_at: datetime | None = None

    @classmethod
    def from_records(cls, blueprint: NodeBlueprint, record: AutomationRecord) -> NodeView:
        summary = record.metadata.get("summary")
        return cls(
            code=blueprint.code,
            name=blueprint.name,
            headline=blueprint.headline,
            description=blueprint.description,
            dependencies=list(blueprint.dependencies),
            status=normalize_status(record.status),
            status_label=summary if isinstance(summary, str) and summary else blueprint.status_label,
            sequence=blueprint.sequence,
            kind=blueprint.kind,
            endpoint_template=blueprint.endpoint_template,
            endpoint_url=record.endpoint_url,
            connected=bool(record.endpoint_url) or blueprint.kind is NodeKind.SOURCE_SYNC,
            last_run_at=record.last_run_at,
        )


class NodeDetails(NodeView):
    metadata: dict[str, Any] = Field(default_factory=dict)
    executions: list[ExecutionRecord] = Field(default_factory=list)


class StepResult(BaseModel):
    automation: NodeView
    execution: ExecutionRecord
    summary: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RunRequest(BaseModel):
    payload: Any = None
    cascade: bool = True


class RunResult(BaseModel):
    automation: NodeView
    execution: ExecutionRecord
    cascade: list[StepResult] = Field(default_factory=list)


class SyncItemOutcome(BaseModel):
    external_id: str
    file_name: str
    local_path: str | None = None
    group: str | None = None
    period: str | None = None
    retried: bool = False
    error: str | None = None


class SyncResult(BaseModel):
    new_item_count: int = 0
    created_items: list[SyncItemOutcome] = Field(default_factory=list)

    @property
    def downloaded(self) -> int:
        return sum(1 for item in self.created_items if item.error is None)
