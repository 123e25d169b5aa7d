"""Job system package."""

from buildrelay.jobs.types import (
    AuditEvent,
    FileKind,
    LogType,
    MonitorState,
    PipelineStep,
    RemoteStatus,
    StepStatus,
    StorageKind,
)
from buildrelay.jobs.models import (
    Agent,
    Artifact,
    BuildInfo,
    CompilationRequest,
    JobResult,
    JobState,
    StatusRecord,
)
from buildrelay.jobs.errors import JobError

__all__ = [
    "AuditEvent",
    "FileKind",
    "LogType",
    "MonitorState",
    "PipelineStep",
    "RemoteStatus",
    "StepStatus",
    "StorageKind",
    "Agent",
    "Artifact",
    "BuildInfo",
    "CompilationRequest",
    "JobResult",
    "JobState",
    "StatusRecord",
    "JobError",
]
