"""Job system data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from buildrelay.jobs.types import FileKind, LogType, MonitorState, RemoteStatus, StorageKind

if TYPE_CHECKING:
    from buildrelay.jobs.errors import JobError


def to_millis(ts: float) -> int:
    """Epoch seconds to the store's epoch-millisecond timestamps."""
    return int(ts * 1000)


@dataclass
class Agent:
    """A registered compiler agent (read-only to the orchestrator)."""

    id: str
    status: str
    last_seen_at: Optional[float] = None  # epoch seconds

    @classmethod
    def from_record(cls, agent_id: str, record: dict[str, Any]) -> "Agent":
        last_seen = record.get("lastSeenAt", record.get("lastSeen"))
        return cls(
            id=agent_id,
            status=str(record.get("status", "offline")),
            last_seen_at=last_seen / 1000 if isinstance(last_seen, (int, float)) else None,
        )

    def is_live(self, now: float, window_s: float) -> bool:
        """Online and seen within the liveness window."""
        if self.status != "online" or self.last_seen_at is None:
            return False
        return now - self.last_seen_at < window_s


@dataclass
class CompilationRequest:
    """A compilation request; immutable once submitted."""

    code: str
    board: str
    libraries: list[str] = field(default_factory=list)
    submitted_at: Optional[float] = None
    origin: dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    def to_record(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "board": self.board,
            "libraries": list(self.libraries),
            "timestamp": to_millis(self.submitted_at) if self.submitted_at else None,
            "clientMetadata": dict(self.origin),
        }


@dataclass
class StatusRecord:
    """Normalized view of status/{requestId} as written by an agent."""

    status: str
    phase: str = ""
    progress: float = 0
    message: str = ""
    log_id: Optional[str] = None
    build_id: Optional[str] = None
    client_id: Optional[str] = None
    iteration: Optional[int] = None
    elapsed_time: Optional[float] = None
    error_details: Optional[Any] = None
    history: list[Any] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "StatusRecord":
        history = record.get("history") or []
        if isinstance(history, dict):
            # Pushed children arrive keyed by push id
            history = [history[k] for k in sorted(history)]
        return cls(
            status=str(record.get("status") or ""),
            phase=str(record.get("phase") or ""),
            progress=record.get("progress") or 0,
            message=str(record.get("message") or ""),
            log_id=record.get("logId") or None,
            build_id=record.get("buildId") or None,
            client_id=record.get("clientId") or None,
            iteration=record.get("iteration"),
            elapsed_time=record.get("elapsedTime"),
            error_details=record.get("errorDetails"),
            history=list(history),
        )

    @property
    def is_completed(self) -> bool:
        return self.status == RemoteStatus.COMPLETED.value

    @property
    def is_failed(self) -> bool:
        return self.status == RemoteStatus.FAILED.value

    def log_line(self) -> str:
        """Format as `[phase] status (progress%) - message`."""
        return f"[{self.phase}] {self.status} ({self.progress}%) - {self.message}"


@dataclass
class ClientLogEvent:
    """An audit event written by the orchestrator under logs/{logId}."""

    log_id: str
    event_type: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: int = 0  # epoch ms

    def to_event_record(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "event": self.event_type,
            "message": self.message,
            "data": self.metadata,
        }

    def to_timeline_record(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "source": "client",
            "event": self.event_type,
            "message": self.message,
        }


@dataclass
class BuildFile:
    filename: str
    download_url: Optional[str] = None
    size: Optional[int] = None
    checksum: Optional[str] = None


@dataclass
class BuildInfo:
    """Build metadata written by an agent to builds/{buildId}."""

    build_id: str
    storage_kind: StorageKind
    files: dict[FileKind, BuildFile] = field(default_factory=dict)
    request_id: Optional[str] = None
    board: Optional[str] = None

    @classmethod
    def from_record(cls, build_id: str, record: dict[str, Any]) -> "BuildInfo":
        files: dict[FileKind, BuildFile] = {}
        for kind in FileKind:
            entry = (record.get("files") or {}).get(kind.value)
            if not isinstance(entry, dict) or not entry.get("filename"):
                continue
            files[kind] = BuildFile(
                filename=entry["filename"],
                download_url=entry.get("downloadUrl"),
                size=entry.get("size"),
                checksum=entry.get("checksum"),
            )
        return cls(
            build_id=record.get("buildId") or build_id,
            storage_kind=StorageKind.from_record(record.get("storage")),
            files=files,
            request_id=record.get("requestId"),
            board=record.get("board"),
        )


@dataclass
class BinaryMeta:
    """What the version history records about a downloaded binary."""

    filename: str
    file_type: str


@dataclass
class Artifact:
    """A downloaded firmware file."""

    build_id: str
    kind: FileKind
    filename: str
    content: bytes
    source: StorageKind

    @property
    def binary_meta(self) -> BinaryMeta:
        return BinaryMeta(filename=self.filename, file_type=self.kind.value)


@dataclass
class JobState:
    """Per-job state owned by one orchestrator; replaced at every job start."""

    request_id: str = ""
    log_id: str = ""
    build_id: str = ""
    last_observed_status: str = ""
    history_id: str = ""
    agent_id: str = ""
    submitted_at: Optional[float] = None
    code_length: int = 0
    board: str = ""
    monitor_state: MonitorState = MonitorState.IDLE


@dataclass
class LogEntry:
    """One line of the user-facing log stream."""

    message: str
    type: LogType = LogType.INFO
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


@dataclass
class GeneratedCode:
    """Output of the code-generation collaborator."""

    code: str
    board: str
    libraries: list[str] = field(default_factory=list)


@dataclass
class ProjectSnapshot:
    """Current code and board read from the project at job start."""

    code: str
    board: str
    libraries: list[str] = field(default_factory=list)


@dataclass
class JobResult:
    """Structured outcome of a compile run, returned to the UI layer."""

    state: MonitorState
    request_id: Optional[str] = None
    log_id: Optional[str] = None
    build_id: Optional[str] = None
    history_id: Optional[str] = None
    artifact: Optional[Artifact] = None
    error: Optional["JobError"] = None
    attempts: int = 1

    @property
    def success(self) -> bool:
        return self.state == MonitorState.COMPLETED and self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the UI layer."""
        return {
            "success": self.success,
            "state": self.state.value,
            "request_id": self.request_id,
            "log_id": self.log_id,
            "build_id": self.build_id,
            "history_id": self.history_id,
            "artifact": (
                {
                    "filename": self.artifact.filename,
                    "kind": self.artifact.kind.value,
                    "size": len(self.artifact.content),
                }
                if self.artifact
                else None
            ),
            "error": self.error.code if self.error else None,
            "error_message": str(self.error) if self.error else None,
            "attempts": self.attempts,
        }


@dataclass
class JobSummary:
    """Row of the job dashboard, derived from logs/{logId}."""

    job_id: str
    status: str
    created_at: str  # ISO 8601
    request_id: Optional[str] = None
    build_id: Optional[str] = None
    duration: Optional[float] = None


@dataclass
class JobStatistics:
    total_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    average_duration: float = 0.0  # ms
