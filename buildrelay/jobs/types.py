"""Job system type definitions."""

from enum import Enum


class RemoteStatus(str, Enum):
    """Status values written by compiler agents to status/{requestId}."""

    QUEUED = "queued"
    ACKNOWLEDGED = "acknowledged"
    PREPARING = "preparing"
    INSTALLING_LIBRARIES = "installing_libraries"
    COMPILING = "compiling"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MonitorState(str, Enum):
    """Lifecycle of one monitored compilation job."""

    IDLE = "idle"
    SUBSCRIBED = "subscribed"
    ACKNOWLEDGED = "acknowledged"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        """Check if this state is terminal (job won't change)."""
        return self in (
            MonitorState.COMPLETED,
            MonitorState.FAILED,
            MonitorState.TIMED_OUT,
            MonitorState.CANCELLED,
            MonitorState.ERRORED,
        )


class FileKind(str, Enum):
    """Firmware artifact file kinds."""

    BIN = "bin"
    HEX = "hex"
    ELF = "elf"


class StorageKind(str, Enum):
    """Where an agent stored a build's artifacts."""

    INLINE = "inline"  # base64 in binaries/{buildId}/{kind}
    EXTERNAL = "external"  # object storage, fetched by downloadUrl

    @classmethod
    def from_record(cls, value) -> "StorageKind":
        if value in ("github", "external"):
            return cls.EXTERNAL
        return cls.INLINE


class LogType(str, Enum):
    """User-facing log line types."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class PipelineStep(str, Enum):
    """Pipeline stages reported to the UI."""

    SERVER_CHECK = "server_check"
    CODE_GEN = "code_gen"
    COMPILE = "compile"


class StepStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AuditEvent(str, Enum):
    """Client-side audit event types written under logs/{logId}."""

    REQUEST_SUBMITTED = "request_submitted"
    ACKNOWLEDGMENT_RECEIVED = "acknowledgment_received"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    JOB_CANCELLED = "job_cancelled"
    TIMEOUT = "timeout"
    BINARIES_DOWNLOADED = "binaries_downloaded"

    @staticmethod
    def status_update(status: str) -> str:
        """Event type for a change of remote status."""
        return f"status_update_{status}"
