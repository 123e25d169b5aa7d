"""Job error taxonomy.

Every error carries a stable ``code`` for structured results. Whether an
error is retried is decided by the orchestrator: only RemoteBuildFailure
triggers the fix-and-recompile cycle.
"""

from typing import Any, Optional


class JobError(Exception):
    """Base class for compilation job errors."""

    code = "job_error"


class NoAgentError(JobError):
    """No live compiler agent is registered."""

    code = "no_agent"


class SubmissionError(JobError):
    """The compilation request could not be written."""

    code = "submission_failed"


class AcknowledgmentTimeout(JobError):
    """No agent acknowledged the request before the timeout."""

    code = "acknowledgment_timeout"


class RemoteBuildFailure(JobError):
    """The agent reported status=failed."""

    code = "remote_build_failure"

    def __init__(self, message: str, error_details: Optional[Any] = None):
        super().__init__(message)
        self.error_details = error_details


class MissingBuildId(JobError):
    """The agent reported success without a build id."""

    code = "missing_build_id"


class NotFoundError(JobError):
    """Build metadata or artifact payload is absent."""

    code = "not_found"


class DownloadError(JobError):
    """Artifact transfer or decoding failed."""

    code = "download_failed"


class GenerationError(JobError):
    """The code-generation collaborator failed."""

    code = "generation_failed"


class SubscriptionError(JobError):
    """The status subscription reported a store error."""

    code = "subscription_failed"


class JobCancelled(JobError):
    """The job was cancelled before reaching a remote terminal status."""

    code = "cancelled"


class JobLogUnavailable(JobError):
    """The shared job log could not be read."""

    code = "job_log_unavailable"
