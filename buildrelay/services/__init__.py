"""Orchestration services."""

from buildrelay.services.agents import AgentDirectory
from buildrelay.services.artifacts import ArtifactFetcher
from buildrelay.services.audit import AuditLog
from buildrelay.services.collaborators import CodeGenerator, OrchestratorHooks, ProjectGateway
from buildrelay.services.job_logs import JobLogReader
from buildrelay.services.log_stream import UserLogStream
from buildrelay.services.monitor import MonitorOutcome, StatusMonitor
from buildrelay.services.orchestrator import JobOrchestrator
from buildrelay.services.retry import RetryCoordinator
from buildrelay.services.submitter import JobSubmitter

__all__ = [
    "AgentDirectory",
    "ArtifactFetcher",
    "AuditLog",
    "CodeGenerator",
    "OrchestratorHooks",
    "ProjectGateway",
    "JobLogReader",
    "UserLogStream",
    "MonitorOutcome",
    "StatusMonitor",
    "JobOrchestrator",
    "RetryCoordinator",
    "JobSubmitter",
]
