"""Contracts for the orchestrator's external collaborators.

Code generation and project persistence live outside this package; the
orchestrator only sees these narrow interfaces. UI concerns (pipeline
steps, chat messages, artifact hand-off) arrive through OrchestratorHooks,
whose default methods do nothing.
"""

from typing import Protocol

from buildrelay.jobs.models import (
    Artifact,
    BinaryMeta,
    GeneratedCode,
    JobResult,
    LogEntry,
    ProjectSnapshot,
)
from buildrelay.jobs.types import PipelineStep, StepStatus


class CodeGenerator(Protocol):
    """Produces firmware code from a natural-language instruction.

    Implementations raise GenerationError on failure.
    """

    async def generate(self, prompt: str, existing_code: str) -> GeneratedCode:
        ...


class ProjectGateway(Protocol):
    """The project persistence layer as seen by the orchestrator."""

    async def load(self) -> ProjectSnapshot:
        """Current code and board, read at job start."""
        ...

    async def save_generated(
        self, history_id: str, generated: GeneratedCode, prompt: str
    ) -> None:
        """Record new code and a new version-history entry."""
        ...

    async def attach_build(
        self, history_id: str, build_id: str, binary: BinaryMeta
    ) -> None:
        """Enrich the version-history entry `history_id` with its build."""
        ...


class OrchestratorHooks:
    """UI callbacks. Subclass and override what the UI needs."""

    async def on_pipeline_step(self, step: PipelineStep, status: StepStatus) -> None:
        pass

    def on_log(self, entry: LogEntry) -> None:
        """Called synchronously for every new user log line."""

    async def on_chat_message(self, role: str, content: str) -> None:
        pass

    async def on_artifact(self, artifact: Artifact) -> None:
        pass

    async def on_job_finished(self, result: JobResult) -> None:
        pass
