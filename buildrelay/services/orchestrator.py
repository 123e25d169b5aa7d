"""Job orchestrator: agent discovery -> submission -> monitoring -> artifacts.

One orchestrator runs one job at a time and owns its JobState. UI
concerns come in through OrchestratorHooks so the pipeline view and the
chat view share this single implementation.
"""

import time
import traceback
from typing import Awaitable, Callable, Optional
from uuid import uuid4

import structlog

from buildrelay.config import Settings, get_settings
from buildrelay.jobs.errors import (
    GenerationError,
    JobError,
    NoAgentError,
    SubmissionError,
)
from buildrelay.jobs.models import (
    Artifact,
    CompilationRequest,
    GeneratedCode,
    JobResult,
    JobState,
)
from buildrelay.jobs.types import (
    AuditEvent,
    MonitorState,
    PipelineStep,
    StepStatus,
    StorageKind,
)
from buildrelay.services.agents import AgentDirectory
from buildrelay.services.artifacts import ArtifactFetcher
from buildrelay.services.audit import AuditLog
from buildrelay.services.collaborators import (
    CodeGenerator,
    OrchestratorHooks,
    ProjectGateway,
)
from buildrelay.services.log_stream import UserLogStream
from buildrelay.services.monitor import MonitorOutcome, StatusMonitor
from buildrelay.services.retry import AUTO_FIX_NOTICE, RetryCoordinator
from buildrelay.services.submitter import JobSubmitter
from buildrelay.store.base import CoordinationStore
from buildrelay.store.transports import StatusTransport, build_transport

logger = structlog.get_logger(__name__)

# produce(existing_code) -> GeneratedCode
CodeProducer = Callable[[str], Awaitable[GeneratedCode]]


class JobOrchestrator:
    """
    Runs the full compilation job lifecycle.

    Public operations:
    - generate_and_compile(prompt): generate code, then compile it
    - compile(history_id): compile the project's current code
    - cancel(): abort the active job
    - close(): release the monitor's subscription and timer

    Every JobError is caught here, written to the user log as an error
    line, and returned inside a JobResult.
    """

    def __init__(
        self,
        store: CoordinationStore,
        generator: CodeGenerator,
        project: ProjectGateway,
        hooks: Optional[OrchestratorHooks] = None,
        settings: Optional[Settings] = None,
        transport: Optional[StatusTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        settings = settings or get_settings()
        self.settings = settings
        self.store = store
        self.generator = generator
        self.project = project
        self.hooks = hooks or OrchestratorHooks()
        self._clock = clock

        self.logs = UserLogStream(sink=self.hooks.on_log)
        self.directory = AgentDirectory(
            store,
            agents_path=settings.agents_path,
            liveness_window_s=settings.agent_liveness_window_s,
            verify_connection=settings.verify_store_connection,
            clock=clock,
        )
        self.submitter = JobSubmitter(
            store,
            user_id=settings.client_user_id,
            source=settings.client_source,
            clock=clock,
        )
        self.audit = AuditLog(store, clock=clock)
        self.artifacts = ArtifactFetcher(
            store,
            preference=settings.artifact_preference,
            timeout=settings.download_timeout_s,
        )
        self.retry = RetryCoordinator(generator, max_retries=settings.max_auto_retries)
        self.monitor = StatusMonitor(
            transport or build_transport(store, settings),
            self.audit,
            self.logs,
            timeout_s=settings.ack_timeout_s,
            clock=clock,
        )
        self._state = JobState()

    @property
    def state(self) -> JobState:
        """State of the current (or last) job."""
        return self._state

    async def generate_and_compile(self, prompt: str) -> JobResult:
        """Generate code for `prompt`, then run the compile pipeline on it."""
        self.logs.clear()
        try:
            history_id = await self._generate(
                prompt, lambda code: self.generator.generate(prompt, code)
            )
        except JobError as e:
            return await self._finish(JobResult(state=MonitorState.IDLE, error=e))
        return await self._run(history_id, attempt=1)

    async def compile(self, history_id: Optional[str] = None) -> JobResult:
        """
        Compile the project's current code on a live agent.

        Args:
            history_id: Version-history entry to enrich with the build

        Returns:
            JobResult; never raises JobError
        """
        self.logs.clear()
        return await self._run(history_id, attempt=1)

    async def cancel(self) -> bool:
        """Abort the active job. Returns False if no job was in flight."""
        cancelled = await self.monitor.cancel()
        if cancelled:
            self.logs.error("[CLOUD] Job cancelled.")
        return cancelled

    async def close(self) -> None:
        await self.monitor.stop()

    async def _run(self, history_id: Optional[str], attempt: int) -> JobResult:
        state = JobState(history_id=history_id or "")
        self._state = state
        log = logger.bind(attempt=attempt, history_id=history_id)

        self.logs.info("[AIDE] Starting compilation pipeline...")
        await self.hooks.on_pipeline_step(PipelineStep.COMPILE, StepStatus.PENDING)

        try:
            agent_id = await self._find_agent()
            request_id = await self._submit(state, agent_id)
            log = log.bind(request_id=request_id, agent_id=agent_id)

            outcome_future = await self.monitor.monitor(state)
            outcome = await outcome_future
            log.info("job_terminal", state=outcome.state.value)
            return await self._handle_outcome(state, outcome, attempt)

        except JobError as e:
            return await self._finish(self._result(state, attempt, error=e))

        except Exception as e:
            log.error("job_unexpected_error", error=str(e), traceback=traceback.format_exc())
            error = JobError(f"Unexpected error: {e}")
            return await self._finish(self._result(state, attempt, error=error))

        finally:
            if self.monitor.current_job is state:
                await self.monitor.stop()

    async def _find_agent(self) -> str:
        await self.hooks.on_pipeline_step(PipelineStep.SERVER_CHECK, StepStatus.PROCESSING)
        self.logs.info("[AIDE] Checking for online desktop clients...")
        try:
            agent_id = await self.directory.find_live_agent()
        except NoAgentError:
            await self.hooks.on_pipeline_step(PipelineStep.SERVER_CHECK, StepStatus.FAILED)
            raise

        await self.hooks.on_pipeline_step(PipelineStep.SERVER_CHECK, StepStatus.COMPLETED)
        self.logs.success(f"[AIDE] Found online client: {agent_id}.")
        return agent_id

    async def _submit(self, state: JobState, agent_id: str) -> str:
        snapshot = await self.project.load()
        request = CompilationRequest(
            code=snapshot.code,
            board=snapshot.board or self.settings.default_board,
            libraries=list(snapshot.libraries),
        )

        await self.hooks.on_pipeline_step(PipelineStep.COMPILE, StepStatus.PROCESSING)
        self.logs.info(f"[CLOUD] Submitting job to desktop client '{agent_id}'...")

        submit_time = self._clock()
        try:
            request_id = await self.submitter.submit(agent_id, request)
        except SubmissionError:
            await self.hooks.on_pipeline_step(PipelineStep.COMPILE, StepStatus.FAILED)
            raise

        state.request_id = request_id
        state.agent_id = agent_id
        state.submitted_at = submit_time
        state.code_length = len(request.code)
        state.board = request.board

        self.logs.success(f"[FIREBASE] Wrote to /requests/{agent_id}/{request_id}")
        self.logs.info(
            f"[CLOUD] Job submitted with ID: {request_id}. Waiting for acknowledgment..."
        )
        return request_id

    async def _handle_outcome(
        self, state: JobState, outcome: MonitorOutcome, attempt: int
    ) -> JobResult:
        if outcome.state == MonitorState.COMPLETED and outcome.error is None:
            try:
                artifact = await self._download(state)
            except JobError:
                await self.hooks.on_pipeline_step(PipelineStep.COMPILE, StepStatus.FAILED)
                raise
            await self.hooks.on_pipeline_step(PipelineStep.COMPILE, StepStatus.COMPLETED)
            return await self._finish(self._result(state, attempt, artifact=artifact))

        await self.hooks.on_pipeline_step(PipelineStep.COMPILE, StepStatus.FAILED)

        if outcome.state == MonitorState.FAILED and self.retry.should_retry(attempt):
            return await self._retry(state, outcome, attempt)

        raise outcome.error or JobError(f"Job ended in state {outcome.state.value}")

    async def _download(self, state: JobState) -> Artifact:
        build_id = state.build_id
        self.logs.info(f"[CLOUD] Build complete. Requesting binary for build {build_id}...")

        build = await self.artifacts.resolve(build_id)
        kind, entry = self.artifacts.select_file(build)
        if build.storage_kind == StorageKind.EXTERNAL and entry.download_url:
            self.logs.info(f"[GITHUB] Downloading from external storage: {entry.filename}")
        else:
            self.logs.info(f"[FIREBASE] Downloading from store: {entry.filename}")

        artifact = await self.artifacts.download(build_id, kind, build)

        self.logs.success(f'[CLOUD] Firmware "{artifact.filename}" downloaded successfully.')
        if state.log_id:
            await self.audit.write(
                state.log_id,
                AuditEvent.BINARIES_DOWNLOADED.value,
                "All binaries downloaded",
                {"fileCount": 1, "filename": artifact.filename},
            )
        await self.hooks.on_artifact(artifact)

        if state.history_id:
            await self.project.attach_build(
                state.history_id, build_id, artifact.binary_meta
            )
        return artifact

    async def _retry(
        self, state: JobState, outcome: MonitorOutcome, attempt: int
    ) -> JobResult:
        message = outcome.record.message if outcome.record else str(outcome.error)
        prompt = self.retry.build_prompt(message)

        logger.info(
            "job_retry_started",
            request_id=state.request_id,
            attempt=attempt + 1,
            max_retries=self.retry.max_retries,
        )
        self.logs.error("[AIDE] Compilation failed. Asking AI to fix the code...")
        await self.hooks.on_chat_message("assistant", AUTO_FIX_NOTICE)
        await self.hooks.on_chat_message("user", prompt)

        history_id = await self._generate(
            prompt, lambda code: self.retry.regenerate(message, code)
        )
        return await self._run(history_id, attempt=attempt + 1)

    async def _generate(self, prompt: str, produce: CodeProducer) -> str:
        """Run a code-generation step and record it as a new history entry."""
        await self.hooks.on_pipeline_step(PipelineStep.CODE_GEN, StepStatus.PROCESSING)
        self.logs.info("[AIDE] Thinking... AI is analyzing your request and the current code.")

        snapshot = await self.project.load()
        try:
            generated = await produce(snapshot.code)
        except GenerationError:
            await self.hooks.on_pipeline_step(PipelineStep.CODE_GEN, StepStatus.FAILED)
            raise
        except Exception as e:
            await self.hooks.on_pipeline_step(PipelineStep.CODE_GEN, StepStatus.FAILED)
            raise GenerationError(f"Code generation failed: {e}") from e

        generated.board = generated.board or self.settings.default_board
        history_id = str(uuid4())
        await self.project.save_generated(history_id, generated, prompt)

        await self.hooks.on_pipeline_step(PipelineStep.CODE_GEN, StepStatus.COMPLETED)
        self.logs.success("[AIDE] Code generation complete.")
        return history_id

    def _result(
        self,
        state: JobState,
        attempt: int,
        artifact: Optional[Artifact] = None,
        error: Optional[JobError] = None,
    ) -> JobResult:
        return JobResult(
            state=state.monitor_state,
            request_id=state.request_id or None,
            log_id=state.log_id or None,
            build_id=state.build_id or None,
            history_id=state.history_id or None,
            artifact=artifact,
            error=error,
            attempts=attempt,
        )

    async def _finish(self, result: JobResult) -> JobResult:
        if result.error is not None:
            self.logs.error(f"[CLOUD] Error: {result.error}")
            logger.warning(
                "job_finished_with_error",
                request_id=result.request_id,
                state=result.state.value,
                error_code=result.error.code,
                error=str(result.error),
            )
        else:
            logger.info(
                "job_finished",
                request_id=result.request_id,
                build_id=result.build_id,
                attempts=result.attempts,
            )
        await self.hooks.on_job_finished(result)
        return result
