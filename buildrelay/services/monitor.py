"""Status monitor: the per-job state machine.

    Idle -> Subscribed -> Acknowledged -> (Processing)* -> Completed | Failed
                     \\-> TimedOut        (any non-terminal) -> Cancelled | Errored

A monitor owns at most one subscription and one timeout timer. Starting a
new job tears the previous ones down first. Terminal transitions release
both before any terminal side effect runs, and every later delivery for
that job is ignored.

The timeout only guards against total silence: any status record from the
agent disarms it, so slow progress is never a timeout.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

from buildrelay.jobs.errors import (
    AcknowledgmentTimeout,
    JobCancelled,
    JobError,
    MissingBuildId,
    RemoteBuildFailure,
    SubscriptionError,
)
from buildrelay.jobs.models import JobState, StatusRecord, to_millis
from buildrelay.jobs.types import AuditEvent, LogType, MonitorState
from buildrelay.services.audit import AuditLog
from buildrelay.services.log_stream import UserLogStream
from buildrelay.store.base import StoreError, Subscription
from buildrelay.store.transports import StatusTransport

logger = structlog.get_logger(__name__)

STATUS_PATH = "status"


@dataclass
class MonitorOutcome:
    """Terminal result of one monitored job."""

    state: MonitorState
    record: Optional[StatusRecord] = None
    error: Optional[JobError] = None


class _Run:
    """Resources and flags of one monitored job."""

    def __init__(self, job: JobState, outcome: asyncio.Future):
        self.job = job
        self.outcome = outcome
        self.subscription: Optional[Subscription] = None
        self.timer: Optional[asyncio.Task] = None
        self.terminal = False


class StatusMonitor:
    """Watches status/{requestId} and drives the job state machine."""

    def __init__(
        self,
        transport: StatusTransport,
        audit: AuditLog,
        log_stream: UserLogStream,
        timeout_s: float = 180.0,
        clock: Callable[[], float] = time.time,
    ):
        self.transport = transport
        self.audit = audit
        self.log_stream = log_stream
        self.timeout_s = timeout_s
        self._clock = clock
        self._run: Optional[_Run] = None

    @property
    def current_job(self) -> Optional[JobState]:
        return self._run.job if self._run else None

    @property
    def is_subscribed(self) -> bool:
        run = self._run
        return bool(run and run.subscription and not run.subscription.closed)

    @property
    def timer_armed(self) -> bool:
        run = self._run
        return bool(run and run.timer and not run.timer.done())

    async def monitor(self, job: JobState) -> "asyncio.Future[MonitorOutcome]":
        """
        Start watching job.request_id.

        Any previous job on this monitor is torn down first and resolves
        as cancelled.

        Returns:
            Future resolved with the MonitorOutcome at the terminal transition
        """
        await self._supersede()

        run = _Run(job, asyncio.get_running_loop().create_future())
        self._run = run
        path = f"{STATUS_PATH}/{job.request_id}"
        log = logger.bind(request_id=job.request_id)

        self.log_stream.info(f"[CLOUD] Listening to store: /{path}")
        try:
            run.subscription = await self.transport.open(
                path,
                lambda value: self._on_update(run, value),
                lambda error: self._on_error(run, error),
            )
        except StoreError as e:
            log.error("status_subscribe_failed", error=str(e))
            await self._finish(run, MonitorState.ERRORED)
            self._resolve(
                run,
                MonitorOutcome(
                    MonitorState.ERRORED,
                    error=SubscriptionError(f"Store listener error: {e}"),
                ),
            )
            return run.outcome

        run.timer = asyncio.create_task(
            self._expire(run), name=f"ack-timeout:{job.request_id}"
        )
        job.monitor_state = MonitorState.SUBSCRIBED
        log.info("status_monitor_started", timeout_s=self.timeout_s)
        return run.outcome

    async def cancel(self) -> bool:
        """Cancel the active job. Returns False if nothing was active."""
        run = self._run
        if run is None or run.terminal:
            return False

        await self._finish(run, MonitorState.CANCELLED)
        logger.info("job_cancelled", request_id=run.job.request_id)
        if run.job.log_id:
            await self.audit.write(
                run.job.log_id, AuditEvent.JOB_CANCELLED.value, "Job cancelled by client"
            )
        self._resolve(
            run,
            MonitorOutcome(MonitorState.CANCELLED, error=JobCancelled("Job cancelled by user.")),
        )
        return True

    async def stop(self) -> None:
        """Release the subscription and timer without audit side effects."""
        await self._supersede()

    async def _supersede(self) -> None:
        run = self._run
        if run is None:
            return
        if not run.terminal:
            await self._finish(run, MonitorState.CANCELLED)
            self._resolve(
                run,
                MonitorOutcome(
                    MonitorState.CANCELLED,
                    error=JobCancelled("Job superseded by a new job."),
                ),
            )
        else:
            await self._release(run)

    async def _on_update(self, run: _Run, value: Any) -> None:
        if run.terminal or not isinstance(value, dict):
            return

        # Any record proves the agent is alive
        self._cancel_timer(run)

        record = StatusRecord.from_record(value)
        job = run.job

        if not job.build_id and record.build_id:
            job.build_id = record.build_id

        if not job.log_id and record.log_id:
            await self._acknowledge(run, record)
            if run.terminal:
                return

        if job.log_id and record.status and record.status != job.last_observed_status:
            job.last_observed_status = record.status
            await self.audit.write(
                job.log_id,
                AuditEvent.status_update(record.status),
                f"Status: {record.message}",
                {
                    "progress": record.progress,
                    "iteration": record.iteration,
                    "elapsedTime": record.elapsed_time,
                },
            )
            if run.terminal:
                return

        self.log_stream.append(
            f"[DESKTOP] {record.log_line()}",
            LogType.ERROR if record.is_failed else LogType.INFO,
        )

        if record.is_completed:
            await self._complete(run, record)
        elif record.is_failed:
            await self._fail(run, record)
        elif job.log_id:
            job.monitor_state = MonitorState.PROCESSING

    async def _acknowledge(self, run: _Run, record: StatusRecord) -> None:
        job = run.job
        self._cancel_timer(run)

        job.log_id = record.log_id
        job.monitor_state = MonitorState.ACKNOWLEDGED
        response_ms = (
            to_millis(self._clock() - job.submitted_at) if job.submitted_at else None
        )
        logger.info(
            "job_acknowledged",
            request_id=job.request_id,
            log_id=job.log_id,
            build_id=job.build_id or None,
            response_ms=response_ms,
        )
        self.log_stream.info(f"[CLOUD] Desktop client acknowledged. Log ID: {job.log_id}")

        await self.audit.write(
            job.log_id,
            AuditEvent.REQUEST_SUBMITTED.value,
            "Compilation request submitted by client",
            {"codeLength": job.code_length, "board": job.board},
        )
        await self.audit.write(
            job.log_id,
            AuditEvent.ACKNOWLEDGMENT_RECEIVED.value,
            "Desktop client acknowledged request",
            {"responseTime": response_ms, "clientId": record.client_id},
        )

    async def _complete(self, run: _Run, record: StatusRecord) -> None:
        job = run.job
        await self._finish(run, MonitorState.COMPLETED)
        self.log_stream.success(
            "[DESKTOP] Compilation successful. Fetching build information..."
        )
        if job.log_id:
            await self.audit.write(
                job.log_id,
                AuditEvent.JOB_COMPLETED.value,
                "Job completed successfully on desktop client",
            )

        job.build_id = job.build_id or record.build_id or ""
        error = None
        if not job.build_id:
            logger.error("job_completed_without_build_id", request_id=job.request_id)
            error = MissingBuildId("Compilation completed but no buildId was found.")

        self._resolve(run, MonitorOutcome(MonitorState.COMPLETED, record, error))

    async def _fail(self, run: _Run, record: StatusRecord) -> None:
        job = run.job
        await self._finish(run, MonitorState.FAILED)
        logger.warning(
            "job_failed_remotely", request_id=job.request_id, message=record.message
        )
        if job.log_id:
            await self.audit.write(
                job.log_id,
                AuditEvent.JOB_FAILED.value,
                "Job failed on desktop client",
                {"error": record.message, "errorDetails": record.error_details},
            )

        error = RemoteBuildFailure(
            record.message or "Compilation failed.", record.error_details
        )
        self._resolve(run, MonitorOutcome(MonitorState.FAILED, record, error))

    async def _expire(self, run: _Run) -> None:
        await asyncio.sleep(self.timeout_s)
        if run.terminal:
            return

        job = run.job
        await self._finish(run, MonitorState.TIMED_OUT)
        if job.log_id:
            await self.audit.write(
                job.log_id,
                AuditEvent.TIMEOUT.value,
                f"Job timeout after {self.timeout_s:g} seconds",
            )
        else:
            logger.warning(
                "job_never_acknowledged",
                request_id=job.request_id,
                timeout_s=self.timeout_s,
            )

        error = AcknowledgmentTimeout(
            f"Job timed out after {self.timeout_s:g} seconds. "
            "The desktop client did not respond or complete in time."
        )
        self._resolve(run, MonitorOutcome(MonitorState.TIMED_OUT, error=error))

    async def _on_error(self, run: _Run, error: Exception) -> None:
        if run.terminal:
            return
        logger.error(
            "status_listener_error", request_id=run.job.request_id, error=str(error)
        )
        await self._finish(run, MonitorState.ERRORED)
        self._resolve(
            run,
            MonitorOutcome(
                MonitorState.ERRORED,
                error=SubscriptionError(f"Store listener error: {error}"),
            ),
        )

    async def _finish(self, run: _Run, state: MonitorState) -> None:
        """Enter a terminal state; releases resources before anything else."""
        run.terminal = True
        run.job.monitor_state = state
        await self._release(run)

    async def _release(self, run: _Run) -> None:
        self._cancel_timer(run)
        subscription, run.subscription = run.subscription, None
        if subscription is not None:
            await subscription.close()

    @staticmethod
    def _cancel_timer(run: _Run) -> None:
        timer, run.timer = run.timer, None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    @staticmethod
    def _resolve(run: _Run, outcome: MonitorOutcome) -> None:
        if not run.outcome.done():
            run.outcome.set_result(outcome)
