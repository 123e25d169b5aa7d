"""Job dashboard reads over the shared job log (logs/{logId})."""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from buildrelay.jobs.errors import JobLogUnavailable, NotFoundError
from buildrelay.jobs.models import JobStatistics, JobSummary
from buildrelay.services.audit import LOGS_PATH
from buildrelay.store.base import CoordinationStore, StoreError

logger = structlog.get_logger(__name__)


def _iso(ms: Any) -> str:
    if not isinstance(ms, (int, float)):
        return ""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def _wait_time(log: dict[str, Any]) -> Optional[float]:
    metrics = (log.get("clientSide") or {}).get("metrics") or {}
    value = metrics.get("totalWaitTime")
    return value if isinstance(value, (int, float)) else None


class JobLogReader:
    """Lists jobs and statistics from the unified job log."""

    def __init__(self, store: CoordinationStore):
        self.store = store

    async def list_jobs(
        self,
        limit: int = 50,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> tuple[list[JobSummary], JobStatistics]:
        """
        Most recent jobs, newest first, with aggregate statistics.

        Args:
            limit: Keep only the `limit` most recently created logs
            status: Only jobs in this status
            user_id: Only jobs whose clientSide.userId matches

        Returns:
            (summaries, statistics); statistics cover the filtered set

        Raises:
            JobLogUnavailable: If the store cannot be read
        """
        records = await self._read(LOGS_PATH) or {}
        logs = [
            dict(record, logId=record.get("logId") or log_id)
            for log_id, record in records.items()
            if isinstance(record, dict)
        ]
        logs.sort(key=lambda log: log.get("createdAt") or 0)
        logs = logs[-limit:] if limit > 0 else []

        if status:
            logs = [log for log in logs if log.get("status") == status]
        if user_id:
            logs = [
                log for log in logs
                if (log.get("clientSide") or {}).get("userId") == user_id
            ]

        summaries = [
            JobSummary(
                job_id=log["logId"],
                status=log.get("status", ""),
                created_at=_iso(log.get("createdAt")),
                request_id=log.get("requestId"),
                build_id=log.get("buildId"),
                duration=_wait_time(log),
            )
            for log in reversed(logs)
        ]

        completed = [log for log in logs if log.get("status") == "completed"]
        total_wait = sum(_wait_time(log) or 0 for log in completed)
        statistics = JobStatistics(
            total_jobs=len(logs),
            completed_jobs=len(completed),
            failed_jobs=sum(1 for log in logs if log.get("status") == "failed"),
            average_duration=total_wait / len(completed) if completed else 0.0,
        )

        logger.debug("jobs_listed", count=len(summaries), status=status)
        return summaries, statistics

    async def get_job_details(self, log_id: str) -> dict[str, Any]:
        """Raw log record for one job.

        Raises:
            NotFoundError: No log with this id
            JobLogUnavailable: If the store cannot be read
        """
        record = await self._read(f"{LOGS_PATH}/{log_id}")
        if not record:
            raise NotFoundError(f"Job log with ID {log_id} not found.")
        return record

    async def _read(self, path: str) -> Any:
        try:
            return await self.store.read(path)
        except StoreError as e:
            logger.warning("job_log_read_failed", path=path, error=str(e))
            raise JobLogUnavailable(f"Failed to read job logs: {e}") from e
