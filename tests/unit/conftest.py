"""Shared fixtures for unit tests: in-memory store, clock, fake collaborators."""

import asyncio
import base64
import time
from typing import Any, Callable, Optional

import pytest

from buildrelay.config import Settings
from buildrelay.jobs.errors import GenerationError
from buildrelay.jobs.models import (
    Artifact,
    BinaryMeta,
    GeneratedCode,
    JobResult,
    LogEntry,
    ProjectSnapshot,
)
from buildrelay.jobs.types import PipelineStep, StepStatus
from buildrelay.services.collaborators import OrchestratorHooks
from buildrelay.store.memory import InMemoryStore


class FakeClock:
    """Settable wall clock (epoch seconds)."""

    def __init__(self, now: Optional[float] = None):
        self.now = now if now is not None else time.time()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGenerator:
    """Code generator returning queued results in order."""

    def __init__(self, *results: Any):
        self.results = list(results)
        self.calls: list[tuple[str, str]] = []

    async def generate(self, prompt: str, existing_code: str) -> GeneratedCode:
        self.calls.append((prompt, existing_code))
        if not self.results:
            return GeneratedCode(code=f"// fixed {len(self.calls)}", board="esp32:esp32:esp32")
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FakeProject:
    """Project gateway keeping code and version history in memory."""

    def __init__(self, code: str = "void setup() {}\nvoid loop() {}", board: str = "esp32:esp32:esp32"):
        self.code = code
        self.board = board
        self.libraries: list[str] = []
        self.history: dict[str, dict[str, Any]] = {}

    async def load(self) -> ProjectSnapshot:
        return ProjectSnapshot(code=self.code, board=self.board, libraries=list(self.libraries))

    async def save_generated(self, history_id: str, generated: GeneratedCode, prompt: str) -> None:
        self.code = generated.code
        self.board = generated.board
        self.libraries = list(generated.libraries)
        self.history[history_id] = {"code": generated.code, "prompt": prompt}

    async def attach_build(self, history_id: str, build_id: str, binary: BinaryMeta) -> None:
        self.history.setdefault(history_id, {}).update(buildId=build_id, binary=binary)


class RecordingHooks(OrchestratorHooks):
    def __init__(self):
        self.steps: list[tuple[PipelineStep, StepStatus]] = []
        self.logs: list[LogEntry] = []
        self.chat: list[tuple[str, str]] = []
        self.artifacts: list[Artifact] = []
        self.results: list[JobResult] = []

    async def on_pipeline_step(self, step: PipelineStep, status: StepStatus) -> None:
        self.steps.append((step, status))

    def on_log(self, entry: LogEntry) -> None:
        self.logs.append(entry)

    async def on_chat_message(self, role: str, content: str) -> None:
        self.chat.append((role, content))

    async def on_artifact(self, artifact: Artifact) -> None:
        self.artifacts.append(artifact)

    async def on_job_finished(self, result: JobResult) -> None:
        self.results.append(result)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1_700_000_000.0)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        ack_timeout_s=0.5,
        status_poll_interval_s=0.01,
        max_auto_retries=1,
    )


@pytest.fixture
def project() -> FakeProject:
    return FakeProject()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def failing_generator() -> FakeGenerator:
    return FakeGenerator(GenerationError("model unavailable"))


@pytest.fixture
def hooks() -> RecordingHooks:
    return RecordingHooks()


@pytest.fixture
def register_agent(store: InMemoryStore, clock: FakeClock) -> Callable[..., Any]:
    """Write an agent registry entry seen `age_s` seconds ago."""

    async def _register(agent_id: str = "a1", status: str = "online", age_s: float = 5.0) -> None:
        await store.write(
            f"agents/{agent_id}",
            {"status": status, "lastSeen": int((clock() - age_s) * 1000)},
        )

    return _register


@pytest.fixture
def publish_build(store: InMemoryStore) -> Callable[..., Any]:
    """Write inline build metadata and payloads for build_id."""

    async def _publish(build_id: str, payloads: dict[str, bytes]) -> None:
        files = {kind: {"filename": f"firmware.{kind}", "size": len(data)} for kind, data in payloads.items()}
        await store.write(
            f"builds/{build_id}",
            {"buildId": build_id, "storage": "firebase", "status": "completed", "files": files},
        )
        for kind, data in payloads.items():
            await store.write(
                f"binaries/{build_id}/{kind}",
                {
                    "binary": base64.b64encode(data).decode("ascii"),
                    "filename": f"firmware.{kind}",
                    "size": len(data),
                },
            )

    return _publish


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Poll a predicate until true or fail after `timeout` seconds."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        deadline = asyncio.get_running_loop().time() + timeout
        while not predicate():
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait


def client_events(store: InMemoryStore, log_id: str) -> list[str]:
    """Audit event types written for log_id, in push order."""
    events = store.snapshot(f"logs/{log_id}/clientSide/events") or {}
    return [events[key]["event"] for key in sorted(events)]


@pytest.fixture
def audit_events(store: InMemoryStore) -> Callable[[str], list[str]]:
    return lambda log_id: client_events(store, log_id)


@pytest.fixture
def make_generator() -> Callable[..., FakeGenerator]:
    """Build a generator that returns (or raises) the given results in order."""
    return FakeGenerator
