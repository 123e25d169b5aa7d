"""Tests for compilation request submission."""

import re

import pytest

from buildrelay.jobs.errors import SubmissionError
from buildrelay.jobs.models import CompilationRequest
from buildrelay.services.submitter import JobSubmitter, generate_request_id
from buildrelay.store.base import StoreError
from buildrelay.store.memory import InMemoryStore


def test_request_id_format():
    request_id = generate_request_id(1_700_000_000.0)
    assert re.fullmatch(r"req_1700000000000_[0-9a-f]{9}", request_id)


def test_request_ids_are_unique():
    assert generate_request_id(1.0) != generate_request_id(1.0)


@pytest.mark.asyncio
async def test_submit_writes_agent_inbox(store, clock):
    submitter = JobSubmitter(store, user_id="u1", source="web-app", clock=clock)
    request = CompilationRequest(code="void loop() {}", board="esp32:esp32:esp32", libraries=["WiFi"])

    request_id = await submitter.submit("a1", request)

    record = await store.read(f"requests/a1/{request_id}")
    assert record == {
        "code": "void loop() {}",
        "board": "esp32:esp32:esp32",
        "libraries": ["WiFi"],
        "timestamp": 1_700_000_000_000,
        "clientMetadata": {"userId": "u1", "source": "web-app"},
    }


@pytest.mark.asyncio
async def test_explicit_origin_is_kept(store, clock):
    submitter = JobSubmitter(store, clock=clock)
    request = CompilationRequest(code="x", board="b", origin={"userId": "other"})

    request_id = await submitter.submit("a1", request)

    record = await store.read(f"requests/a1/{request_id}")
    assert record["clientMetadata"] == {"userId": "other"}


@pytest.mark.asyncio
async def test_store_failure_raises_submission_error(clock):
    class ReadOnlyStore(InMemoryStore):
        async def write(self, path, value):
            raise StoreError("Permission denied")

    submitter = JobSubmitter(ReadOnlyStore(), clock=clock)
    with pytest.raises(SubmissionError) as exc_info:
        await submitter.submit("a1", CompilationRequest(code="x", board="b"))
    assert "Permission denied" in str(exc_info.value)
