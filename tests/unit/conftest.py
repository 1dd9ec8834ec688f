"""
Shared test doubles for the job manager and the conversion pipeline.

The fakes implement the backend and storage interfaces in memory so tests
can drive job state transitions by hand.
"""

import io
from typing import BinaryIO

import pytest

from pcap_common.backend import ExecutionBackend, JobHandle, Pageable, Storage
from pcap_common.config import PcapSettings
from pcap_common.filter import FixedPcapFilter, QueryConfig
from pcap_common.models import JobState, JobStatus
from pcap_jobs.manager import JobManager


class FakePageable(Pageable):
    def __init__(self, locators: list[str]):
        self.locators = locators
        self.size_calls = 0

    def size(self) -> int:
        self.size_calls += 1
        return len(self.locators)

    def page(self, index: int) -> str:
        return self.locators[index]


class FakeJobHandle(JobHandle):
    """Job whose state is set directly by the test."""

    def __init__(
        self,
        job_id: str,
        state: JobState = JobState.RUNNING,
        description: str = "",
        percent_complete: float = 0.0,
        pages: list[str] | None = None,
    ):
        self._job_id = job_id
        self.state = state
        self.description = description
        self.percent_complete = percent_complete
        self.pageable = FakePageable(pages or [])
        self.kill_calls = 0
        self.status_error: Exception | None = None
        self.kill_error: Exception | None = None

    @property
    def job_id(self) -> str:
        return self._job_id

    def finish(self, state: JobState, description: str = "") -> None:
        self.state = state
        self.description = description
        if state is JobState.SUCCEEDED:
            self.percent_complete = 100.0

    async def is_done(self) -> bool:
        return self.state.is_terminal

    async def status(self) -> JobStatus:
        if self.status_error is not None:
            raise self.status_error
        return JobStatus(
            job_id=self._job_id,
            state=self.state,
            description=self.description,
            percent_complete=self.percent_complete,
        )

    async def result(self) -> Pageable:
        if self.state is not JobState.SUCCEEDED:
            raise RuntimeError("job not finished")
        return self.pageable

    async def kill(self) -> None:
        self.kill_calls += 1
        if self.kill_error is not None:
            raise self.kill_error
        if not self.state.is_terminal:
            self.finish(JobState.KILLED, "Job killed")


class FakeBackend(ExecutionBackend):
    """Hands out queued handles, or fresh RUNNING ones when the queue is empty."""

    def __init__(self):
        self.created: list[tuple[FixedPcapFilter, QueryConfig]] = []
        self.queued: list[FakeJobHandle] = []
        self.error: Exception | None = None
        self._counter = 0

    async def create(
        self, query_filter: FixedPcapFilter, config: QueryConfig
    ) -> FakeJobHandle:
        if self.error is not None:
            raise self.error
        self.created.append((query_filter, config))
        if self.queued:
            return self.queued.pop(0)
        self._counter += 1
        return FakeJobHandle(f"job_{self._counter}")


class FakeStorage(Storage):
    def __init__(self, files: dict[str, bytes] | None = None):
        self.files = files or {}
        self.opened: list[str] = []

    async def exists(self, locator: str) -> bool:
        return locator in self.files

    def open(self, locator: str) -> BinaryIO:
        self.opened.append(locator)
        if locator not in self.files:
            raise FileNotFoundError(locator)
        return io.BytesIO(self.files[locator])


@pytest.fixture
def settings() -> PcapSettings:
    return PcapSettings(
        base_path="/base/path",
        base_interim_result_path="/base/interim/result/path",
        final_output_path="/final/output/path",
        page_size=100,
        num_reducers=10,
        pdml_script_path="/path/to/pdml/script",
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def manager(backend, settings) -> JobManager:
    return JobManager(backend, settings)


@pytest.fixture
def make_handle():
    """Factory for FakeJobHandle instances."""
    return FakeJobHandle


@pytest.fixture
def make_storage():
    """Factory for FakeStorage instances."""
    return FakeStorage
