"""
Abstract interfaces for the collaborators of the job manager.

The execution backend runs the extraction jobs and the storage serves their
result files. Both are injected, so the manager never knows whether it talks
to a cluster, a local process, or an in-memory test double.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, BinaryIO

from .models import JobStatus

if TYPE_CHECKING:
    from .filter import FixedPcapFilter, QueryConfig


class Pageable(ABC):
    """
    The result set of a finished job, split into independently readable pages.

    Pages are addressed 0-based here; the public API is 1-based.
    """

    @abstractmethod
    def size(self) -> int:
        """Total number of pages."""
        pass

    @abstractmethod
    def page(self, index: int) -> str:
        """
        Get the storage locator of one page.

        Args:
            index: 0-based page index, 0 <= index < size()

        Returns:
            Locator understood by the Storage collaborator
        """
        pass


class JobHandle(ABC):
    """
    One submitted job as tracked by the execution backend.

    Implementations must keep the state monotonic: once a job leaves RUNNING
    it never changes state again.
    """

    @property
    @abstractmethod
    def job_id(self) -> str:
        """Backend-assigned identifier, unique for the owner."""
        pass

    @abstractmethod
    async def is_done(self) -> bool:
        """Whether the job reached a terminal state."""
        pass

    @abstractmethod
    async def status(self) -> JobStatus:
        """
        Fetch the live status of the job.

        Raises:
            Exception: If the backend cannot be reached
        """
        pass

    @abstractmethod
    async def result(self) -> Pageable:
        """
        Get the result pages. Only valid once the job SUCCEEDED.

        Raises:
            Exception: If the job has not finished successfully
        """
        pass

    @abstractmethod
    async def kill(self) -> None:
        """
        Cancel the job. Returns once the backend acknowledged the kill.

        Raises:
            Exception: If the backend fails to cancel the job
        """
        pass


class ExecutionBackend(ABC):
    """Factory for jobs: creates and starts one job per query."""

    @abstractmethod
    async def create(
        self, query_filter: "FixedPcapFilter", config: "QueryConfig"
    ) -> JobHandle:
        """
        Create and start a job. Must not wait for the job to finish.

        Args:
            query_filter: Predicate selecting the packets to extract
            config: Storage paths, time window and parallelism for the job

        Returns:
            Handle of the running job

        Raises:
            Exception: If the backend rejects the job (message is surfaced verbatim)
        """
        pass


class Storage(ABC):
    """Read access to the files a job produced."""

    @abstractmethod
    async def exists(self, locator: str) -> bool:
        """Whether a page exists at the locator."""
        pass

    @abstractmethod
    def open(self, locator: str) -> BinaryIO:
        """
        Open a page for reading raw bytes.

        The caller owns the returned stream and must close it.
        """
        pass
