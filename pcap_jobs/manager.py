"""
Job manager owning the namespace of pcap query jobs.

Jobs are keyed by (owner, job_id). Each key carries its own asyncio.Lock that
is held across the backend round trip of every operation on that key, so a
status read racing a kill observes either the pre-kill or the post-kill
state. Distinct keys never share a lock.

The manager keeps no job state of its own beyond the handle: status, progress
and results always come live from the execution backend.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from pcap_common.backend import ExecutionBackend, JobHandle, Pageable
from pcap_common.config import PcapSettings
from pcap_common.errors import ErrorKind, PcapError
from pcap_common.filter import build_filter, build_query_config
from pcap_common.models import FixedPcapRequest, JobState, JobStatus, PcapStatus

from .status import to_pcap_status

logger = logging.getLogger(__name__)

JobKey = tuple[str, str]


@dataclass
class _JobEntry:
    handle: JobHandle
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class JobManager:
    """
    Submits, tracks and kills pcap query jobs on behalf of their owners.

    Job creation is delegated to the injected ExecutionBackend, which makes
    the manager independent of where and how the query actually runs.
    """

    def __init__(self, backend: ExecutionBackend, settings: PcapSettings):
        """
        Initialize the job manager.

        Args:
            backend: Factory creating and starting jobs
            settings: Defaults applied to requests that leave fields unset
        """
        self.backend = backend
        self.settings = settings
        self._jobs: dict[JobKey, _JobEntry] = {}

    async def submit(self, owner: str, request: FixedPcapRequest) -> PcapStatus:
        """
        Start a job for the request and return its status without waiting.

        Args:
            owner: User submitting the job
            request: Fixed filter request

        Returns:
            Current status of the new job

        Raises:
            PcapError: VALIDATION for an invalid request, SUBMISSION if the
                       backend rejects the job, LOOKUP if its status can't be read
        """
        query_filter = build_filter(request)
        config = build_query_config(request, self.settings, owner=owner)

        try:
            handle = await self.backend.create(query_filter, config)
        except Exception as e:
            logger.error(f"Backend rejected job for {owner}: {e}")
            raise PcapError(ErrorKind.SUBMISSION, str(e)) from e

        key = (owner, handle.job_id)
        if key in self._jobs:
            try:
                await handle.kill()
            except Exception as e:
                logger.warning(f"Failed to kill duplicate job {handle.job_id}: {e}")
            raise PcapError(
                ErrorKind.SUBMISSION,
                f"Job {handle.job_id} already exists for {owner}",
            )
        entry = _JobEntry(handle)
        self._jobs[key] = entry
        logger.info(
            f"Submitted job {handle.job_id} for {owner} "
            f"(fields={query_filter.to_fields()}, reducers={config.num_reducers})"
        )

        async with entry.lock:
            return await self._current_status(entry.handle)

    async def get_status(self, owner: str, job_id: str) -> PcapStatus | None:
        """
        Get the live status of a job.

        Returns:
            PcapStatus, or None if no job is registered under (owner, job_id)

        Raises:
            PcapError: LOOKUP if the backend fails while fetching the status
        """
        entry = self._jobs.get((owner, job_id))
        if entry is None:
            logger.debug(f"Status requested for unknown job {job_id} of {owner}")
            return None

        async with entry.lock:
            return await self._current_status(entry.handle)

    async def kill(self, owner: str, job_id: str) -> PcapStatus | None:
        """
        Kill a running job and report its status afterwards.

        Killing a job that already finished is a no-op returning its
        terminal status unchanged.

        Returns:
            PcapStatus after the kill, or None if the job is unknown

        Raises:
            PcapError: LOOKUP if the backend fails to report or kill the job
        """
        entry = self._jobs.get((owner, job_id))
        if entry is None:
            logger.debug(f"Kill requested for unknown job {job_id} of {owner}")
            return None

        async with entry.lock:
            status = await self._fetch_status(entry.handle)
            if status.state.is_terminal:
                logger.info(f"Job {job_id} already {status.state.value}, not killing")
                return await self._publish(entry.handle, status)

            try:
                await entry.handle.kill()
            except Exception as e:
                logger.error(f"Failed to kill job {job_id}: {e}")
                raise PcapError(ErrorKind.LOOKUP, str(e)) from e
            logger.info(f"Killed job {job_id} of {owner}")

            return await self._current_status(entry.handle)

    async def get_page(self, owner: str, job_id: str, page_number: int) -> str | None:
        """
        Resolve a 1-based page number to the storage locator of that page.

        Returns:
            Locator, or None if the job is unknown, not finished successfully,
            or page_number is outside 1..page_total

        Raises:
            PcapError: LOOKUP if the backend fails while resolving the page
        """
        entry = self._jobs.get((owner, job_id))
        if entry is None:
            return None

        async with entry.lock:
            pageable = await self._finished_result(entry.handle)
        if pageable is None:
            logger.debug(f"Job {job_id} has no results yet")
            return None

        size = pageable.size()
        if page_number < 1 or page_number > size:
            logger.debug(f"Page {page_number} out of range for job {job_id} ({size})")
            return None
        return pageable.page(page_number - 1)

    async def list_jobs(self, owner: str) -> list[PcapStatus]:
        """
        Get the status of every job of an owner, in submission order.

        Raises:
            PcapError: LOOKUP if the backend fails for any of the jobs
        """
        entries = [entry for key, entry in list(self._jobs.items()) if key[0] == owner]
        statuses = []
        for entry in entries:
            async with entry.lock:
                statuses.append(await self._current_status(entry.handle))
        return statuses

    async def _fetch_status(self, handle: JobHandle) -> JobStatus:
        try:
            return await handle.status()
        except Exception as e:
            logger.error(f"Failed to fetch status of job {handle.job_id}: {e}")
            raise PcapError(ErrorKind.LOOKUP, str(e)) from e

    async def _finished_result(self, handle: JobHandle) -> Pageable | None:
        """Result pages of a done, successful job; None otherwise."""
        try:
            if not await handle.is_done():
                return None
            status = await handle.status()
            if status.state is not JobState.SUCCEEDED:
                return None
            return await handle.result()
        except Exception as e:
            logger.error(f"Failed to fetch results of job {handle.job_id}: {e}")
            raise PcapError(ErrorKind.LOOKUP, str(e)) from e

    async def _publish(self, handle: JobHandle, status: JobStatus) -> PcapStatus:
        pageable = None
        if status.state is JobState.SUCCEEDED:
            try:
                if await handle.is_done():
                    pageable = await handle.result()
            except Exception as e:
                logger.error(f"Failed to fetch results of job {handle.job_id}: {e}")
                raise PcapError(ErrorKind.LOOKUP, str(e)) from e
        return to_pcap_status(status, pageable)

    async def _current_status(self, handle: JobHandle) -> PcapStatus:
        status = await self._fetch_status(handle)
        return await self._publish(handle, status)
