"""
Single-host execution backend.

Runs the configured query command as a subprocess per job and exposes the
result files it writes as pages. The command receives the storage paths,
the time window in nanoseconds and one --field argument per predicate term:

    <query_command> --base-path P --interim-path P --output-path P/<job_id>
        --start-time-ns N --end-time-ns N --num-reducers N
        --records-per-file N [--field name=value ...]

Lines of the form "progress: <percent>" on its output update the job's
progress; the last other line becomes the description of a failed job.
Exit status 0 means success, the pages are the *.pcap files in the output
directory in name order.
"""

import asyncio
import logging
import re
import uuid
from collections.abc import AsyncIterator
from pathlib import Path

from pcap_common.backend import ExecutionBackend, JobHandle, Pageable
from pcap_common.config import PcapSettings
from pcap_common.filter import FixedPcapFilter, QueryConfig
from pcap_common.models import JobState, JobStatus

logger = logging.getLogger(__name__)

OUTPUT_CHUNK_SIZE = 64 * 1024
PROGRESS_PATTERN = re.compile(r"^progress:\s*(\d+(?:\.\d+)?)\s*%?$", re.IGNORECASE)


class FilePageable(Pageable):
    """Result pages backed by a fixed, ordered list of file paths."""

    def __init__(self, paths: list[str]):
        self._paths = list(paths)

    def size(self) -> int:
        return len(self._paths)

    def page(self, index: int) -> str:
        return self._paths[index]


def build_query_command(
    command: str, job_id: str, query_filter: FixedPcapFilter, config: QueryConfig
) -> list[str]:
    """Build the argument vector for one query run."""
    args = [
        command,
        "--base-path",
        config.base_path,
        "--interim-path",
        config.base_interim_result_path,
        "--output-path",
        str(Path(config.final_output_path) / job_id),
        "--start-time-ns",
        str(config.start_time_ns),
        "--end-time-ns",
        str(config.end_time_ns),
        "--num-reducers",
        str(config.num_reducers),
        "--records-per-file",
        str(config.records_per_file),
    ]
    for name, value in query_filter.to_fields().items():
        args.extend(["--field", f"{name}={value}"])
    return args


class LocalQueryJob(JobHandle):
    """
    A query running as a local subprocess.

    State only ever moves away from RUNNING once; the monitor task and kill()
    both go through _finish(), which ignores transitions out of a terminal
    state.
    """

    def __init__(
        self, job_id: str, process: asyncio.subprocess.Process, output_dir: Path
    ):
        self._job_id = job_id
        self._process = process
        self._output_dir = output_dir
        self._state = JobState.RUNNING
        self._description = "Job running"
        self._percent_complete = 0.0
        self._pages: FilePageable | None = None
        self._monitor_task: asyncio.Task | None = None

    @property
    def job_id(self) -> str:
        return self._job_id

    def start_monitor(self) -> None:
        """Begin following the process output in the background."""
        self._monitor_task = asyncio.create_task(self._monitor())

    async def is_done(self) -> bool:
        return self._state.is_terminal

    async def status(self) -> JobStatus:
        return JobStatus(
            job_id=self._job_id,
            state=self._state,
            description=self._description,
            percent_complete=self._percent_complete,
        )

    async def result(self) -> Pageable:
        if self._state is not JobState.SUCCEEDED or self._pages is None:
            raise RuntimeError(f"Job {self._job_id} has no results ({self._state.value})")
        return self._pages

    async def kill(self) -> None:
        if self._state.is_terminal:
            return
        self._finish(JobState.KILLED, "Job killed")
        await self._terminate()

    def _finish(
        self, state: JobState, description: str, pages: FilePageable | None = None
    ) -> None:
        if self._state.is_terminal:
            return
        self._state = state
        self._description = description
        self._pages = pages
        if state is JobState.SUCCEEDED:
            self._percent_complete = 100.0
        logger.info(f"Job {self._job_id} {state.value}: {description}")

    def _collect_pages(self) -> FilePageable:
        if not self._output_dir.is_dir():
            return FilePageable([])
        return FilePageable(sorted(str(p) for p in self._output_dir.glob("*.pcap")))

    async def _output_lines(self) -> AsyncIterator[str]:
        """
        Yield the process output line by line.

        Output is read in fixed-size chunks and split here, so a line longer
        than the stream reader's limit does not end the monitor.
        """
        assert self._process.stdout is not None, (
            "stdout should be available when PIPE is specified"
        )
        pending = b""
        while chunk := await self._process.stdout.read(OUTPUT_CHUNK_SIZE):
            *lines, pending = (pending + chunk).split(b"\n")
            for raw in lines:
                yield raw.decode(errors="replace").strip()
        if pending:
            yield pending.decode(errors="replace").strip()

    async def _terminate(self) -> None:
        if self._process.returncode is None:
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
            await self._process.wait()

    async def _monitor(self) -> None:
        """Follow the query output until the process exits, then settle the state."""
        last_line = ""
        try:
            async for line in self._output_lines():
                if not line:
                    continue
                match = PROGRESS_PATTERN.match(line)
                if match:
                    self._percent_complete = min(100.0, float(match.group(1)))
                else:
                    last_line = line
                    logger.debug(f"Job {self._job_id}: {line}")

            returncode = await self._process.wait()
            if self._state.is_terminal:
                return
            if returncode == 0:
                pages = await asyncio.to_thread(self._collect_pages)
                self._finish(
                    JobState.SUCCEEDED, f"Job completed with {pages.size()} pages", pages
                )
            else:
                self._finish(
                    JobState.FAILED,
                    last_line or f"Query exited with status {returncode}",
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error monitoring job {self._job_id}: {e}", exc_info=True)
            await self._terminate()
            self._finish(JobState.FAILED, f"Error monitoring job: {e}")


class LocalQueryBackend(ExecutionBackend):
    """Creates LocalQueryJobs running the configured query command."""

    def __init__(self, settings: PcapSettings):
        self.settings = settings

    async def create(
        self, query_filter: FixedPcapFilter, config: QueryConfig
    ) -> LocalQueryJob:
        """
        Start the query command for a new job.

        Raises:
            RuntimeError: If the output directory can't be created or the
                          command fails to start
        """
        job_id = str(uuid.uuid4())
        output_dir = Path(config.final_output_path) / job_id

        try:
            await asyncio.to_thread(output_dir.mkdir, parents=True, exist_ok=True)
            process = await asyncio.create_subprocess_exec(
                *build_query_command(
                    self.settings.query_command, job_id, query_filter, config
                ),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise RuntimeError(f"Failed to start query: {e}") from e

        job = LocalQueryJob(job_id, process, output_dir)
        job.start_monitor()
        logger.info(f"Started query {job_id} (pid {process.pid})")
        return job
