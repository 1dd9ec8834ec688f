"""
Conversion of result pages into decoded documents.

A page is piped through the external decoder: its raw bytes are written to
the decoder's stdin while its stdout is drained into a PdmlDecoder. Both
directions run as separate tasks. The decoder starts emitting output before
it has consumed all of its input, so writing everything first and reading
afterwards would deadlock as soon as a page exceeds the pipe buffer.
"""

import asyncio
import logging
import os
from collections.abc import AsyncGenerator
from typing import BinaryIO

from pcap_common.backend import Storage
from pcap_common.config import PcapSettings
from pcap_common.errors import ErrorKind, PcapError
from pcap_common.models import AttributeDocument
from pcap_jobs.manager import JobManager

from .decoder import CHUNK_SIZE, PdmlDecoder

logger = logging.getLogger(__name__)

# Seconds a decoder gets to exit after its output or input stream failed
DECODER_EXIT_TIMEOUT = 5.0


class ConversionPipeline:
    """
    Streams job result pages through the configured decoder executable.

    The decoder is invoked as `<pdml_script_path> <page name>` and must read
    the raw page on stdin, write PDML on stdout and exit with status 0.
    """

    def __init__(self, job_manager: JobManager, storage: Storage, settings: PcapSettings):
        """
        Initialize the pipeline.

        Args:
            job_manager: Resolves (owner, job_id, page) to a storage locator
            storage: Reads the raw page bytes
            settings: Provides the decoder executable path
        """
        self.job_manager = job_manager
        self.storage = storage
        self.settings = settings

    async def _resolve(self, owner: str, job_id: str, page_number: int) -> str | None:
        locator = await self.job_manager.get_page(owner, job_id, page_number)
        if locator is None:
            return None
        if not await self.storage.exists(locator):
            logger.warning(f"Page {page_number} of job {job_id} missing at {locator}")
            return None
        return locator

    async def decode(
        self, owner: str, job_id: str, page_number: int
    ) -> AttributeDocument | None:
        """
        Decode one result page of a finished job.

        Args:
            owner: User owning the job
            job_id: Job identifier
            page_number: 1-based page number

        Returns:
            The decoded document, or None if the page can't be resolved or is
            missing from storage (the decoder is not started in that case)

        Raises:
            PcapError: EXECUTION if the decoder fails to start, to stream or
                       exits non-zero, PARSE if its output is malformed
        """
        locator = await self._resolve(owner, job_id, page_number)
        if locator is None:
            return None
        return await self.convert(locator)

    async def open_raw(
        self, owner: str, job_id: str, page_number: int
    ) -> AsyncGenerator[bytes, None] | None:
        """
        Stream the raw bytes of one result page.

        The page is opened before returning, so a page removed after the
        existence check is reported as missing rather than mid-stream.

        Returns:
            Async iterator of chunks, or None if the page can't be resolved
            or is missing from storage

        Raises:
            PcapError: EXECUTION if the page exists but can't be opened
        """
        locator = await self._resolve(owner, job_id, page_number)
        if locator is None:
            return None
        try:
            stream = self.storage.open(locator)
        except FileNotFoundError:
            logger.warning(f"Page {page_number} of job {job_id} vanished from {locator}")
            return None
        except OSError as e:
            raise PcapError(ErrorKind.EXECUTION, str(e)) from e
        return self._read_chunks(stream)

    async def _read_chunks(self, stream: BinaryIO) -> AsyncGenerator[bytes, None]:
        try:
            while chunk := await asyncio.to_thread(stream.read, CHUNK_SIZE):
                yield chunk
        finally:
            stream.close()

    async def convert(self, locator: str) -> AttributeDocument:
        """
        Pipe the page at locator through the decoder and parse its output.

        A non-zero exit status takes precedence over any streaming or parse
        error seen before the decoder exited.

        Raises:
            PcapError: EXECUTION or PARSE, see decode()
        """
        script = self.settings.pdml_script_path
        page_name = os.path.basename(locator)

        try:
            stream = self.storage.open(locator)
        except OSError as e:
            raise PcapError(ErrorKind.EXECUTION, str(e)) from e

        failure: PcapError | None = None
        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    script,
                    page_name,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                logger.error(f"Failed to start decoder {script}: {e}")
                raise PcapError(ErrorKind.EXECUTION, str(e)) from e
            logger.info(f"Decoding {locator} with {script} (pid {process.pid})")

            decoder = PdmlDecoder()
            feeder = asyncio.create_task(self._feed(process, stream))
            drainer = asyncio.create_task(self._drain(process, decoder))
            try:
                try:
                    await asyncio.gather(feeder, drainer)
                except PcapError as e:
                    failure = e
                    await self._cancel(feeder, drainer)
                    returncode = await self._wait_for_exit(process)
                else:
                    returncode = await process.wait()
            except BaseException:
                await self._cancel(feeder, drainer)
                await self._kill(process)
                raise
        finally:
            stream.close()

        if returncode is not None and returncode != 0:
            logger.error(f"Decoder {script} exited with status {returncode}")
            raise PcapError(
                ErrorKind.EXECUTION,
                f"Decoder {script} exited with status {returncode}",
            ) from failure
        if failure is not None:
            logger.error(f"Decoding {locator} failed: {failure.message}")
            raise failure
        return decoder.close()

    async def _cancel(self, *tasks: asyncio.Task) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _wait_for_exit(self, process: asyncio.subprocess.Process) -> int | None:
        """
        Give a decoder that failed mid-stream the chance to exit on its own.

        Returns:
            Its exit status, or None if it was still running after
            DECODER_EXIT_TIMEOUT seconds and had to be killed
        """
        try:
            return await asyncio.wait_for(process.wait(), DECODER_EXIT_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"Decoder (pid {process.pid}) still running, killing it")
            await self._kill(process)
            return None

    async def _feed(self, process: asyncio.subprocess.Process, stream: BinaryIO) -> None:
        """Copy the page into the decoder's stdin, then close it to signal EOF."""
        assert process.stdin is not None, (
            "stdin should be available when PIPE is specified"
        )
        try:
            while chunk := await asyncio.to_thread(stream.read, CHUNK_SIZE):
                process.stdin.write(chunk)
                await process.stdin.drain()
        except OSError as e:
            raise PcapError(
                ErrorKind.EXECUTION, f"Failed to stream page to decoder: {e}"
            ) from e
        finally:
            process.stdin.close()

    async def _drain(
        self, process: asyncio.subprocess.Process, decoder: PdmlDecoder
    ) -> None:
        """Feed the decoder's stdout into the parser until end of data."""
        assert process.stdout is not None, (
            "stdout should be available when PIPE is specified"
        )
        try:
            while chunk := await process.stdout.read(CHUNK_SIZE):
                decoder.feed(chunk)
        except OSError as e:
            raise PcapError(
                ErrorKind.EXECUTION, f"Failed to read decoder output: {e}"
            ) from e

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
