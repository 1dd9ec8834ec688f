import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from pcap_common.config import PcapSettings, get_env_str
from pcap_common.errors import ErrorKind, PcapError
from pcap_common.models import FixedPcapRequest, User
from pcap_common.repository import UserRepository
from pcap_jobs.local_backend import LocalQueryBackend
from pcap_jobs.manager import JobManager
from pcap_jobs.storage import LocalFileStorage
from pcap_pdml.pipeline import ConversionPipeline
from pcap_persistence.sqlite_repository import SQLiteUserRepository

from .auth import create_get_current_user_dependency

logging.basicConfig(
    level=get_env_str("PCAP_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances (initialized at startup)
repository: UserRepository | None = None
job_manager: JobManager | None = None
pipeline: ConversionPipeline | None = None

ERROR_STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.SUBMISSION: 500,
    ErrorKind.LOOKUP: 500,
    ErrorKind.EXECUTION: 500,
    ErrorKind.PARSE: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI app.

    Handles startup and shutdown events:
    - Startup: Open the user database, wire backend, storage, job manager
      and conversion pipeline from the environment
    - Shutdown: Close database connections

    Jobs live only in memory and in the execution backend; a restart forgets
    every submitted job.
    """
    global repository, job_manager, pipeline

    settings = PcapSettings.from_env()
    logger.info(f"Starting pcap server (db={settings.db_path})")

    repository = SQLiteUserRepository(settings.db_path)
    await repository.initialize()

    job_manager = JobManager(LocalQueryBackend(settings), settings)
    pipeline = ConversionPipeline(job_manager, LocalFileStorage(), settings)

    yield

    if repository:
        await repository.close()


app = FastAPI(lifespan=lifespan)


@app.exception_handler(PcapError)
async def pcap_error_handler(request: Request, exc: PcapError) -> JSONResponse:
    """Render structured failures with their kind."""
    status_code = ERROR_STATUS_CODES[exc.kind]
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "kind": exc.kind.value},
    )


def get_repository() -> UserRepository:
    """
    Get the global repository instance.

    Raises:
        RuntimeError: If repository is not initialized
    """
    if repository is None:
        raise RuntimeError("Repository not initialized")
    return repository


def get_job_manager() -> JobManager:
    """
    Get the global job manager instance.

    Raises:
        RuntimeError: If job manager is not initialized
    """
    if job_manager is None:
        raise RuntimeError("Job manager not initialized")
    return job_manager


def get_pipeline() -> ConversionPipeline:
    """
    Get the global conversion pipeline instance.

    Raises:
        RuntimeError: If pipeline is not initialized
    """
    if pipeline is None:
        raise RuntimeError("Conversion pipeline not initialized")
    return pipeline


get_current_user = create_get_current_user_dependency(get_repository)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint (no authentication required)."""
    return {"status": "ok"}


@app.post("/api/v1/pcap/fixed")
async def submit_fixed(
    payload: dict[str, Any] | None = Body(None),
    user: User = Depends(get_current_user),
    manager: JobManager = Depends(get_job_manager),
) -> dict[str, Any]:
    """
    Submit a fixed filter query. Returns the job status immediately.

    Body keys (all optional): basePath, baseInterimResultPath,
    finalOutputPath, startTimeMs, endTimeMs, numReducers, ipSrcAddr,
    ipDstAddr, ipSrcPort, ipDstPort, protocol, includeReverse, packetFilter.
    """
    request = FixedPcapRequest.from_dict(payload or {})
    status = await manager.submit(user.name, request)
    return status.to_dict()


@app.get("/api/v1/pcap")
async def list_jobs(
    user: User = Depends(get_current_user),
    manager: JobManager = Depends(get_job_manager),
) -> list[dict[str, Any]]:
    """List the status of every job of the authenticated user."""
    return [status.to_dict() for status in await manager.list_jobs(user.name)]


@app.get("/api/v1/pcap/{job_id}")
async def get_job_status(
    job_id: str,
    user: User = Depends(get_current_user),
    manager: JobManager = Depends(get_job_manager),
) -> dict[str, Any]:
    """
    Get the status of one job.

    Raises:
        HTTPException: 404 if the user has no job with this id
    """
    status = await manager.get_status(user.name, job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return status.to_dict()


@app.get("/api/v1/pcap/{job_id}/pdml")
async def get_pdml(
    job_id: str,
    page: int = Query(..., description="1-based page number"),
    user: User = Depends(get_current_user),
    conversion: ConversionPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """
    Decode one result page into a packet/proto/field tree.

    Raises:
        HTTPException: 404 if the job, the page or the page file doesn't exist
    """
    document = await conversion.decode(user.name, job_id, page)
    if document is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return document.to_dict()


@app.get("/api/v1/pcap/{job_id}/raw")
async def get_raw(
    job_id: str,
    page: int = Query(..., description="1-based page number"),
    user: User = Depends(get_current_user),
    conversion: ConversionPipeline = Depends(get_pipeline),
) -> StreamingResponse:
    """
    Download one result page as a pcap file.

    Raises:
        HTTPException: 404 if the job, the page or the page file doesn't exist
    """
    chunks: AsyncGenerator[bytes, None] | None = await conversion.open_raw(
        user.name, job_id, page
    )
    if chunks is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return StreamingResponse(
        chunks,
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": f'attachment; filename="pcap_{job_id}_{page}.pcap"'
        },
    )


@app.delete("/api/v1/pcap/kill/{job_id}")
async def kill_job(
    job_id: str,
    user: User = Depends(get_current_user),
    manager: JobManager = Depends(get_job_manager),
) -> dict[str, Any]:
    """
    Kill a running job. Killing a finished job returns its final status.

    Raises:
        HTTPException: 404 if the user has no job with this id
    """
    status = await manager.kill(user.name, job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return status.to_dict()
