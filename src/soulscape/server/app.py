"""FastAPI server for spirit evolution and the graffiti wall.

Provides:
- POST /evolve, POST /evolve/all, GET /spirits/owners: evolution
- POST /evolve/jobs, GET /evolve/jobs/{job_id}: background evolution jobs
- GET /spirits/{token_id}, GET /spirit-history, GET /metadata/{token_id}: spirit reads
- GET /graffiti-history, POST /graffiti/sync, GET /graffiti/cooldown/{token_id}: wall
- GET /health: liveness probe
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, status
from pydantic import BaseModel, Field

from soulscape import __version__
from soulscape.api.errors import ApiError, api_error_from, install_error_handlers
from soulscape.api.evolution import EvolveRequest, result_payload
from soulscape.api.evolution import router as evolution_router
from soulscape.api.graffiti import history_router as graffiti_history_router
from soulscape.api.graffiti import router as graffiti_router
from soulscape.api.spirits import router as spirits_router
from soulscape.engine.evolution import EvolutionResult, EvolutionStatus
from soulscape.logging_config import configure_logging
from soulscape.model.address import normalize_address
from soulscape.services import get_services

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


class JobStatus(StrEnum):
    """Status of a background evolution job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class EvolutionJob:
    """A background evolution for one address."""

    job_id: str
    address: str
    status: JobStatus = JobStatus.PENDING
    created_at: float = 0.0
    finished_at: float | None = None
    result: EvolutionResult | None = None
    error_code: str = ""
    error_message: str = ""


class EvolutionJobManager:
    """Thread-safe manager for background evolution jobs."""

    def __init__(
        self,
        evolve: Callable[[str], EvolutionResult] | None = None,
        max_workers: int = 4,
    ) -> None:
        """Initialize the job manager.

        Args:
            evolve: Function running one evolution; defaults to the
                process-wide orchestrator.
            max_workers: Worker threads.
        """
        self._evolve = evolve or (lambda address: get_services().orchestrator.evolve(address))
        self._jobs: dict[str, EvolutionJob] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="evolution_worker"
        )

    def create_job(self, address: str) -> str:
        """Queue an evolution for ``address`` and return its job id.

        Raises:
            InvalidAddressError: If ``address`` is malformed.
        """
        job = EvolutionJob(
            job_id=str(uuid.uuid4()),
            address=normalize_address(address),
            created_at=time.time(),
        )
        with self._lock:
            self._jobs[job.job_id] = job
        self._executor.submit(self._run_job, job.job_id)
        return job.job_id

    def get_job(self, job_id: str) -> EvolutionJob | None:
        """Get job by ID, or None if unknown."""
        with self._lock:
            return self._jobs.get(job_id)

    def shutdown(self, wait: bool = False) -> None:
        """Stop accepting work and release the worker threads."""
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def _run_job(self, job_id: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.status = JobStatus.RUNNING

        try:
            result = self._evolve(job.address)
        except Exception as e:
            error = api_error_from(e)
            with self._lock:
                job.status = JobStatus.FAILED
                job.error_code = error.code
                job.error_message = error.message
                job.finished_at = time.time()
            logger.warning(
                "Evolution job failed: %s", str(e), extra={"job_id": job_id, "address": job.address}
            )
            return

        with self._lock:
            job.result = result
            job.finished_at = time.time()
            if result.status is EvolutionStatus.NO_SPIRIT:
                job.status = JobStatus.FAILED
                job.error_code = "no_spirit"
                job.error_message = f"No spirit minted for {job.address}"
            else:
                job.status = JobStatus.COMPLETED


_job_manager: EvolutionJobManager | None = None
_job_manager_lock = threading.Lock()


def get_job_manager() -> EvolutionJobManager:
    """Get or create the global job manager."""
    global _job_manager
    with _job_manager_lock:
        if _job_manager is None:
            _job_manager = EvolutionJobManager()
        return _job_manager


def set_job_manager(manager: EvolutionJobManager | None) -> None:
    """Install (or clear) the global job manager."""
    global _job_manager
    with _job_manager_lock:
        _job_manager = manager


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and build services at startup; stop job workers on shutdown."""
    configure_logging()
    services = get_services()
    logger.info("Soulscape %s started: %s", __version__, services.config)
    yield
    if _job_manager is not None:
        _job_manager.shutdown()


app = FastAPI(
    title="Soulscape",
    description="Evolving on-chain spirits and a shared graffiti wall",
    version=__version__,
    lifespan=lifespan,
)

install_error_handlers(app)
app.include_router(evolution_router)
app.include_router(spirits_router)
app.include_router(graffiti_router)
app.include_router(graffiti_history_router)


class JobCreatedResponse(BaseModel):
    """Response model for job creation."""

    success: bool = True
    job_id: str = Field(serialization_alias="jobId", description="Job ID for status polling")
    message: str


class JobStatusResponse(BaseModel):
    """Response model for job status."""

    success: bool = True
    job_id: str = Field(serialization_alias="jobId")
    address: str
    status: str = Field(description="pending, running, completed or failed")
    result: dict[str, Any] | None = None
    error: str = ""
    message: str = ""


@app.post(
    "/evolve/jobs",
    response_model=JobCreatedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["evolution"],
)
def create_evolution_job(request: EvolveRequest) -> JobCreatedResponse:
    """Start an evolution in the background and return a job id to poll."""
    get_services().config.validate_for_writes()
    job_id = get_job_manager().create_job(normalize_address(request.address))
    logger.info("Started evolution job", extra={"job_id": job_id})
    return JobCreatedResponse(job_id=job_id, message="Evolution started")


@app.get("/evolve/jobs/{job_id}", response_model=JobStatusResponse, tags=["evolution"])
def get_evolution_job(job_id: str) -> JobStatusResponse:
    """Status of a background evolution, with its result once completed.

    Raises:
        ApiError: 404 job_not_found for unknown ids.
    """
    job = get_job_manager().get_job(job_id)
    if job is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, "job_not_found", f"Job '{job_id}' not found")

    result = None
    if job.status is JobStatus.COMPLETED and job.result is not None:
        result = result_payload(job.result).model_dump(by_alias=True)
    return JobStatusResponse(
        job_id=job.job_id,
        address=job.address,
        status=job.status.value,
        result=result,
        error=job.error_code,
        message=job.error_message,
    )


@app.get("/health", tags=["health"])
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"success": True, "status": "ok", "service": "soulscape", "version": __version__}
