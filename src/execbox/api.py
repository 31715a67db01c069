from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .core.errors import InfrastructureError, ValidationError
from .core.settings import Settings, load_settings
from .logging import setup_logging
from .services.job_service import JobService
from .services.job_store import JobStore
from .services.orchestrator import ExecutionOrchestrator
from .services.queue import MemoryQueue
from .services.storage import LocalFSStorage
from .worker import BatchWorker

log = structlog.get_logger(__name__)


# --------- Schemas ---------
class ExecuteReq(BaseModel):
    code: Optional[str] = None
    language: Optional[str] = None


class ExecuteRes(BaseModel):
    jobId: str
    status: str
    message: str


class RunRes(BaseModel):
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int
    error_kind: Optional[str] = None


def build_service(s: Settings) -> JobService:
    return JobService(
        settings=s,
        store=JobStore(s.status_db_url, ttl_s=s.status_ttl_s),
        blobs=LocalFSStorage(s.blob_dir),
        queue=MemoryQueue(),
        orchestrator=ExecutionOrchestrator.from_settings(s),
    )


def create_app(settings: Optional[Settings] = None, service: Optional[JobService] = None) -> FastAPI:
    s = settings or (service.settings if service else load_settings())
    setup_logging(s.log_level)
    svc = service or build_service(s)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        stop = threading.Event()
        thread = None
        if s.embedded_worker:
            worker = BatchWorker(svc.store, svc.blobs, svc.orchestrator)
            thread = threading.Thread(
                target=worker.run_forever,
                args=(svc.queue, stop, s.batch_size, s.poll_interval_s),
                name="execbox-worker",
                daemon=True,
            )
            thread.start()
        yield
        stop.set()
        if thread is not None:
            thread.join(timeout=5)
        svc.store.close()

    app = FastAPI(title="execbox", lifespan=lifespan)
    app.state.service = svc
    app.add_middleware(
        CORSMiddleware,
        allow_origins=s.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def _bad_body(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _body_error(exc)})

    @app.exception_handler(InfrastructureError)
    async def _infra_error(request: Request, exc: InfrastructureError):
        log.error("request_failed", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=500, content={"error": "Internal server error", "message": exc.message})

    # --------- Endpoints ---------

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.post("/execute", response_model=ExecuteRes)
    def execute(req: ExecuteReq):
        return svc.submit(req.code, req.language).to_dict()

    @app.get("/job-status/")
    def job_status_missing():
        return JSONResponse(status_code=400, content={"error": "Job ID is required"})

    @app.get("/job-status/{job_id}")
    def job_status(job_id: str):
        data = svc.get_status(job_id)
        if data is None:
            return JSONResponse(status_code=404, content={"error": "Job not found"})
        return data

    @app.post("/run", response_model=RunRes)
    def run(req: ExecuteReq):
        return svc.run_sync(req.code, req.language).to_dict()

    return app


def _body_error(exc: RequestValidationError) -> str:
    """Names the first failing field; a missing body gets its own message."""
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    loc = [str(p) for p in first.get("loc", ()) if p != "body"]
    kind = first.get("type", "")
    if kind == "missing" and not loc:
        return "Request body is required"
    if kind == "json_invalid":
        return "Request body must be valid JSON"
    if not loc:
        return f"Invalid request body: {first.get('msg', 'unprocessable')}"
    return f"Invalid value for '{'.'.join(loc)}': {first.get('msg', 'unprocessable')}"


def main() -> None:
    import uvicorn

    uvicorn.run("execbox.api:create_app", factory=True, host="0.0.0.0", port=8000)
