"""
Batch worker: pulls job descriptors off the queue and runs each one through
the execution orchestrator.

Each message is handled on its own; a failure while processing one never
stops the rest of the batch.
"""
from __future__ import annotations

import json
import threading
import time
from typing import Any, Dict, Iterable, Optional

import structlog
from pydantic import ValidationError as DescriptorError

from .core.errors import ExecboxError
from .core.models import BatchReport, JobDescriptor, JobStatus
from .services.job_store import JobStore
from .services.orchestrator import ExecutionOrchestrator
from .services.queue import JobQueue
from .services.storage import BlobStore

log = structlog.get_logger(__name__)


class BatchWorker:
    def __init__(self, store: JobStore, blobs: BlobStore, orchestrator: ExecutionOrchestrator):
        self.store = store
        self.blobs = blobs
        self.orchestrator = orchestrator

    def process_batch(self, bodies: Iterable[str]) -> BatchReport:
        report = BatchReport()
        for body in bodies:
            report.total += 1
            try:
                outcome = self.process_message(body)
            except Exception as e:
                # last line of defence, the next message must still run
                log.exception("message_processing_crashed", error=str(e))
                outcome = self._fail_salvaged(body, f"{type(e).__name__}: {e}")
            setattr(report, outcome, getattr(report, outcome) + 1)
        log.info("batch_processed", total=report.total, completed=report.completed,
                 failed=report.failed, dropped=report.dropped, skipped=report.skipped)
        return report

    def process_message(self, body: str) -> str:
        """Returns the report bucket: completed | failed | dropped | skipped."""
        try:
            desc = JobDescriptor.model_validate_json(body)
        except DescriptorError as e:
            return self._fail_salvaged(body, f"Malformed job descriptor: {e.error_count()} invalid field(s)")

        bound = log.bind(job_id=desc.job_id, language=desc.language)
        if not self.store.set_status(desc.job_id, JobStatus.ACTIVE):
            current = self._current_status(desc.job_id)
            if current is not None and current.terminal:
                # redelivered after a finished run
                bound.info("job_already_finished", status=current.value)
                self.blobs.delete(desc.code_key)
                return "skipped"

        start = time.monotonic()
        try:
            code = self.blobs.get(desc.code_key)
            deadline = start + desc.timeout / 1000.0 if desc.timeout else None
            result = self.orchestrator.execute(
                code, desc.language, desc.job_id,
                deadline=deadline, deadline_ms=desc.timeout, memory_limit=desc.memory_limit,
            )
        except ExecboxError as e:
            elapsed = int((time.monotonic() - start) * 1000)
            bound.error("job_failed", kind=e.kind.value, error=e.message)
            self.store.set_status(desc.job_id, JobStatus.FAILED, {
                "error": e.message, "executionTime": elapsed, "language": desc.language,
            })
            self.blobs.delete(desc.code_key)
            return "failed"
        except Exception:
            self.blobs.delete(desc.code_key)
            raise

        elapsed = int((time.monotonic() - start) * 1000)
        if result.success:
            self.store.set_status(desc.job_id, JobStatus.COMPLETED, {
                "result": result.output, "executionTime": elapsed, "language": desc.language,
            })
            bound.info("job_completed", duration_ms=elapsed)
            bucket = "completed"
        else:
            self.store.set_status(desc.job_id, JobStatus.FAILED, {
                "error": result.error, "executionTime": elapsed, "language": desc.language,
            })
            bound.info("job_failed", kind=result.error_kind.value if result.error_kind else None,
                       duration_ms=elapsed)
            bucket = "failed"

        self.blobs.delete(desc.code_key)
        return bucket

    def run_forever(
        self,
        queue: JobQueue,
        stop: threading.Event,
        batch_size: int = 10,
        poll_interval_s: float = 0.5,
    ) -> None:
        log.info("worker_started", batch_size=batch_size)
        while not stop.is_set():
            bodies = queue.receive_batch(batch_size, wait_s=poll_interval_s)
            if bodies:
                self.process_batch(bodies)
        log.info("worker_stopped")

    # ---------- helpers ----------

    def _current_status(self, job_id: str) -> Optional[JobStatus]:
        try:
            rec = self.store.get(job_id)
        except ExecboxError:
            return None
        return rec.status if rec else None

    def _fail_salvaged(self, body: str, error: str) -> str:
        raw = _loose_json(body)
        job_id = raw.get("jobId")
        if not isinstance(job_id, str) or not job_id:
            log.warning("descriptor_dropped", error=error)
            return "dropped"
        language = raw.get("language") if isinstance(raw.get("language"), str) else "unknown"
        self.store.set_status(job_id, JobStatus.FAILED, {"error": error, "language": language})
        key = raw.get("codeKey")
        if isinstance(key, str) and key:
            self.blobs.delete(key)
        log.warning("descriptor_failed", job_id=job_id, error=error)
        return "failed"


def _loose_json(body: Any) -> Dict[str, Any]:
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}
