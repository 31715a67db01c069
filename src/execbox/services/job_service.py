from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from ..core.models import ExecutionResult, JobDescriptor, JobStatus
from ..core.settings import Settings
from ..core.utils import new_job_id, now_ms
from ..languages import get_language_config
from .guard import validate_submission
from .job_store import JobStore
from .orchestrator import ExecutionOrchestrator
from .queue import JobQueue
from .storage import BlobStore, code_key

log = structlog.get_logger(__name__)

QUEUED_MESSAGE = "Code execution job has been queued successfully"


@dataclass
class SubmitResult:
    job_id: str
    status: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"jobId": self.job_id, "status": self.status, "message": self.message}


class JobService:
    """
    Submission side: guard -> blob store -> status store -> queue.
    Also serves status queries and the synchronous run path.
    """

    def __init__(
        self,
        settings: Settings,
        store: JobStore,
        blobs: BlobStore,
        queue: JobQueue,
        orchestrator: ExecutionOrchestrator,
    ):
        self.settings = settings
        self.store = store
        self.blobs = blobs
        self.queue = queue
        self.orchestrator = orchestrator

    def _validate(self, code: Optional[str], language: Optional[str]) -> None:
        validate_submission(
            code, language,
            max_chars=self.settings.max_code_chars,
            heuristics=self.settings.syntax_heuristics,
        )

    def submit(self, code: Optional[str], language: Optional[str]) -> SubmitResult:
        self._validate(code, language)
        cfg = get_language_config(language)

        job_id = new_job_id()
        key = code_key(job_id, cfg.extension)
        self.blobs.put(key, code)
        self.store.set_status(job_id, JobStatus.QUEUED, {"language": cfg.language.value, "codeKey": key})

        desc = JobDescriptor(
            job_id=job_id,
            language=cfg.language.value,
            code_key=key,
            timestamp=now_ms(),
            timeout=cfg.timeout_ms,
            memory_limit=cfg.memory_limit,
        )
        message_id = self.queue.send(desc.to_message())
        log.info("job_queued", job_id=job_id, language=cfg.language.value, message_id=message_id)
        return SubmitResult(job_id=job_id, status=JobStatus.QUEUED.value, message=QUEUED_MESSAGE)

    def get_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        rec = self.store.get(job_id)
        return rec.public_view() if rec else None

    def run_sync(self, code: Optional[str], language: Optional[str]) -> ExecutionResult:
        self._validate(code, language)
        job_id = new_job_id()
        log.info("sync_run", job_id=job_id, language=language)
        return self.orchestrator.execute_with_deadline(
            code, language, job_id, total_timeout_s=self.settings.sync_timeout_s
        )
