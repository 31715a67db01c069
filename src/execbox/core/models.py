from __future__ import annotations
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import ErrorKind

NO_OUTPUT_PLACEHOLDER = "Program executed successfully (no output)"


class JobStatus(str, Enum):
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    def can_transition_to(self, new: "JobStatus") -> bool:
        # queued -> active -> completed|failed, never out of a terminal state
        if self.terminal:
            return False
        order = {JobStatus.QUEUED: 0, JobStatus.ACTIVE: 1, JobStatus.COMPLETED: 2, JobStatus.FAILED: 2}
        return order[new] >= order[self]


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    NON_ZERO_EXIT = "non_zero_exit"
    TIMEOUT = "timeout"
    LAUNCH_ERROR = "launch_error"


@dataclass
class ProcessOutcome:
    kind: OutcomeKind
    exit_code: Optional[int]
    stdout: str
    stderr: str
    message: Optional[str]
    duration_ms: int
    truncated: bool = False


@dataclass
class ExecutionResult:
    success: bool
    output: Optional[str]
    error: Optional[str]
    duration_ms: int
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, output: str, duration_ms: int) -> "ExecutionResult":
        return cls(success=True, output=output or NO_OUTPUT_PLACEHOLDER, error=None, duration_ms=duration_ms)

    @classmethod
    def failure(cls, error: str, kind: ErrorKind, duration_ms: int = 0) -> "ExecutionResult":
        return cls(success=False, output=None, error=error, duration_ms=duration_ms, error_kind=kind)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["error_kind"] = self.error_kind.value if self.error_kind else None
        return d


class JobDescriptor(BaseModel):
    """Queue payload handed from the submission path to a worker."""
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId", min_length=1)
    language: str
    code_key: str = Field(alias="codeKey", min_length=1)
    timestamp: int
    timeout: Optional[int] = None          # ms, outer deadline for the job
    memory_limit: Optional[str] = Field(default=None, alias="memoryLimit")

    def to_message(self) -> str:
        return self.model_dump_json(by_alias=True)


class StatusRecord(BaseModel):
    status: JobStatus
    timestamp: int                          # epoch ms of the write
    data: Optional[Dict[str, Any]] = None

    def public_view(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"status": self.status.value, "timestamp": self.timestamp}
        data = self.data or {}
        if self.status == JobStatus.COMPLETED and data.get("result") is not None:
            out["result"] = data["result"]
        if self.status == JobStatus.FAILED and data.get("error") is not None:
            out["error"] = data["error"]
        if data.get("executionTime") is not None:
            out["executionTime"] = data["executionTime"]
        return out


@dataclass
class BatchReport:
    total: int = 0
    completed: int = 0
    failed: int = 0
    dropped: int = 0
    skipped: int = 0
