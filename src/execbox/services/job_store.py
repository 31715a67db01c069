import json
import time
from typing import Any, Callable, Dict, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from ..core.errors import InfrastructureError
from ..core.models import JobStatus, StatusRecord

log = structlog.get_logger(__name__)

DEFAULT_TTL_S = 3600


class JobStatusRow(SQLModel, table=True):
    __tablename__ = "job_status"

    id: str = Field(primary_key=True)
    status: str
    timestamp: int                       # epoch ms of the last write
    expires_at: float = Field(index=True)
    data: Optional[str] = None           # JSON


class JobStore:
    """
    Key-value status store keyed by job id, with expiry.

    Every write refreshes the TTL. Writes are non-critical: on failure they log
    and return False, unless ``strict=True`` asks for an InfrastructureError.
    The engine connects on first use.
    """

    def __init__(
        self,
        url: str = "sqlite:///./execbox.db",
        ttl_s: int = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.time,
    ):
        self.url = url
        self.ttl_s = ttl_s
        self.clock = clock
        self._engine = None
        self._session_factory = None

    # ---------- connection ----------

    def _sessions(self):
        if self._session_factory is None:
            kwargs: Dict[str, Any] = {}
            if self.url.startswith("sqlite"):
                kwargs["connect_args"] = {"check_same_thread": False}
                if self.url in ("sqlite://", "sqlite:///:memory:"):
                    # one shared connection, otherwise each session sees an empty db
                    kwargs["poolclass"] = StaticPool
            self._engine = create_engine(self.url, **kwargs)
            SQLModel.metadata.create_all(self._engine)
            self._session_factory = sessionmaker(bind=self._engine, class_=Session, expire_on_commit=False)
        return self._session_factory

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None

    # ---------- reads ----------

    def get(self, job_id: str) -> Optional[StatusRecord]:
        """None when the job is unknown or its record has expired."""
        try:
            with self._sessions()() as s:
                row = s.get(JobStatusRow, job_id)
                if row is None:
                    return None
                if row.expires_at <= self.clock():
                    s.delete(row)
                    s.commit()
                    return None
                return _to_record(row)
        except SQLAlchemyError as e:
            log.error("status_read_failed", job_id=job_id, error=str(e))
            raise InfrastructureError(f"status store unavailable: {e}") from e

    # ---------- writes ----------

    def set_status(
        self,
        job_id: str,
        status: JobStatus,
        data: Optional[Dict[str, Any]] = None,
        strict: bool = False,
    ) -> bool:
        """
        Write ``status`` for ``job_id``. Returns True when the record was
        written. A transition out of a terminal state is refused (False).
        """
        now = self.clock()
        try:
            with self._sessions()() as s:
                row = s.get(JobStatusRow, job_id)
                if row is not None and row.expires_at > now:
                    current = JobStatus(row.status)
                    if not current.can_transition_to(status):
                        log.warning("status_transition_refused", job_id=job_id,
                                    current=current.value, requested=status.value)
                        return False
                if row is None:
                    row = JobStatusRow(id=job_id, status=status.value, timestamp=0, expires_at=0)
                row.status = status.value
                row.timestamp = int(now * 1000)
                row.expires_at = now + self.ttl_s
                row.data = json.dumps(data) if data is not None else None
                s.add(row)
                s.commit()
        except SQLAlchemyError as e:
            log.error("status_write_failed", job_id=job_id, status=status.value, error=str(e))
            if strict:
                raise InfrastructureError(f"status store unavailable: {e}") from e
            return False
        log.info("status_updated", job_id=job_id, status=status.value)
        return True

    def purge_expired(self) -> int:
        with self._sessions()() as s:
            rows = s.exec(select(JobStatusRow).where(JobStatusRow.expires_at <= self.clock())).all()
            for row in rows:
                s.delete(row)
            s.commit()
            return len(rows)


def _to_record(row: JobStatusRow) -> StatusRecord:
    return StatusRecord(
        status=JobStatus(row.status),
        timestamp=row.timestamp,
        data=json.loads(row.data) if row.data else None,
    )
