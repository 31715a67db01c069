from __future__ import annotations
from pathlib import Path, PurePosixPath
from typing import Protocol

import structlog

from ..core.errors import InfrastructureError

log = structlog.get_logger(__name__)


def code_key(job_id: str, extension: str) -> str:
    return f"jobs/{job_id}/code.{extension}"


class BlobStore(Protocol):
    def put(self, key: str, text: str) -> None: ...
    def get(self, key: str) -> str: ...
    def delete(self, key: str) -> bool: ...


class LocalFSStorage:
    """
    Blob store for submitted sources, laid out by key:
      <root>/jobs/<job_id>/code.<ext>
    """

    def __init__(self, root: Path):
        # always an absolute path
        self.root = root if root.is_absolute() else root.resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        rel = PurePosixPath(key)
        if rel.is_absolute() or ".." in rel.parts:
            raise InfrastructureError(f"invalid blob key: {key}")
        return self.root.joinpath(*rel.parts)

    def put(self, key: str, text: str) -> None:
        p = self._path(key)
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(text, encoding="utf-8")
        except (OSError, UnicodeError) as e:
            raise InfrastructureError(f"failed to store {key}: {e}") from e

    def get(self, key: str) -> str:
        p = self._path(key)
        try:
            return p.read_text(encoding="utf-8")
        except OSError as e:
            log.error("blob_fetch_failed", key=key, error=str(e))
            raise InfrastructureError(f"failed to fetch {key}: {e}") from e

    def delete(self, key: str) -> bool:
        """Best-effort: logs and returns False instead of raising."""
        try:
            p = self._path(key)
            p.unlink()
        except FileNotFoundError:
            return False
        except (OSError, InfrastructureError) as e:
            log.error("blob_delete_failed", key=key, error=str(e))
            return False
        # drop the now-empty jobs/<id>/ directory
        try:
            p.parent.rmdir()
        except OSError:
            pass
        log.info("blob_deleted", key=key)
        return True
