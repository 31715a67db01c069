from __future__ import annotations

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List

import structlog

from ..core.utils import extract_java_class_name
from ..languages import get_language_config

log = structlog.get_logger(__name__)

JOB_DIR_PREFIX = "job_"


class ArtifactManager:
    """
    Materializes job sources in a scratch directory shared by every job on the
    host and removes everything a job produced once it is done.

      <scratch>/
        ├─ code_<job_id>.cpp      source
        ├─ code_<job_id>          compiled executable
        └─ job_<job_id>/          only when the toolchain dictates the name
             ├─ Main.java
             └─ Main.class
    """

    def __init__(self, scratch_dir: Path):
        self.scratch_dir = scratch_dir if scratch_dir.is_absolute() else scratch_dir.resolve()
        self.scratch_dir.mkdir(parents=True, exist_ok=True)

    def source_path(self, code: str, language: str, job_id: str) -> Path:
        cfg = get_language_config(language)
        if cfg.fixed_entry_name:
            name = extract_java_class_name(code)
            return self.scratch_dir / f"{JOB_DIR_PREFIX}{job_id}" / f"{name}.{cfg.extension}"
        return self.scratch_dir / f"code_{job_id}.{cfg.extension}"

    def materialize(self, code: str, language: str, job_id: str) -> Path:
        path = self.source_path(code, language, job_id)
        path.parent.mkdir(parents=True, exist_ok=True)

        # write next to the target then rename, readers never see a partial file
        tmp = None
        try:
            fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(code)
            os.replace(tmp, path)
        except BaseException:
            if tmp:
                _unlink_quiet(Path(tmp))
            self.cleanup(path)
            raise
        log.debug("artifact_created", path=str(path))
        return path

    def cleanup(self, source_path: Path) -> List[str]:
        """
        Best-effort removal of the source, its executable and its .class file.
        Returns the removal errors; never raises.
        """
        errors: List[str] = []
        candidates = [
            source_path,
            source_path.with_suffix(""),
            source_path.with_suffix(".class"),
        ]
        job_dir = source_path.parent
        owns_dir = job_dir != self.scratch_dir and job_dir.name.startswith(JOB_DIR_PREFIX)
        if owns_dir:
            try:
                candidates.extend(p for p in job_dir.glob("*.class") if p not in candidates)
            except OSError as e:
                errors.append(f"{job_dir}: {e}")

        for p in candidates:
            try:
                p.unlink()
                log.debug("artifact_removed", path=str(p))
            except FileNotFoundError:
                continue
            except OSError as e:
                errors.append(f"{p}: {e}")

        if owns_dir:
            try:
                job_dir.rmdir()
            except FileNotFoundError:
                pass
            except OSError as e:
                errors.append(f"{job_dir}: {e}")

        if errors:
            log.warning("artifact_cleanup_errors", source=str(source_path), errors=errors)
        return errors

    @contextmanager
    def scoped(self, code: str, language: str, job_id: str) -> Iterator[Path]:
        path = self.materialize(code, language, job_id)
        try:
            yield path
        finally:
            self.cleanup(path)


def _unlink_quiet(p: Path) -> None:
    try:
        p.unlink()
    except OSError:
        pass
