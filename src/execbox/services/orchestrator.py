from __future__ import annotations

import time
from pathlib import Path
from typing import Dict, Mapping, Optional

import structlog

from ..core.errors import (
    CompileError,
    DeadlineExceeded,
    ExecboxError,
    ErrorKind,
    LaunchError,
    ProgramError,
)
from ..core.models import ExecutionResult, OutcomeKind, ProcessOutcome
from ..core.utils import parse_memory_limit
from ..languages import CommandSpec, LanguageConfig, get_language_config, resolve_command
from ..runner.rlimits import ProcessLimits
from ..runner.supervisor import ProcessSupervisor
from .artifacts import ArtifactManager

log = structlog.get_logger(__name__)


class ExecutionOrchestrator:
    """
    Runs one job's source: materialize -> compile (if any) -> execute -> cleanup.
    Every phase failure is folded into the returned ExecutionResult.
    """

    def __init__(
        self,
        artifacts: ArtifactManager,
        supervisor: ProcessSupervisor,
        runtimes: Optional[Mapping[str, str]] = None,
        enforce_rlimits: bool = False,
        cpu_seconds: int = 0,
        nofile: int = 0,
        env: Optional[Dict[str, str]] = None,
    ):
        self.artifacts = artifacts
        self.supervisor = supervisor
        self.runtimes = dict(runtimes or {})
        self.enforce_rlimits = enforce_rlimits
        self.cpu_seconds = cpu_seconds
        self.nofile = nofile
        self.env = env

    @classmethod
    def from_settings(cls, s) -> "ExecutionOrchestrator":
        return cls(
            artifacts=ArtifactManager(s.scratch_dir),
            supervisor=ProcessSupervisor(max_output_bytes=s.max_output_bytes),
            runtimes=s.runtimes,
            enforce_rlimits=s.enforce_rlimits,
            cpu_seconds=s.cpu_seconds,
            nofile=s.nofile,
        )

    def execute(
        self,
        code: str,
        language: str,
        job_id: str,
        deadline: Optional[float] = None,
        memory_limit: Optional[str] = None,
        deadline_ms: Optional[int] = None,
    ) -> ExecutionResult:
        """
        ``deadline`` is a time.monotonic() timestamp bounding the whole call;
        each phase gets min(phase timeout, time left). ``deadline_ms`` is the
        outer bound reported when the deadline, not a phase limit, expires.
        """
        try:
            cfg = get_language_config(language)
        except ExecboxError as e:
            return ExecutionResult.failure(e.message, e.kind)

        bound = log.bind(job_id=job_id, language=cfg.language.value)
        limits = self._limits(cfg, memory_limit)
        start = time.monotonic()
        try:
            with self.artifacts.scoped(code, cfg.language.value, job_id) as source:
                if cfg.compile is not None:
                    bound.info("phase_start", phase="compile")
                    self._run_phase("compile", cfg.compile, source, deadline, deadline_ms, limits)
                bound.info("phase_start", phase="execute")
                outcome = self._run_phase("execute", cfg.execute, source, deadline, deadline_ms, limits)
                duration = _elapsed_ms(start)
        except ExecboxError as e:
            duration = _elapsed_ms(start)
            bound.info("execution_failed", kind=e.kind.value, duration_ms=duration)
            return ExecutionResult.failure(e.message, e.kind, duration)
        except OSError as e:
            # scratch directory unusable; artifacts already released by scoped()
            bound.error("artifact_io_failed", error=str(e))
            return ExecutionResult.failure(
                f"Could not prepare source file: {e}", ErrorKind.INFRASTRUCTURE, _elapsed_ms(start)
            )
        except UnicodeError:
            bound.info("source_not_encodable")
            return ExecutionResult.failure(
                "Code must be valid UTF-8 text.", ErrorKind.VALIDATION, _elapsed_ms(start)
            )

        bound.info("execution_succeeded", duration_ms=duration, truncated=outcome.truncated)
        return ExecutionResult.ok(outcome.stdout, duration)

    def execute_with_deadline(
        self, code: str, language: str, job_id: str, total_timeout_s: float
    ) -> ExecutionResult:
        """Whole-pipeline variant: one outer deadline across compile and execute."""
        deadline = time.monotonic() + total_timeout_s
        res = self.execute(code, language, job_id, deadline=deadline, deadline_ms=int(total_timeout_s * 1000))
        if res.error_kind is ErrorKind.TIMEOUT and time.monotonic() >= deadline - 0.05:
            label = f"{total_timeout_s:g}"
            res.error = f"Code execution timeout ({label}s)."
        return res

    def _limits(self, cfg: LanguageConfig, memory_limit: Optional[str]) -> Optional[ProcessLimits]:
        if not self.enforce_rlimits:
            return None
        return ProcessLimits(
            memory_bytes=parse_memory_limit(memory_limit or cfg.memory_limit),
            cpu_seconds=self.cpu_seconds or None,
            nofile=self.nofile or None,
        )

    def _run_phase(
        self,
        phase: str,
        spec: CommandSpec,
        source: Path,
        deadline: Optional[float],
        deadline_ms: Optional[int],
        limits: Optional[ProcessLimits],
    ) -> ProcessOutcome:
        timeout_ms = spec.timeout_ms
        # the bound named in a timeout message: the phase limit, or the outer
        # deadline when that is what cuts the phase short
        bound_ms = spec.timeout_ms
        if deadline is not None:
            remaining = int((deadline - time.monotonic()) * 1000)
            if remaining < timeout_ms:
                timeout_ms = remaining
                bound_ms = deadline_ms or spec.timeout_ms
            if remaining <= 0:
                raise DeadlineExceeded(f"Execution timed out after {bound_ms}ms")

        argv = resolve_command(spec, source, self.runtimes)
        outcome = self.supervisor.run(
            argv, timeout_ms, cwd=str(source.parent), env=self.env, limits=limits
        )
        if outcome.kind is OutcomeKind.SUCCESS:
            return outcome
        if outcome.kind is OutcomeKind.TIMEOUT:
            raise DeadlineExceeded(f"Execution timed out after {bound_ms}ms")
        if outcome.kind is OutcomeKind.LAUNCH_ERROR:
            raise LaunchError(outcome.message or f"Failed to launch {argv[0]}")
        if phase == "compile":
            raise CompileError(outcome.message or "Compilation failed")
        raise ProgramError(outcome.message or f"Command failed with exit code {outcome.exit_code}")


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
