from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from typing import IO, Dict, List, Optional

import structlog

from ..core.models import OutcomeKind, ProcessOutcome
from .rlimits import ProcessLimits, make_preexec

log = structlog.get_logger(__name__)

_CHUNK = 64 * 1024


class _Capture:
    """Drains one pipe as data arrives, keeping at most ``limit`` bytes."""

    def __init__(self, limit: int):
        self.limit = limit
        self.chunks: List[bytes] = []
        self.size = 0
        self.truncated = False

    def pump(self, stream: IO[bytes]) -> None:
        try:
            while True:
                chunk = stream.read1(_CHUNK) if hasattr(stream, "read1") else stream.read(_CHUNK)
                if not chunk:
                    break
                room = self.limit - self.size
                if room <= 0:
                    self.truncated = True
                    continue
                if len(chunk) > room:
                    chunk = chunk[:room]
                    self.truncated = True
                self.chunks.append(chunk)
                self.size += len(chunk)
        except (OSError, ValueError):
            # pipe closed underneath us after the grace period
            pass

    def text(self) -> str:
        return b"".join(self.chunks).decode("utf-8", errors="replace")


class ProcessSupervisor:
    """
    Runs one command under a wall-clock deadline.

    The deadline timer races the process exit; when the timer wins the whole
    process group gets SIGKILL and the call reports a timeout. The supervisor
    never retries.
    """

    def __init__(self, max_output_bytes: int = 1024 * 1024, kill_grace_s: float = 2.0):
        self.max_output_bytes = max_output_bytes
        self.kill_grace_s = kill_grace_s

    def run(
        self,
        argv: List[str],
        timeout_ms: int,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        limits: Optional[ProcessLimits] = None,
    ) -> ProcessOutcome:
        if timeout_ms <= 0:
            return ProcessOutcome(OutcomeKind.TIMEOUT, None, "", "", "Execution timed out before start", 0)

        log.debug("process_spawn", argv=argv, timeout_ms=timeout_ms)
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                env=env,
                start_new_session=True,
                preexec_fn=make_preexec(limits),
            )
        except OSError as e:
            reason = e.strerror or str(e)
            log.warning("process_launch_failed", command=argv[0], error=reason)
            return ProcessOutcome(
                OutcomeKind.LAUNCH_ERROR, None, "", "",
                f"Failed to launch {argv[0]}: {reason}", _elapsed_ms(start),
            )

        out, err = _Capture(self.max_output_bytes), _Capture(self.max_output_bytes)
        readers = [
            threading.Thread(target=out.pump, args=(proc.stdout,), daemon=True),
            threading.Thread(target=err.pump, args=(proc.stderr,), daemon=True),
        ]
        for t in readers:
            t.start()

        expired = threading.Event()

        def _expire():
            if not _has_exited(proc):
                expired.set()
                _kill_group(proc)

        timer = threading.Timer(timeout_ms / 1000.0, _expire)
        timer.daemon = True
        timer.start()
        try:
            _wait_exited(proc)
        finally:
            timer.cancel()
        # leader is still an unreaped zombie here, so its group id cannot be
        # reused; take down anything the program left running in its session
        _kill_group(proc)
        rc = proc.wait()

        for t, stream in zip(readers, (proc.stdout, proc.stderr)):
            t.join(self.kill_grace_s)
            # a reader still blocked means some escaped process holds the pipe;
            # leave the daemon thread to finish on its own
            if not t.is_alive():
                stream.close()

        duration = _elapsed_ms(start)
        stdout, stderr = out.text().strip(), err.text().strip()
        truncated = out.truncated or err.truncated

        if expired.is_set():
            log.info("process_timeout", command=argv[0], timeout_ms=timeout_ms, duration_ms=duration)
            return ProcessOutcome(
                OutcomeKind.TIMEOUT, rc, stdout, stderr,
                f"Execution timed out after {timeout_ms}ms", duration, truncated,
            )
        if rc == 0:
            return ProcessOutcome(OutcomeKind.SUCCESS, 0, stdout, stderr, None, duration, truncated)
        return ProcessOutcome(
            OutcomeKind.NON_ZERO_EXIT, rc, stdout, stderr,
            stderr or f"Command failed with exit code {rc}", duration, truncated,
        )


def _wait_exited(proc: subprocess.Popen) -> None:
    """Block until the child exits without reaping it."""
    if not hasattr(os, "waitid"):
        proc.wait()
        return
    try:
        os.waitid(os.P_PID, proc.pid, os.WEXITED | os.WNOWAIT)
    except ChildProcessError:
        pass


def _has_exited(proc: subprocess.Popen) -> bool:
    """Non-blocking check that leaves an exited child unreaped."""
    if proc.returncode is not None:
        return True
    if not hasattr(os, "waitid"):
        return proc.poll() is not None
    try:
        return os.waitid(os.P_PID, proc.pid, os.WEXITED | os.WNOHANG | os.WNOWAIT) is not None
    except ChildProcessError:
        return True


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except PermissionError:
        proc.kill()


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
