from __future__ import annotations
import resource
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class ProcessLimits:
    memory_bytes: Optional[int] = None
    cpu_seconds: Optional[int] = None
    nofile: Optional[int] = None

    @property
    def empty(self) -> bool:
        return not (self.memory_bytes or self.cpu_seconds or self.nofile)


def apply_rlimits(limits: ProcessLimits) -> None:
    """
    Process-level ceilings: address space, CPU time, open descriptors.
    A limit the OS refuses is left at its inherited value.
    """
    if limits.cpu_seconds:
        try:
            resource.setrlimit(resource.RLIMIT_CPU, (limits.cpu_seconds, limits.cpu_seconds))
        except (ValueError, OSError):
            pass
    if limits.memory_bytes:
        try:
            resource.setrlimit(resource.RLIMIT_AS, (limits.memory_bytes, limits.memory_bytes))
        except (ValueError, OSError):
            pass
    if limits.nofile:
        try:
            resource.setrlimit(resource.RLIMIT_NOFILE, (limits.nofile, limits.nofile))
        except (ValueError, OSError):
            pass


def make_preexec(limits: Optional[ProcessLimits]) -> Optional[Callable[[], None]]:
    # runs in the child between fork and exec
    if limits is None or limits.empty:
        return None

    def _preexec():
        apply_rlimits(limits)

    return _preexec
