from __future__ import annotations
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    COMPILE = "compile"
    RUNTIME = "runtime"
    TIMEOUT = "timeout"
    LAUNCH = "launch"
    INFRASTRUCTURE = "infrastructure"


class ExecboxError(Exception):
    kind: ErrorKind = ErrorKind.INFRASTRUCTURE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ExecboxError):
    """Input rejected before any job, artifact or queue message exists."""
    kind = ErrorKind.VALIDATION


class SubmissionError(ValidationError):
    pass


class UnsupportedLanguageError(ValidationError):
    def __init__(self, language: str):
        super().__init__(f"Language {language} is not supported.")
        self.language = language


class CompileError(ExecboxError):
    kind = ErrorKind.COMPILE


class ProgramError(ExecboxError):
    """Non-zero exit of the user program."""
    kind = ErrorKind.RUNTIME


class DeadlineExceeded(ExecboxError):
    kind = ErrorKind.TIMEOUT


class LaunchError(ExecboxError):
    kind = ErrorKind.LAUNCH


class InfrastructureError(ExecboxError):
    """Blob store, queue or status store call failed."""
    kind = ErrorKind.INFRASTRUCTURE
