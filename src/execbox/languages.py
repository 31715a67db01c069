"""
Static table of supported languages.

Each entry is plain data: file extension, an optional compile step, the
execute step and the default per-job bounds. Argument templates are rendered
against a concrete artifact with :func:`resolve_command`.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from .core.errors import UnsupportedLanguageError


class Language(str, Enum):
    CPP = "cpp"
    JAVA = "java"
    PYTHON = "python"
    JAVASCRIPT = "javascript"


@dataclass(frozen=True)
class CommandSpec:
    command: str
    args: Tuple[str, ...]
    timeout_ms: int


@dataclass(frozen=True)
class LanguageConfig:
    language: Language
    extension: str
    execute: CommandSpec
    compile: Optional[CommandSpec] = None
    timeout_ms: int = 30_000
    memory_limit: str = "512m"
    # toolchain dictates the source file name (derived from the code)
    fixed_entry_name: bool = False


_REGISTRY: Dict[Language, LanguageConfig] = {
    Language.CPP: LanguageConfig(
        language=Language.CPP,
        extension="cpp",
        compile=CommandSpec("g++", ("-std=c++17", "-O2", "-o", "{executable}", "{source}"), 30_000),
        execute=CommandSpec("{executable}", (), 15_000),
        timeout_ms=30_000,
        memory_limit="512m",
    ),
    Language.JAVA: LanguageConfig(
        language=Language.JAVA,
        extension="java",
        compile=CommandSpec("javac", ("{source}",), 30_000),
        execute=CommandSpec("java", ("-cp", "{dir}", "{entry}"), 15_000),
        timeout_ms=60_000,
        memory_limit="1g",
        fixed_entry_name=True,
    ),
    Language.PYTHON: LanguageConfig(
        language=Language.PYTHON,
        extension="py",
        execute=CommandSpec("python3", ("{source}",), 15_000),
    ),
    Language.JAVASCRIPT: LanguageConfig(
        language=Language.JAVASCRIPT,
        extension="js",
        execute=CommandSpec("node", ("{source}",), 15_000),
    ),
}


def supported_languages() -> List[str]:
    return [lang.value for lang in _REGISTRY]


def is_supported(language: Optional[str]) -> bool:
    return language in supported_languages()


def get_language_config(language: Optional[str]) -> LanguageConfig:
    try:
        return _REGISTRY[Language(language)]
    except ValueError:
        raise UnsupportedLanguageError(str(language)) from None


def resolve_command(
    spec: CommandSpec,
    source: Path,
    runtimes: Optional[Mapping[str, str]] = None,
) -> List[str]:
    """Render ``spec`` into an argv list for the artifact at ``source``."""
    values = {
        "source": str(source),
        "executable": str(source.with_suffix("")),
        "dir": str(source.parent),
        "entry": source.stem,
    }
    command = spec.command.format(**values)
    command = (runtimes or {}).get(command, command)
    return [command, *(a.format(**values) for a in spec.args)]
