from __future__ import annotations
import re
import time
import uuid
from typing import Optional

_PUBLIC_CLASS_RE = re.compile(r"\bpublic\s+(?:final\s+|abstract\s+)*class\s+([A-Za-z_$][\w$]*)")
_CLASS_RE = re.compile(r"\bclass\s+([A-Za-z_$][\w$]*)")

_MEM_UNITS = {"": 1, "b": 1, "k": 1024, "m": 1024 ** 2, "g": 1024 ** 3}


def new_job_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


def extract_java_class_name(code: str, default: str = "Main") -> str:
    """
    Guess the file name javac expects for a single-file Java program.

    Heuristic: the first ``public class`` wins, since javac requires its file to
    carry that name; otherwise the first ``class`` declaration; otherwise
    ``default``. Sources declaring several classes without a public one are
    ambiguous and simply get the first.
    """
    m = _PUBLIC_CLASS_RE.search(code) or _CLASS_RE.search(code)
    return m.group(1) if m else default


def parse_memory_limit(label: Optional[str]) -> Optional[int]:
    """'512m' -> bytes. None/empty/unparseable -> None."""
    if not label:
        return None
    m = re.fullmatch(r"\s*(\d+)\s*([bkmg]?)\s*", label.lower())
    if not m:
        return None
    return int(m.group(1)) * _MEM_UNITS[m.group(2)]
