from __future__ import annotations
import re
from typing import Dict, Optional, Pattern

from ..core.errors import SubmissionError, UnsupportedLanguageError
from ..languages import Language, is_supported

MAX_CODE_CHARS = 10_000

# cheap shape checks; a compiler/interpreter error stays authoritative
SYNTAX_HINTS: Dict[Language, Pattern[str]] = {
    Language.CPP: re.compile(r"^#include\s+<[^>]+>|^using\s+namespace\s+std;|int\s+main\s*\(", re.M),
    Language.JAVA: re.compile(r"class\s+\w+|public\s+static\s+void\s+main", re.M),
    Language.PYTHON: re.compile(r"^(def|import|from|print|if|for|while|class)\b", re.M),
    Language.JAVASCRIPT: re.compile(r"^(function|const|let|var|console\.log|class)\b", re.M),
}


def validate_submission(
    code: Optional[str],
    language: Optional[str],
    max_chars: int = MAX_CODE_CHARS,
    heuristics: bool = True,
) -> None:
    """Raise SubmissionError / UnsupportedLanguageError naming the failed constraint."""
    if not code or not code.strip():
        raise SubmissionError("Code is required. Please provide code to execute.")
    if len(code) > max_chars:
        raise SubmissionError(f"Code exceeds the maximum size of {max_chars:,} characters.")
    try:
        code.encode("utf-8")
    except UnicodeEncodeError:
        raise SubmissionError("Code must be valid UTF-8 text.") from None
    if not is_supported(language):
        raise UnsupportedLanguageError(str(language))
    if heuristics:
        pattern = SYNTAX_HINTS.get(Language(language))
        if pattern is not None and not pattern.search(code):
            raise SubmissionError(
                f"Code appears to have syntax issues. Please check your {language} syntax."
            )
