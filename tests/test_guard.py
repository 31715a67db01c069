import pytest

from execbox.core.errors import SubmissionError, UnsupportedLanguageError
from execbox.services.guard import validate_submission


@pytest.mark.parametrize("code", ["", "   \n\t", None])
def test_empty_code(code):
    with pytest.raises(SubmissionError, match="Code is required"):
        validate_submission(code, "python")


def test_oversized_code():
    code = "print(1)\n" + "#" * 10_000
    with pytest.raises(SubmissionError) as ei:
        validate_submission(code, "python")
    assert ei.value.message == "Code exceeds the maximum size of 10,000 characters."


def test_exact_limit_allowed():
    code = "print(1)\n"
    code += "#" * (10_000 - len(code))
    assert len(code) == 10_000
    validate_submission(code, "python")


def test_unsupported_language():
    with pytest.raises(UnsupportedLanguageError) as ei:
        validate_submission("print(1)", "cobol")
    assert ei.value.message == "Language cobol is not supported."


def test_size_checked_before_language():
    with pytest.raises(SubmissionError, match="maximum size"):
        validate_submission("x" * 10_001, "cobol")


@pytest.mark.parametrize("lang,code", [
    ("cpp", "#include <iostream>\nint main() { return 0; }"),
    ("java", "public class Main { public static void main(String[] a) {} }"),
    ("python", "x = 1\nprint(x)"),
    ("javascript", "console.log('hi')"),
])
def test_heuristic_accepts_plausible_code(lang, code):
    validate_submission(code, lang)


def test_heuristic_rejects_implausible_code():
    with pytest.raises(SubmissionError) as ei:
        validate_submission("just some words", "cpp")
    assert ei.value.message == "Code appears to have syntax issues. Please check your cpp syntax."


def test_heuristic_can_be_disabled():
    validate_submission("just some words", "cpp", heuristics=False)


def test_code_that_cannot_be_encoded_is_rejected():
    with pytest.raises(SubmissionError) as ei:
        validate_submission("print(1) # \ud800", "python")
    assert ei.value.message == "Code must be valid UTF-8 text."
