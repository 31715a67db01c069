from pathlib import Path

import pytest

from execbox.core.errors import UnsupportedLanguageError, ValidationError
from execbox.core.utils import extract_java_class_name, parse_memory_limit
from execbox.languages import (
    Language,
    get_language_config,
    resolve_command,
    supported_languages,
)


def test_supported_languages():
    assert set(supported_languages()) == {"cpp", "java", "python", "javascript"}


@pytest.mark.parametrize("lang", ["cpp", "java"])
def test_compiled_languages_have_compile_step(lang):
    cfg = get_language_config(lang)
    assert cfg.compile is not None
    assert cfg.compile.timeout_ms == 30_000
    assert cfg.execute.timeout_ms == 15_000


@pytest.mark.parametrize("lang", ["python", "javascript"])
def test_interpreted_languages_have_no_compile_step(lang):
    cfg = get_language_config(lang)
    assert cfg.compile is None
    assert cfg.execute is not None


def test_default_bounds():
    assert get_language_config("java").timeout_ms == 60_000
    assert get_language_config("java").memory_limit == "1g"
    assert get_language_config("cpp").memory_limit == "512m"


@pytest.mark.parametrize("lang", ["ruby", "", None, "PYTHON"])
def test_unknown_language(lang):
    with pytest.raises(UnsupportedLanguageError) as ei:
        get_language_config(lang)
    assert isinstance(ei.value, ValidationError)
    assert "is not supported" in ei.value.message


def test_resolve_cpp_commands():
    cfg = get_language_config(Language.CPP.value)
    src = Path("/scratch/code_abc.cpp")
    assert resolve_command(cfg.compile, src) == [
        "g++", "-std=c++17", "-O2", "-o", "/scratch/code_abc", "/scratch/code_abc.cpp",
    ]
    assert resolve_command(cfg.execute, src) == ["/scratch/code_abc"]


def test_resolve_java_execute():
    cfg = get_language_config("java")
    src = Path("/scratch/job_abc/Hello.java")
    assert resolve_command(cfg.execute, src) == ["java", "-cp", "/scratch/job_abc", "Hello"]


def test_runtime_override():
    cfg = get_language_config("python")
    argv = resolve_command(cfg.execute, Path("/s/code_1.py"), {"python3": "/opt/py/bin/python"})
    assert argv == ["/opt/py/bin/python", "/s/code_1.py"]


def test_java_class_name_heuristic():
    assert extract_java_class_name("public class Hello { }") == "Hello"
    assert extract_java_class_name("class Helper {}\npublic class App {}") == "App"
    assert extract_java_class_name("class A {}\nclass B {}") == "A"
    assert extract_java_class_name("interface Nothing {}") == "Main"


@pytest.mark.parametrize("label,expected", [
    ("512m", 512 * 1024 ** 2),
    ("1g", 1024 ** 3),
    ("64K", 64 * 1024),
    ("1000", 1000),
    ("lots", None),
    (None, None),
])
def test_parse_memory_limit(label, expected):
    assert parse_memory_limit(label) == expected
