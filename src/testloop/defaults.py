"""Compiled-in default configuration values for testloop.

This module is the single source of truth for all default settings.
Other modules should import from here rather than duplicating values.
"""

from __future__ import annotations

import json
import re
from typing import Final

TOOLCHAIN_DEFAULTS: Final[dict[str, int | str | list[str]]] = {
    "wrapper": "./gradlew",
    "java_home": "",
    "compile_task": "compileTestKotlin",
    "test_task": "test",
    "coverage_task": "jacocoTestReport",
    "exclude_tasks": [
        "kaptKotlin",
        "kaptGenerateStubsKotlin",
        "kaptTestKotlin",
        "kaptGenerateStubsTestKotlin",
    ],
    "timeout_seconds": 0,
}

LOOP_DEFAULTS: Final[dict[str, int]] = {
    "max_retries": 3,
}

GENERATION_DEFAULTS: Final[dict[str, int | str]] = {
    "fallback_package": "com.example.domain",
    "fallback_module": "app",
    "source_root_marker": "kotlin",
    "report_imports": 10,
}

# Section name in testloop.toml -> defaults for that section.
SECTIONS: Final[dict[str, dict[str, object]]] = {
    "toolchain": TOOLCHAIN_DEFAULTS,
    "loop": LOOP_DEFAULTS,
    "generation": GENERATION_DEFAULTS,
}

COVERAGE_REPORT_PATH: Final[str] = "{module}/build/reports/jacoco/test/html/index.html"

_BARE_KEY_RE = re.compile(r"[A-Za-z0-9_-]+")


def _toml_key(key: str) -> str:
    return key if _BARE_KEY_RE.fullmatch(key) else json.dumps(key)


def _toml_value(value: object) -> str:
    # JSON string escapes are valid TOML basic-string escapes.
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, list):
        return f"[{', '.join(map(_toml_value, value))}]"
    msg = f"Cannot write {type(value).__name__} value to TOML"
    raise TypeError(msg)


def generate_toml() -> str:
    """Render every section of :data:`SECTIONS` as a TOML document."""
    blocks = []
    for section, values in SECTIONS.items():
        body = (f"{_toml_key(k)} = {_toml_value(v)}" for k, v in values.items())
        blocks.append("\n".join([f"[{section}]", *body]))
    return "\n\n".join(blocks) + "\n"
