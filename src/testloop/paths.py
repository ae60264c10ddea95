"""Path conventions shared by generation and validation.

Test sources mirror the main source tree (``/main/`` becomes ``/test/``)
and the test class name is the service file stem with a ``Test`` suffix.
The build module is the first segment of a project-relative path.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

_MODULE_RE = re.compile(r"^([\w-]+)/")


def infer_test_path(service_path: str) -> str:
    """Map ``mod/src/main/.../Foo.kt`` to ``mod/src/test/.../FooTest.kt``."""
    mirrored = PurePosixPath(service_path.replace("/main/", "/test/", 1))
    return str(mirrored.with_name(f"{mirrored.stem}Test{mirrored.suffix}"))


def extract_module(file_path: str, fallback: str) -> str:
    match = _MODULE_RE.match(file_path)
    return match.group(1) if match else fallback


def extract_test_class_name(file_path: str) -> str:
    return PurePosixPath(file_path).stem


def class_name_from_path(file_path: str) -> str:
    return PurePosixPath(file_path).stem


def package_from_path(file_path: str, marker: str, fallback: str) -> str:
    """Derive a dotted package from the directories after the first ``<marker>/``.

    ``a/src/main/kotlin/com/x/Foo.kt`` with marker ``kotlin`` yields
    ``com.x``. Paths without the marker segment yield *fallback*.
    """
    parts = PurePosixPath(file_path).parent.parts
    if marker not in parts:
        return fallback
    idx = parts.index(marker)
    package_parts = parts[idx + 1 :]
    if not package_parts:
        return fallback
    return ".".join(package_parts)
