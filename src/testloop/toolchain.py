from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from testloop.config import ToolchainConfig

logger = logging.getLogger(__name__)

_PASSED_RE = re.compile(r"(\d+) passed", re.IGNORECASE)
_FAILED_RE = re.compile(r"(\d+) failed", re.IGNORECASE)
_COMPILE_ERROR_MARKER = "error:"


@dataclass
class ToolchainResult:
    """Outcome of one toolchain invocation."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    passed: int = 0
    failed: int = 0


class ToolchainRunner(Protocol):
    def compile(self, module: str, test_file: str) -> ToolchainResult: ...

    def run(self, module: str, test_class: str) -> ToolchainResult: ...

    def coverage(self, module: str) -> ToolchainResult: ...


def _run(args: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
    return subprocess.run(args, **kwargs)


def parse_test_counts(output: str) -> tuple[int, int]:
    """Return (passed, failed) counts found in test runner output."""
    passed = _PASSED_RE.search(output)
    failed = _FAILED_RE.search(output)
    return (
        int(passed.group(1)) if passed else 0,
        int(failed.group(1)) if failed else 0,
    )


def _detail(proc: subprocess.CompletedProcess[str]) -> str:
    return (proc.stderr or "").strip() or (proc.stdout or "").strip()


class GradleToolchain:
    """Compile and run Kotlin tests through the project's Gradle wrapper."""

    def __init__(self, project_root: Path, config: ToolchainConfig) -> None:
        self.project_root = project_root
        self.config = config

    def _command(self, *tasks: str) -> list[str]:
        cmd = [self.config.wrapper, *tasks]
        for task in self.config.exclude_tasks:
            cmd.extend(["-x", task])
        return cmd

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.config.java_home:
            env["JAVA_HOME"] = self.config.java_home
        return env

    def _execute(
        self, cmd: list[str]
    ) -> subprocess.CompletedProcess[str] | subprocess.TimeoutExpired:
        logger.debug("Running %s in %s", " ".join(cmd), self.project_root)
        try:
            return _run(
                cmd,
                cwd=self.project_root,
                env=self._env(),
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            logger.warning("Toolchain timed out after %ss: %s", exc.timeout, cmd)
            return exc

    def compile(self, module: str, test_file: str) -> ToolchainResult:
        logger.info("Compiling test sources of %s for %s", module, test_file)
        proc = self._execute(self._command(f":{module}:{self.config.compile_task}"))
        if isinstance(proc, subprocess.TimeoutExpired):
            return ToolchainResult(
                success=False,
                error=f"Compilation failed: timed out after {proc.timeout}s",
            )
        stderr = proc.stderr or ""
        if proc.returncode != 0 or _COMPILE_ERROR_MARKER in stderr:
            return ToolchainResult(
                success=False,
                stdout=proc.stdout or "",
                stderr=stderr,
                error=f"Compilation failed: {_detail(proc)}",
            )
        return ToolchainResult(success=True, stdout=proc.stdout or "", stderr=stderr)

    def run(self, module: str, test_class: str) -> ToolchainResult:
        logger.info("Running %s in %s", test_class, module)
        proc = self._execute(
            self._command(f":{module}:{self.config.test_task}", "--tests", test_class)
        )
        if isinstance(proc, subprocess.TimeoutExpired):
            return ToolchainResult(
                success=False,
                error=f"Test execution failed: timed out after {proc.timeout}s",
            )
        stdout = proc.stdout or ""
        passed, failed = parse_test_counts(stdout)
        result = ToolchainResult(
            success=True,
            stdout=stdout,
            stderr=proc.stderr or "",
            passed=passed,
            failed=failed,
        )
        if proc.returncode != 0:
            result.success = False
            result.error = f"Test execution failed: {_detail(proc)}"
        elif failed > 0:
            result.success = False
            result.error = (
                f"Test execution failed: Tests failed: {failed} test(s) failed"
            )
        return result

    def coverage(self, module: str) -> ToolchainResult:
        proc = self._execute(self._command(f":{module}:{self.config.coverage_task}"))
        if isinstance(proc, subprocess.TimeoutExpired):
            return ToolchainResult(
                success=False, error=f"Coverage timed out after {proc.timeout}s"
            )
        if proc.returncode != 0:
            return ToolchainResult(
                success=False,
                stdout=proc.stdout or "",
                stderr=proc.stderr or "",
                error=f"Coverage failed: {_detail(proc)}",
            )
        return ToolchainResult(success=True, stdout=proc.stdout or "")
