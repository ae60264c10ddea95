from __future__ import annotations

from pathlib import Path

import pytest

from testloop.config import GenerationConfig, ProjectConfig, default_config
from testloop.toolchain import ToolchainResult

SERVICE_SOURCE = """\
package com.x.domainA

import com.x.domainA.dto.FooDto
import com.x.domainA.repository.FooRepository
import org.springframework.stereotype.Service

@Service
class FooServiceImpl(val repo: FooRepository) : FooService {

    override fun get(id: String): FooDto {
        return repo.find(id)
    }
}
"""

SERVICE_PATH = "domainA/src/main/kotlin/com/x/domainA/FooServiceImpl.kt"
TEST_PATH = "domainA/src/test/kotlin/com/x/domainA/FooServiceImplTest.kt"


class FakeToolchain:
    """Scripted toolchain: each call pops the next queued result.

    The last queued result repeats once the queue is down to one entry.
    """

    def __init__(
        self,
        compile_results: list[ToolchainResult] | None = None,
        run_results: list[ToolchainResult] | None = None,
        coverage_result: ToolchainResult | None = None,
    ) -> None:
        self.compile_results = compile_results or [ToolchainResult(success=True)]
        self.run_results = run_results or [
            ToolchainResult(success=True, passed=2, failed=0)
        ]
        self.coverage_result = coverage_result or ToolchainResult(success=True)
        self.compile_calls: list[tuple[str, str]] = []
        self.run_calls: list[tuple[str, str]] = []
        self.coverage_calls: list[str] = []

    @staticmethod
    def _next(queue: list[ToolchainResult]) -> ToolchainResult:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def compile(self, module: str, test_file: str) -> ToolchainResult:
        self.compile_calls.append((module, test_file))
        return self._next(self.compile_results)

    def run(self, module: str, test_class: str) -> ToolchainResult:
        self.run_calls.append((module, test_class))
        return self._next(self.run_results)

    def coverage(self, module: str) -> ToolchainResult:
        self.coverage_calls.append(module)
        return self.coverage_result


def compile_error(message: str) -> ToolchainResult:
    return ToolchainResult(success=False, error=f"Compilation failed: {message}")


def run_error(message: str) -> ToolchainResult:
    return ToolchainResult(success=False, error=f"Test execution failed: {message}")


@pytest.fixture()
def config() -> ProjectConfig:
    return default_config()


@pytest.fixture()
def generation_settings(config: ProjectConfig) -> GenerationConfig:
    return config.generation


@pytest.fixture()
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    service = root / SERVICE_PATH
    service.parent.mkdir(parents=True)
    service.write_text(SERVICE_SOURCE)
    return root
