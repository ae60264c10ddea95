from __future__ import annotations

import subprocess

import pytest

from testloop.config import ProjectConfig
from testloop.operations import GenerationService


class ScriptedGradle:
    """Stands in for ``subprocess.run`` and answers by Gradle task name."""

    def __init__(self, responses: dict[str, list[subprocess.CompletedProcess[str]]]):
        self.responses = responses
        self.commands: list[list[str]] = []

    def __call__(self, args: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        self.commands.append(list(args))
        task = args[1].rsplit(":", 1)[-1]
        queue = self.responses.get(task) or [completed()]
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def tasks(self) -> list[str]:
        return [cmd[1] for cmd in self.commands]


def completed(
    returncode: int = 0, stdout: str = "", stderr: str = ""
) -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(
        args=[], returncode=returncode, stdout=stdout, stderr=stderr
    )


@pytest.fixture()
def service(config: ProjectConfig) -> GenerationService:
    return GenerationService(config=config)
