"""Project settings: compiled-in defaults overlaid with ``.testloop/testloop.toml``.

Each TOML table overrides keys of the matching section; absent keys keep
their defaults. Unknown keys are ignored. A file that cannot be parsed or
holds out-of-range values is reported on stderr and replaced by defaults.
"""

from __future__ import annotations

import shutil
import sys
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from testloop.defaults import SECTIONS, generate_toml

CONFIG_FILENAME = "testloop.toml"
CONFIG_DIR = ".testloop"


class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ToolchainConfig(_Section):
    wrapper: str
    java_home: str
    compile_task: str
    test_task: str
    coverage_task: str
    exclude_tasks: list[str]
    timeout_seconds: int = Field(ge=0)

    @property
    def timeout(self) -> float | None:
        """Process timeout in seconds, None when unbounded."""
        return float(self.timeout_seconds) if self.timeout_seconds else None


class LoopConfig(_Section):
    max_retries: int = Field(ge=1)


class GenerationConfig(_Section):
    fallback_package: str
    fallback_module: str
    source_root_marker: str
    report_imports: int = Field(ge=0)


class ProjectConfig(_Section):
    toolchain: ToolchainConfig
    loop: LoopConfig
    generation: GenerationConfig


def config_path(project_root: Path) -> Path:
    return project_root / CONFIG_DIR / CONFIG_FILENAME


def _overlay(overrides: dict[str, Any]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for section, defaults in SECTIONS.items():
        table = overrides.get(section, {})
        # A non-table value is left for validation to reject.
        data[section] = {**defaults, **table} if isinstance(table, dict) else table
    return data


def default_config() -> ProjectConfig:
    return ProjectConfig.model_validate(_overlay({}))


def load_config(project_root: Path) -> ProjectConfig:
    path = config_path(project_root)
    if not path.is_file():
        return default_config()
    try:
        overrides = tomllib.loads(path.read_text(encoding="utf-8"))
        return ProjectConfig.model_validate(_overlay(overrides))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError, ValidationError) as exc:
        print(f"Warning: ignoring {path}: {exc}", file=sys.stderr)
        return default_config()


def init_config(project_root: Path) -> Path:
    """Write the default settings file, keeping any previous one as ``.bak``."""
    path = config_path(project_root)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        shutil.copyfile(path, path.with_name(f"{CONFIG_FILENAME}.bak"))
    path.write_text(generate_toml(), encoding="utf-8")
    return path
