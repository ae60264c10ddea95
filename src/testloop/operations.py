"""The four operations exposed to callers.

Each operation returns an :class:`OperationEnvelope`. Build and test
failures are recorded in the envelope's steps; only unexpected conditions
(missing files, invalid arguments) turn into an error envelope carrying the
message and formatted traceback. Nothing here raises past the operation.
"""

from __future__ import annotations

import logging
import time
import traceback
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from testloop.config import ProjectConfig, ToolchainConfig, load_config
from testloop.defaults import COVERAGE_REPORT_PATH
from testloop.extraction import extract
from testloop.models import (
    CoverageResult,
    Fidelity,
    OperationEnvelope,
    ServiceDescriptor,
    StepStatus,
    TemplateFlavor,
)
from testloop.paths import infer_test_path
from testloop.report import RunReport
from testloop.standards import StandardsCache
from testloop.synthesis import count_test_cases, synthesize
from testloop.toolchain import GradleToolchain, ToolchainRunner
from testloop.validation import ValidationLoop

logger = logging.getLogger(__name__)

ANALYZE_STEP = "analyze_service"
GENERATE_STEP = "generate_test_code"


class UnknownOperationError(LookupError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class _Request(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    project_root: Path


class AnalyzeRequest(_Request):
    service_path: str
    serena_analysis: dict[str, Any] | list[Any] | None = None


class GenerateRequest(_Request):
    service_path: str
    serena_analysis: dict[str, Any] | list[Any] | None = None
    test_path: str | None = None
    run_validation: bool = Field(default=True, alias="validate")
    max_retries: int | None = Field(default=None, ge=1)


class ValidateRequest(_Request):
    test_path: str
    max_retries: int | None = Field(default=None, ge=1)
    check_coverage: bool = False


ToolchainFactory = Callable[[Path, ToolchainConfig], ToolchainRunner]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _error_envelope(
    exc: BaseException, started: float, **fields: Any
) -> OperationEnvelope:
    return OperationEnvelope(
        success=False,
        duration_ms=_elapsed_ms(started),
        error=str(exc),
        stack="".join(traceback.format_exception(exc)),
        **fields,
    )


def _fail_open_step(report: RunReport, exc: BaseException) -> None:
    last = report.last
    if last is not None and last.status == StepStatus.IN_PROGRESS:
        report.fail(last, error=str(exc), reason="unexpected_error")


class GenerationService:
    """Runs analysis, scaffolding and validation against a project tree."""

    def __init__(
        self,
        config: ProjectConfig | None = None,
        standards: StandardsCache | None = None,
        toolchain_factory: ToolchainFactory = GradleToolchain,
    ) -> None:
        self._config = config
        self.standards = standards or StandardsCache()
        self._toolchain_factory = toolchain_factory

    def config_for(self, project_root: Path) -> ProjectConfig:
        return self._config if self._config is not None else load_config(project_root)

    def _loop(
        self, project_root: Path, config: ProjectConfig, max_retries: int | None
    ) -> ValidationLoop:
        """Build a loop; an unset *max_retries* takes the project's ``[loop]`` value."""
        return ValidationLoop(
            self._toolchain_factory(project_root, config.toolchain),
            max_retries=max_retries or config.loop.max_retries,
            fallback_module=config.generation.fallback_module,
        )

    def _describe(
        self, request: AnalyzeRequest | GenerateRequest, config: ProjectConfig
    ) -> tuple[ServiceDescriptor, Fidelity]:
        structured = request.serena_analysis
        source_text = None
        if structured is None:
            path = request.project_root / request.service_path
            source_text = path.read_text(encoding="utf-8")
        return extract(
            request.service_path,
            config.generation,
            structured_input=structured,
            source_text=source_text,
        )

    def analyze_service(self, request: AnalyzeRequest) -> OperationEnvelope:
        started = time.monotonic()
        try:
            config = self.config_for(request.project_root)
            descriptor, fidelity = self._describe(request, config)
        except Exception as exc:
            logger.exception("analyze_service failed for %s", request.service_path)
            return _error_envelope(exc, started, service_path=request.service_path)

        return OperationEnvelope(
            success=True,
            duration_ms=_elapsed_ms(started),
            service_path=request.service_path,
            fidelity=fidelity,
            analysis=descriptor.summary(config.generation.report_imports),
            message=(
                f"Service analysis complete: {len(descriptor.methods)} method(s) found"
            ),
        )

    def generate_unit_test(self, request: GenerateRequest) -> OperationEnvelope:
        return self._generate(request, TemplateFlavor.UNIT)

    def generate_integration_test(self, request: GenerateRequest) -> OperationEnvelope:
        return self._generate(request, TemplateFlavor.INTEGRATION)

    def _generate(
        self, request: GenerateRequest, flavor: TemplateFlavor
    ) -> OperationEnvelope:
        started = time.monotonic()
        report = RunReport()
        test_path = request.test_path or infer_test_path(request.service_path)
        fidelity: Fidelity | None = None
        standards_loaded: bool | None = None
        try:
            config = self.config_for(request.project_root)
            standards_loaded = self.standards.ensure_loaded()
            structured = request.serena_analysis

            step = report.start(
                ANALYZE_STEP,
                "Analyzing service using supplied symbol data"
                if structured is not None
                else "Analyzing service source with regex fallback",
            )
            descriptor, fidelity = self._describe(request, config)
            report.complete(
                step,
                result={
                    "methods_found": len(descriptor.methods),
                    "dependencies_found": len(descriptor.dependencies),
                    "fidelity": fidelity.value,
                },
            )

            step = report.start(GENERATE_STEP, f"Generating {flavor.value} test code")
            output = request.project_root / test_path
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(synthesize(descriptor, flavor), encoding="utf-8")
            report.complete(
                step,
                result={
                    "test_file": test_path,
                    "test_methods_generated": count_test_cases(descriptor),
                },
            )

            success = True
            if request.run_validation:
                loop = self._loop(request.project_root, config, request.max_retries)
                success = loop.run(request.project_root, test_path, report).success
        except Exception as exc:
            logger.exception("Test generation failed for %s", request.service_path)
            _fail_open_step(report, exc)
            return _error_envelope(
                exc,
                started,
                service_path=request.service_path,
                test_path=test_path,
                fidelity=fidelity,
                standards_loaded=standards_loaded,
                steps=report.steps,
            )

        return OperationEnvelope(
            success=success,
            duration_ms=_elapsed_ms(started),
            service_path=request.service_path,
            test_path=test_path,
            fidelity=fidelity,
            standards_loaded=standards_loaded,
            steps=report.steps,
        )

    def validate_test(self, request: ValidateRequest) -> OperationEnvelope:
        started = time.monotonic()
        report = RunReport()
        try:
            config = self.config_for(request.project_root)
            standards_loaded = self.standards.ensure_loaded()
            loop = self._loop(request.project_root, config, request.max_retries)
            outcome = loop.run(request.project_root, request.test_path, report)

            coverage = None
            if request.check_coverage and outcome.success:
                coverage = self._coverage(loop.toolchain, outcome.module)
        except Exception as exc:
            logger.exception("Validation failed for %s", request.test_path)
            _fail_open_step(report, exc)
            return _error_envelope(
                exc, started, test_path=request.test_path, steps=report.steps
            )

        return OperationEnvelope(
            success=outcome.success,
            duration_ms=_elapsed_ms(started),
            test_path=request.test_path,
            standards_loaded=standards_loaded,
            steps=report.steps,
            coverage=coverage,
        )

    @staticmethod
    def _coverage(toolchain: ToolchainRunner, module: str) -> CoverageResult:
        result = toolchain.coverage(module)
        if not result.success:
            return CoverageResult(success=False, error=result.error)
        return CoverageResult(
            success=True, report_path=COVERAGE_REPORT_PATH.format(module=module)
        )


OPERATIONS: dict[str, Callable[[GenerationService, dict[str, Any]], OperationEnvelope]] = {
    "generate_unit_test": lambda svc, args: svc.generate_unit_test(
        GenerateRequest.model_validate(args)
    ),
    "generate_integration_test": lambda svc, args: svc.generate_integration_test(
        GenerateRequest.model_validate(args)
    ),
    "validate_test": lambda svc, args: svc.validate_test(
        ValidateRequest.model_validate(args)
    ),
    "analyze_service": lambda svc, args: svc.analyze_service(
        AnalyzeRequest.model_validate(args)
    ),
}


def dispatch_operation(
    service: GenerationService, name: str, arguments: dict[str, Any]
) -> OperationEnvelope:
    """Route an operation call by name. Never raises."""
    started = time.monotonic()
    try:
        handler = OPERATIONS.get(name)
        if handler is None:
            raise UnknownOperationError(name)
        return handler(service, arguments)
    except Exception as exc:
        logger.exception("Operation %s rejected", name)
        return _error_envelope(exc, started)
