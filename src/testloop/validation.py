"""Bounded compile -> execute -> remediate -> retry loop.

Compilation must succeed before any test run starts. Within each phase the
attempts are sequential and capped by ``max_retries``. A failed attempt is
followed by a remediation pass over the test file; when no rule matches,
the phase aborts at once instead of retrying unchanged sources.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from testloop.models import RunStep
from testloop.paths import extract_module, extract_test_class_name
from testloop.remediation import (
    RemediationPolicy,
    compile_policy,
    execution_policy,
    remediate_file,
)
from testloop.report import RunReport
from testloop.toolchain import ToolchainResult, ToolchainRunner

logger = logging.getLogger(__name__)

COMPILE_STEP = "compile_validation"
EXECUTE_STEP = "test_execution"


class LoopState(StrEnum):
    COMPILE_ATTEMPT = "compile_attempt"
    COMPILE_FAILED = "compile_failed"
    COMPILE_OK = "compile_ok"
    EXECUTE_ATTEMPT = "execute_attempt"
    EXECUTE_FAILED = "execute_failed"
    EXECUTE_OK = "execute_ok"
    ABORTED = "aborted"


class FailureKind(StrEnum):
    COMPILE_FAILURE = "compile_failure"
    EXECUTE_FAILURE = "execute_failure"
    REMEDIATION_EXHAUSTED = "remediation_exhausted"
    RETRY_BUDGET_EXHAUSTED = "retry_budget_exhausted"


@dataclass
class ValidationOutcome:
    success: bool
    state: LoopState
    steps: list[RunStep]
    module: str
    failure: FailureKind | None = None
    reason: FailureKind | None = None
    trace: list[LoopState] = field(default_factory=list)
    passed: int = 0
    failed: int = 0


@dataclass
class _PhaseResult:
    result: ToolchainResult
    retries: int
    remediations: list[str]
    failure: FailureKind | None = None


class ValidationLoop:
    def __init__(
        self,
        toolchain: ToolchainRunner,
        max_retries: int = 3,
        compile_rules: RemediationPolicy | None = None,
        execution_rules: RemediationPolicy | None = None,
        fallback_module: str = "app",
    ) -> None:
        if max_retries < 1:
            msg = f"max_retries must be at least 1, got {max_retries}"
            raise ValueError(msg)
        self.toolchain = toolchain
        self.max_retries = max_retries
        self.compile_rules = compile_rules or compile_policy()
        self.execution_rules = execution_rules or execution_policy()
        self.fallback_module = fallback_module

    def run(
        self,
        project_root: Path,
        test_path: str,
        report: RunReport | None = None,
    ) -> ValidationOutcome:
        """Validate the test file at *test_path*, appending steps to *report*."""
        report = report if report is not None else RunReport()
        test_file = project_root / test_path
        if not test_file.is_file():
            msg = f"Test file not found: {test_file}"
            raise FileNotFoundError(msg)

        module = extract_module(test_path, self.fallback_module)
        test_class = extract_test_class_name(test_path)
        trace: list[LoopState] = []

        compile_step = report.start(COMPILE_STEP, "Validating compilation...")
        compiled = self._phase(
            lambda: self.toolchain.compile(module, test_path),
            self.compile_rules,
            test_file,
            trace,
            LoopState.COMPILE_ATTEMPT,
        )
        if compiled.failure is not None:
            if compiled.failure is FailureKind.RETRY_BUDGET_EXHAUSTED:
                trace.append(LoopState.COMPILE_FAILED)
            return self._abort(
                report, compile_step, compiled, module, trace, FailureKind.COMPILE_FAILURE
            )
        trace.append(LoopState.COMPILE_OK)
        report.complete(
            compile_step,
            result={
                "retries": compiled.retries,
                "message": "Compilation succeeded",
                "remediations": compiled.remediations,
            },
        )

        execute_step = report.start(EXECUTE_STEP, "Running tests...")
        executed = self._phase(
            lambda: self.toolchain.run(module, test_class),
            self.execution_rules,
            test_file,
            trace,
            LoopState.EXECUTE_ATTEMPT,
        )
        if executed.failure is not None:
            if executed.failure is FailureKind.RETRY_BUDGET_EXHAUSTED:
                trace.append(LoopState.EXECUTE_FAILED)
            return self._abort(
                report, execute_step, executed, module, trace, FailureKind.EXECUTE_FAILURE
            )
        trace.append(LoopState.EXECUTE_OK)
        report.complete(
            execute_step,
            result={
                "retries": executed.retries,
                "passed_tests": executed.result.passed,
                "failed_tests": executed.result.failed,
            },
        )
        logger.info("Validation of %s succeeded", test_path)
        return ValidationOutcome(
            success=True,
            state=LoopState.EXECUTE_OK,
            steps=report.steps,
            module=module,
            trace=trace,
            passed=executed.result.passed,
            failed=executed.result.failed,
        )

    def _phase(
        self,
        attempt: Callable[[], ToolchainResult],
        policy: RemediationPolicy,
        test_file: Path,
        trace: list[LoopState],
        attempt_state: LoopState,
    ) -> _PhaseResult:
        remediations: list[str] = []
        n = 0
        while True:
            trace.append(attempt_state)
            logger.info("%s #%d", attempt_state.value, n)
            result = attempt()
            if result.success:
                return _PhaseResult(result, n, remediations)

            error = result.error or "toolchain reported failure without detail"
            if n + 1 >= self.max_retries:
                return _PhaseResult(
                    result, n, remediations, FailureKind.RETRY_BUDGET_EXHAUSTED
                )

            outcome = remediate_file(test_file, error, policy)
            if not outcome.fixed:
                return _PhaseResult(
                    result, n, remediations, FailureKind.REMEDIATION_EXHAUSTED
                )
            remediations.extend(outcome.applied)
            n += 1

    @staticmethod
    def _abort(
        report: RunReport,
        step: RunStep,
        phase: _PhaseResult,
        module: str,
        trace: list[LoopState],
        kind: FailureKind,
    ) -> ValidationOutcome:
        trace.append(LoopState.ABORTED)
        report.fail(
            step,
            error=phase.result.error or "toolchain reported failure without detail",
            reason=phase.failure.value if phase.failure else None,
            result={
                "retries": phase.retries,
                "failure": kind.value,
                "remediations": phase.remediations,
            },
        )
        return ValidationOutcome(
            success=False,
            state=LoopState.ABORTED,
            steps=report.steps,
            module=module,
            failure=kind,
            reason=phase.failure,
            trace=trace,
            passed=phase.result.passed,
            failed=phase.result.failed,
        )
