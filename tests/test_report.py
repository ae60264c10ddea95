from __future__ import annotations

import pytest

from testloop.models import StepStatus
from testloop.report import RunReport, StepTransitionError


class TestRunReport:
    def test_steps_numbered_by_position(self) -> None:
        report = RunReport()
        first = report.start("analyze_service")
        second = report.start("generate_test_code")
        assert (first.step, second.step) == (1, 2)
        assert len(report) == 2
        assert report.last is second

    def test_new_step_in_progress(self) -> None:
        step = RunReport().start("compile_validation", "Validating compilation...")
        assert step.status == StepStatus.IN_PROGRESS
        assert step.message == "Validating compilation..."

    def test_complete(self) -> None:
        report = RunReport()
        step = report.start("compile_validation")
        report.complete(step, result={"retries": 0}, message="done")
        assert step.status == StepStatus.COMPLETED
        assert step.result == {"retries": 0}
        assert step.message == "done"

    def test_fail(self) -> None:
        report = RunReport()
        step = report.start("test_execution")
        report.fail(step, error="boom", reason="retry_budget_exhausted")
        assert step.status == StepStatus.FAILED
        assert step.error == "boom"
        assert step.reason == "retry_budget_exhausted"

    @pytest.mark.parametrize("finish", ["complete", "fail"])
    def test_terminal_steps_are_final(self, finish: str) -> None:
        report = RunReport()
        step = report.start("x")
        if finish == "complete":
            report.complete(step)
        else:
            report.fail(step, error="e")
        with pytest.raises(StepTransitionError, match="already"):
            report.complete(step)
        with pytest.raises(StepTransitionError):
            report.fail(step, error="again")

    def test_steps_returns_copy(self) -> None:
        report = RunReport()
        report.start("x")
        report.steps.clear()
        assert len(report) == 1

    def test_succeeded(self) -> None:
        report = RunReport()
        assert not report.succeeded()
        a = report.start("a")
        report.complete(a)
        assert report.succeeded()
        b = report.start("b")
        assert not report.succeeded()
        report.fail(b, error="e")
        assert not report.succeeded()

    def test_empty_last(self) -> None:
        assert RunReport().last is None
