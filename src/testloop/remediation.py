"""Deterministic text patches for recurring toolchain failures.

A rule fires when its signature is a substring of the failure message and
rewrites the test document. The rule set is closed: a message that matches
no signature is reported as not fixed and the caller stops retrying.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemediationRule:
    name: str
    signature: str
    transform: Callable[[str], str]

    def matches(self, failure_message: str) -> bool:
        return self.signature in failure_message


@dataclass(frozen=True)
class RemediationOutcome:
    text: str
    fixed: bool
    applied: list[str] = field(default_factory=list)


def _unit_to_long(text: str) -> str:
    return re.sub(r"returns Unit\b", "returns 1L", text)


def _yn_to_boolean(text: str) -> str:
    return text.replace('"Y"', "true").replace('"N"', "false")


COMPILE_RULES: tuple[RemediationRule, ...] = (
    RemediationRule("unit_to_long", "Unit but Long", _unit_to_long),
    RemediationRule("yn_string_to_boolean", "String but Boolean", _yn_to_boolean),
)

# No deterministic fix is known for failing test runs.
EXECUTION_RULES: tuple[RemediationRule, ...] = ()


class RemediationPolicy:
    def __init__(self, rules: tuple[RemediationRule, ...]) -> None:
        self.rules = rules

    def attempt_fix(self, text: str, failure_message: str) -> RemediationOutcome:
        """Apply every rule whose signature occurs in *failure_message*, in order."""
        applied: list[str] = []
        for rule in self.rules:
            if rule.matches(failure_message):
                text = rule.transform(text)
                applied.append(rule.name)
        return RemediationOutcome(text=text, fixed=bool(applied), applied=applied)


def remediate_file(
    path: Path, failure_message: str, policy: RemediationPolicy
) -> RemediationOutcome:
    """Rewrite *path* in place when a rule matches."""
    outcome = policy.attempt_fix(path.read_text(encoding="utf-8"), failure_message)
    if outcome.fixed:
        path.write_text(outcome.text, encoding="utf-8")
        logger.info("Applied %s to %s", ", ".join(outcome.applied), path)
    else:
        logger.warning("No remediation rule matches failure for %s", path)
    return outcome


def compile_policy() -> RemediationPolicy:
    return RemediationPolicy(COMPILE_RULES)


def execution_policy() -> RemediationPolicy:
    return RemediationPolicy(EXECUTION_RULES)
