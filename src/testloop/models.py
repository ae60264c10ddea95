"""Pydantic models defining the contracts exchanged by the testloop pipeline.

The service descriptor is the normalized view of a class under test, built
once per invocation by an extractor and consumed by the synthesizer. Run
steps and operation envelopes are what callers receive back. All models
serialize to JSON with camelCase keys for descriptor data, matching the
symbol data supplied by external analyzers.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class Fidelity(StrEnum):
    STRUCTURED = "structured"
    REGEX = "regex"


class StepStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TemplateFlavor(StrEnum):
    UNIT = "unit"
    INTEGRATION = "integration"


class _DescriptorModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Parameter(_DescriptorModel):
    name: str
    type: str


class Dependency(_DescriptorModel):
    name: str
    type: str


class MethodSignature(_DescriptorModel):
    name: str
    return_type: str
    parameters: list[Parameter] = Field(default_factory=list)
    is_private: bool = False


class ServiceDescriptor(_DescriptorModel):
    package_name: str = ""
    class_name: str = ""
    dependencies: list[Dependency] = Field(default_factory=list)
    methods: list[MethodSignature] = Field(default_factory=list)
    imports: list[str] = Field(default_factory=list)

    @property
    def public_methods(self) -> list[MethodSignature]:
        return [m for m in self.methods if not m.is_private]

    def summary(self, max_imports: int) -> dict[str, Any]:
        """JSON-ready view with only the first *max_imports* imports."""
        data = self.model_dump(by_alias=True)
        data["imports"] = self.imports[:max_imports]
        return data


class SymbolNode(BaseModel):
    """A node of the symbol tree supplied by an external static analyzer.

    ``kind`` is either an LSP ``SymbolKind`` number or a lowercase tag such
    as ``"method"``. Unknown fields are ignored, a null ``children`` is an
    empty list, and a child that does not validate is dropped on its own.
    """

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    kind: int | str | None = None
    detail: str | None = None
    children: list[SymbolNode] = Field(default_factory=list)

    @field_validator("children", mode="before")
    @classmethod
    def drop_malformed_children(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, list):
            return value
        children = []
        for child in value:
            try:
                children.append(SymbolNode.model_validate(child))
            except ValidationError as exc:
                logger.warning("Skipping malformed symbol %r: %s", child, exc)
        return children


class RunStep(BaseModel):
    step: int
    name: str
    status: StepStatus = StepStatus.IN_PROGRESS
    message: str = ""
    result: dict[str, Any] | None = None
    error: str | None = None
    reason: str | None = None


class CoverageResult(BaseModel):
    success: bool
    report_path: str | None = None
    error: str | None = None


class OperationEnvelope(BaseModel):
    success: bool
    duration_ms: int = 0
    message: str | None = None
    service_path: str | None = None
    test_path: str | None = None
    fidelity: Fidelity | None = None
    standards_loaded: bool | None = None
    analysis: dict[str, Any] | None = None
    steps: list[RunStep] | None = None
    coverage: CoverageResult | None = None
    error: str | None = None
    stack: str | None = None

    def to_json(self) -> str:
        return self.model_dump_json(indent=2, exclude_none=True)
