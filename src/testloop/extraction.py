"""Normalize service sources into a :class:`ServiceDescriptor`.

Two extractors share one interface. :class:`StructuredExtractor` walks the
symbol tree produced by an external static analyzer and is preferred when
such data is available. :class:`RegexExtractor` scans raw Kotlin source and
is the lower-fidelity fallback. Neither raises on malformed or partial
input; missing pieces become empty strings, empty lists, or ``Unit``/``Any``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, ClassVar, Protocol

from pydantic import ValidationError

from testloop.config import GenerationConfig
from testloop.models import (
    Dependency,
    Fidelity,
    MethodSignature,
    Parameter,
    ServiceDescriptor,
    SymbolNode,
)
from testloop.paths import class_name_from_path, package_from_path

logger = logging.getLogger(__name__)

UNIT_TYPE = "Unit"
ANY_TYPE = "Any"

# LSP SymbolKind values
_LSP_CLASS = 5
_LSP_METHOD = 6
_LSP_CONSTRUCTOR = 9
_LSP_FUNCTION = 12

_METHOD_KINDS = frozenset({_LSP_METHOD, _LSP_FUNCTION, "method", "function"})
_CONSTRUCTOR_KINDS = frozenset({_LSP_CONSTRUCTOR, "constructor"})
_CLASS_KINDS = frozenset({_LSP_CLASS, "class"})

_PACKAGE_RE = re.compile(r"package\s+([\w.]+)")
_CLASS_RE = re.compile(r"class\s+(\w+)")
_IMPORT_RE = re.compile(r"^\s*import\s+([\w.]+)", re.MULTILINE)
_CONSTRUCTOR_RE = re.compile(r"class\s+\w+\s*\(([\s\S]*?)\)\s*:")
_PROPERTY_PARAM_RE = re.compile(
    r"\b(?:val|var)\s+(\w+)\s*:\s*([^=]+?)\s*(?:=[\s\S]*)?$"
)
_FUN_RE = re.compile(r"(?:override\s+)?fun\s+(\w+)\s*\(([\s\S]*?)\)\s*:\s*([\w<>?.]+)")
_QUALIFIER_RE = re.compile(
    r"^(?:@\w+(?:\([^)]*\))?\s+)*"
    r"(?:(?:private|protected|internal|public|override)\s+)*"
    r"(?:val|var)\s+"
)

_OPENERS = {"(": ")", "<": ">", "[": "]", "{": "}"}
_CLOSERS = frozenset(_OPENERS.values())


def split_top_level(text: str, sep: str = ",") -> list[str]:
    """Split *text* on *sep* outside any bracket nesting.

    ``"a: Map<K, V>, b: (Int) -> Unit"`` splits into two parts. The ``>``
    of a ``->`` arrow does not close a bracket.
    """
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    prev = ""
    for ch in text:
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS and not (ch == ">" and prev == "-"):
            depth = max(depth - 1, 0)
        if ch == sep and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
        prev = ch
    parts.append("".join(current))
    return parts


def _parenthesized(detail: str) -> tuple[str, str] | None:
    """Return (inside, after) for the first balanced ``(...)`` group."""
    start = detail.find("(")
    if start < 0:
        return None
    depth = 0
    for idx in range(start, len(detail)):
        ch = detail[idx]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return detail[start + 1 : idx], detail[idx + 1 :]
    return None


def _signature_params(detail: str | None) -> list[str]:
    if not detail:
        return []
    group = _parenthesized(detail)
    if group is None:
        return []
    inside, _ = group
    return [p.strip() for p in split_top_level(inside) if p.strip()]


def _split_param(param: str, default_name: str) -> tuple[str, str]:
    name, _, type_ = param.partition(":")
    type_ = split_top_level(type_, "=")[0].strip()
    return name.strip() or default_name, type_ or ANY_TYPE


def parse_parameters(detail: str | None) -> list[Parameter]:
    """Parse ``(a: A, b: B)`` style signatures into parameters."""
    params = []
    for raw in _signature_params(detail):
        name, type_ = _split_param(raw, "param")
        params.append(Parameter(name=name, type=type_))
    return params


def parse_constructor_dependencies(detail: str | None) -> list[Dependency]:
    """Parse a constructor signature, dropping ``val``/``var`` qualifiers."""
    deps = []
    for raw in _signature_params(detail):
        name, type_ = _split_param(_QUALIFIER_RE.sub("", raw), "dependency")
        deps.append(Dependency(name=name, type=type_))
    return deps


def _return_type(detail: str | None) -> str:
    if not detail:
        return UNIT_TYPE
    group = _parenthesized(detail)
    if group is None:
        return UNIT_TYPE if "(" in detail else detail.strip() or UNIT_TYPE
    _, after = group
    after = after.strip()
    if after.startswith(":"):
        return after[1:].split("{", 1)[0].split("=", 1)[0].strip() or UNIT_TYPE
    return UNIT_TYPE


def _kind(node: SymbolNode) -> int | str | None:
    return node.kind.lower() if isinstance(node.kind, str) else node.kind


def _is_private(node: SymbolNode) -> bool:
    name = node.name or ""
    detail = (node.detail or "").lstrip()
    return name.startswith("_") or detail.startswith("private ")


class Extractor(Protocol):
    fidelity: ClassVar[Fidelity]

    def extract(self, source: Any, source_path: str) -> ServiceDescriptor: ...


class StructuredExtractor:
    """Build a descriptor from an analyzer symbol tree."""

    fidelity: ClassVar[Fidelity] = Fidelity.STRUCTURED

    def __init__(self, settings: GenerationConfig) -> None:
        self._settings = settings

    def extract(self, source: Any, source_path: str) -> ServiceDescriptor:
        node = _coerce_symbols(source)
        node = _class_node(node)

        methods = [
            MethodSignature(
                name=child.name or "",
                return_type=_return_type(child.detail),
                parameters=parse_parameters(child.detail),
                is_private=_is_private(child),
            )
            for child in node.children
            if _kind(child) in _METHOD_KINDS
        ]
        dependencies: list[Dependency] = []
        for child in node.children:
            if _kind(child) in _CONSTRUCTOR_KINDS:
                dependencies.extend(parse_constructor_dependencies(child.detail))

        return ServiceDescriptor(
            package_name=package_from_path(
                source_path,
                self._settings.source_root_marker,
                self._settings.fallback_package,
            ),
            class_name=node.name or class_name_from_path(source_path),
            dependencies=dependencies,
            methods=methods,
            imports=[],
        )


def _coerce_symbols(source: Any) -> SymbolNode:
    if isinstance(source, SymbolNode):
        return source
    if isinstance(source, list):
        source = {"children": source}
    try:
        return SymbolNode.model_validate(source)
    except ValidationError as exc:
        logger.warning("Ignoring malformed symbol data: %s", exc)
        return SymbolNode()


def _class_node(node: SymbolNode) -> SymbolNode:
    """Descend into a lone class symbol when the root is a file overview."""
    members = [
        c for c in node.children if _kind(c) in _METHOD_KINDS | _CONSTRUCTOR_KINDS
    ]
    classes = [c for c in node.children if _kind(c) in _CLASS_KINDS]
    if not members and len(classes) == 1:
        return classes[0]
    return node


class RegexExtractor:
    """Scan Kotlin source text with regular expressions.

    Visibility is not detected; every method is reported as public.
    """

    fidelity: ClassVar[Fidelity] = Fidelity.REGEX

    def extract(self, source: Any, source_path: str) -> ServiceDescriptor:
        code = source if isinstance(source, str) else ""

        package_match = _PACKAGE_RE.search(code)
        class_match = _CLASS_RE.search(code)

        return ServiceDescriptor(
            package_name=package_match.group(1) if package_match else "",
            class_name=class_match.group(1) if class_match else "",
            dependencies=self._dependencies(code),
            methods=[
                MethodSignature(
                    name=m.group(1),
                    return_type=m.group(3),
                    parameters=parse_parameters(f"({m.group(2)})"),
                    is_private=False,
                )
                for m in _FUN_RE.finditer(code)
            ],
            imports=_IMPORT_RE.findall(code),
        )

    @staticmethod
    def _dependencies(code: str) -> list[Dependency]:
        match = _CONSTRUCTOR_RE.search(code)
        if not match:
            return []
        deps = []
        for param in split_top_level(match.group(1)):
            param_match = _PROPERTY_PARAM_RE.search(param.strip())
            if param_match:
                deps.append(
                    Dependency(
                        name=param_match.group(1),
                        type=param_match.group(2).strip(),
                    )
                )
        return deps


def select_extractor(
    structured_input: Any | None, settings: GenerationConfig
) -> Extractor:
    """Prefer the structured extractor whenever symbol data was supplied."""
    if structured_input is not None:
        return StructuredExtractor(settings)
    logger.warning("No symbol data supplied; falling back to regex extraction")
    return RegexExtractor()


def extract(
    source_path: str,
    settings: GenerationConfig,
    structured_input: Any | None = None,
    source_text: str | None = None,
) -> tuple[ServiceDescriptor, Fidelity]:
    """Extract a descriptor, returning it with the fidelity of the path used."""
    extractor = select_extractor(structured_input, settings)
    source = structured_input if structured_input is not None else source_text or ""
    return extractor.extract(source, source_path), extractor.fidelity
