"""Render a service descriptor into a Kotlin test scaffold.

Rendering is a pure function of the descriptor and the selected template.
Every public method yields exactly two cases, ``<name>_success`` and
``<name>_error``; private methods are skipped. Bodies carry TODO markers
for mock and error-scenario setup.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, Template

from testloop.models import ServiceDescriptor, TemplateFlavor

TEMPLATE_DIR = Path(__file__).parent / "templates"

_TEMPLATES: dict[TemplateFlavor, str] = {
    TemplateFlavor.UNIT: "service_test.kt.j2",
    TemplateFlavor.INTEGRATION: "integration_test.kt.j2",
}

CASES_PER_METHOD = 2


@lru_cache(maxsize=1)
def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        autoescape=False,
    )


def load_template(flavor: TemplateFlavor = TemplateFlavor.UNIT) -> Template:
    return _environment().get_template(_TEMPLATES[flavor])


def service_field_name(class_name: str) -> str:
    """``FooServiceImpl`` -> ``fooServiceImpl``."""
    return class_name[:1].lower() + class_name[1:]


def count_test_cases(descriptor: ServiceDescriptor) -> int:
    return CASES_PER_METHOD * len(descriptor.public_methods)


def synthesize(
    descriptor: ServiceDescriptor,
    flavor: TemplateFlavor = TemplateFlavor.UNIT,
) -> str:
    return load_template(flavor).render(
        package_name=descriptor.package_name,
        service_name=descriptor.class_name,
        service_field=service_field_name(descriptor.class_name),
        dependencies=descriptor.dependencies,
        methods=descriptor.public_methods,
    )
