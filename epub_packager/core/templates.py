"""Jinja2 environment for the package's XML and XHTML documents."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

SECTION_TEMPLATE = "section.xhtml"
NAV_TEMPLATE = "nav.xhtml"
NCX_TEMPLATE = "toc.ncx"
PACKAGE_TEMPLATE = "package.opf"
CONTAINER_TEMPLATE = "container.xml"


@lru_cache(maxsize=1)
def template_env() -> Environment:
    # Every shipped template is XML, so every value is escaped unless marked safe
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(
            enabled_extensions=("xml", "xhtml", "opf", "ncx"),
            default_for_string=False,
        ),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def render_template(template_name: str, **context: object) -> str:
    return template_env().get_template(template_name).render(**context)
