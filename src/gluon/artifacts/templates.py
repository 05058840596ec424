# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/artifacts/templates.py

from __future__ import annotations

from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .store import DesiredArtifact

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


class TemplateRenderer:
    """Renders the unit files and scripts shipped in gluon/templates."""

    def __init__(self, templates_dir: Optional[Path] = None):
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir or TEMPLATES_DIR)),
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )

    def render(self, template_name: str, context: Optional[dict] = None) -> str:
        tmpl = self.env.get_template(template_name)
        return tmpl.render(**(context or {}))

    def render_artifact(
        self,
        template_name: str,
        path: str,
        context: Optional[dict] = None,
        mode: int = 0o644,
    ) -> DesiredArtifact:
        content = self.render(template_name, context)
        return DesiredArtifact(path=path, content=content.encode("utf-8"), mode=mode)
