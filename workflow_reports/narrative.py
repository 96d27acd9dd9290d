from pathlib import Path
from typing import Any, Dict

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape


def _build_env(template_dir: Path) -> Environment:
    return Environment(
        loader=FileSystemLoader(template_dir),
        autoescape=select_autoescape(enabled_extensions=("html", "j2")),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )


class TemplateRenderer:
    """
    Thin wrapper around Jinja2 so the HTML report shares one environment.
    Template errors propagate; the PDF layer decides how to recover.
    """

    def __init__(self, template_dir: Path):
        self.template_dir = template_dir
        self.env = _build_env(template_dir)

    def render(self, template_name: str, payload: Dict[str, Any]) -> str:
        template = self.env.get_template(template_name)
        return template.render(**payload)
