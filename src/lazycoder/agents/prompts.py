"""Jinja2 prompt templates for the pipeline stages.

Each stage renders its instructional text from a template in the
``templates/`` directory next to this module. Templates receive plain
strings; structured values are serialized by the caller.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from lazycoder.models import TerraformFile

TEMPLATE_DIR = Path(__file__).parent / "templates"


class PromptLoader:
    """Loads and caches Jinja2 prompt templates.

    Attributes:
        template_dir: Directory holding the ``*.j2`` templates
        env: Jinja2 Environment with caching and strict undefined handling
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        self.template_dir = template_dir or TEMPLATE_DIR
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            cache_size=50,
            auto_reload=False,
        )

    def render(self, template_name: str, **context: object) -> str:
        """Render a template by name.

        Raises:
            jinja2.TemplateNotFound: If the template doesn't exist
            jinja2.UndefinedError: If the template references a missing variable
        """
        return self.env.get_template(template_name).render(**context).strip()

    def list_templates(self) -> list[str]:
        return sorted(self.env.list_templates())


def format_code_context(files: list[TerraformFile]) -> str:
    """Concatenate files into the ``--- name ---`` block format used in prompts."""
    return "\n".join(f"--- {f.filename} ---\n{f.content}" for f in files)


_default_loader: PromptLoader | None = None


def get_prompt_loader() -> PromptLoader:
    """Return the shared PromptLoader, creating it on first use."""
    global _default_loader
    if _default_loader is None:
        _default_loader = PromptLoader()
    return _default_loader
