"""
Versioned prompt templates.

Prompts live in YAML files grouped by domain:

    v1/
    ├── shared/      # JSON-only system prompt
    ├── narrative/   # Life-path narrative generation
    └── choice/      # Free-text choice classification

A YAML entry is either a template string or a mapping with `template`,
`required_variables` and `output_schema`. Templates are Jinja2 and are
parsed at load time so a broken template fails fast.

Usage:
    from app.prompts.loader import render_prompt

    rendered = render_prompt("prompt_life_narrative", facts=..., choice_text=...)
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, StrictUndefined, TemplateSyntaxError

logger = logging.getLogger(__name__)

_PROMPTS_DIR = Path(__file__).resolve().parent
_VERSION = "v1"
_DOMAIN_DIRS = ["shared", "narrative", "choice"]
_AUTO_INCLUDED = ("system_prompt_json",)


@lru_cache(maxsize=1)
def _jinja_env() -> Environment:
    return Environment(
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _template_of(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get("template"), str):
        return value["template"]
    return None


def _iter_prompt_files(domain: str | None = None):
    version_dir = _PROMPTS_DIR / _VERSION
    for name in _DOMAIN_DIRS if domain is None else [domain]:
        domain_dir = version_dir / name
        if domain_dir.exists():
            for yaml_file in sorted(domain_dir.glob("*.yaml")):
                yield name, yaml_file


def _read_yaml(yaml_file: Path) -> dict[str, Any]:
    with yaml_file.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{yaml_file} must be a mapping at top level")
    return data


@lru_cache(maxsize=1)
def _load_prompts() -> dict[str, Any]:
    prompts: dict[str, Any] = {}
    for _domain, yaml_file in _iter_prompt_files():
        data = _read_yaml(yaml_file)
        for key, value in data.items():
            template = _template_of(value)
            if template is None:
                continue
            try:
                _jinja_env().parse(template)
            except TemplateSyntaxError as e:
                raise ValueError(f"Invalid Jinja2 template in {yaml_file}:{key}: {e}") from e
        prompts.update(data)
    return prompts


def get_prompt(name: str) -> str:
    """Return the raw template for `name`; KeyError when missing."""
    template = _template_of(_load_prompts().get(name))
    if template is None:
        raise KeyError(f"Prompt '{name}' not found or not a string")
    return template


def render_prompt(name: str, validate: bool = False, **context: Any) -> str:
    """
    Render a prompt template with the given context.

    `system_prompt_json` is injected automatically unless provided.

    Raises:
        ValueError: If validate=True and required variables are missing
    """
    prompts = _load_prompts()
    for shared_key in _AUTO_INCLUDED:
        if shared_key not in context and shared_key in prompts:
            context[shared_key] = prompts[shared_key]

    if validate:
        missing = check_required_variables(name, context)
        if missing:
            raise ValueError(f"Missing required variables for '{name}': {missing}")

    return _jinja_env().from_string(get_prompt(name)).render(**context).strip()


def list_prompts(domain: str | None = None) -> list[str]:
    if domain is None:
        return list(_load_prompts().keys())
    names: list[str] = []
    for _domain, yaml_file in _iter_prompt_files(domain):
        names.extend(_read_yaml(yaml_file).keys())
    return names


def get_prompt_metadata(name: str) -> dict[str, Any]:
    """Domain, file path, template variables and declared schema of a prompt."""
    for domain, yaml_file in _iter_prompt_files():
        data = _read_yaml(yaml_file)
        if name not in data:
            continue
        entry = data[name]
        template = _template_of(entry) or ""
        return {
            "domain": domain,
            "version": _VERSION,
            "file_path": str(yaml_file.relative_to(_PROMPTS_DIR)),
            "variables": sorted(extract_template_variables(template)),
            "required_variables": (entry.get("required_variables") or []) if isinstance(entry, dict) else [],
            "output_schema": entry.get("output_schema") if isinstance(entry, dict) else None,
        }
    raise KeyError(f"Prompt '{name}' not found")


def extract_template_variables(template: str) -> set[str]:
    """Top-level names referenced by `{{ ... }}` and `{% if/for ... %}` blocks."""
    variables = set(re.findall(r"\{\{\s*([a-zA-Z_][a-zA-Z0-9_]*)", template))
    variables.update(re.findall(r"\{%\s*(?:if|elif)\s+(?:not\s+)?([a-zA-Z_][a-zA-Z0-9_]*)", template))
    variables.update(re.findall(r"\{%\s*for\s+[a-zA-Z_][a-zA-Z0-9_, ]*\s+in\s+([a-zA-Z_][a-zA-Z0-9_]*)", template))
    return variables


def check_required_variables(name: str, context: dict[str, Any]) -> list[str]:
    meta = get_prompt_metadata(name)
    required = meta["required_variables"]
    if not required:
        required = [v for v in meta["variables"] if v not in _AUTO_INCLUDED]
    return [v for v in required if v not in context]


def clear_cache() -> None:
    _load_prompts.cache_clear()
