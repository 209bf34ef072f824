"""Prompt catalog backed by ``rynk/prompts/prompts.json``.

The JSON groups prompts by feature (``chat``, ``tools``, ``mermaid`` ...).
On load the tree is flattened into dotted keys (``tools.summarizer``), each
compiled to a ``string.Template``. The file is re-read when its mtime moves,
so prompt edits apply without a restart.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from string import Template
from typing import Any

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"


@dataclass
class PromptCatalog:
    mtime_ns: int
    templates: dict[str, Template] = field(default_factory=dict)
    sections: set[str] = field(default_factory=set)

    def add(self, node: Any, prefix: str = "") -> None:
        if isinstance(node, str):
            self.templates[prefix] = Template(node)
            return
        if not isinstance(node, dict):
            raise ValueError(f"Prompt entry must be text or a section: {prefix or '<root>'}")
        if prefix:
            self.sections.add(prefix)
        for name, child in node.items():
            self.add(child, f"{prefix}.{name}" if prefix else name)


_catalog: PromptCatalog | None = None


def _load_catalog() -> PromptCatalog:
    global _catalog
    mtime_ns = PROMPTS_PATH.stat().st_mtime_ns
    if _catalog is not None and _catalog.mtime_ns == mtime_ns:
        return _catalog

    payload = json.loads(PROMPTS_PATH.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Prompt catalog must be a JSON object.")
    catalog = PromptCatalog(mtime_ns=mtime_ns)
    catalog.add(payload)
    _catalog = catalog
    return catalog


def prompt_keys(section: str | None = None) -> list[str]:
    keys = _load_catalog().templates
    if section is None:
        return sorted(keys)
    return sorted(k for k in keys if k.startswith(f"{section}."))


def render_prompt(key: str, **values: Any) -> str:
    catalog = _load_catalog()
    template = catalog.templates.get(key)
    if template is None:
        if key in catalog.sections:
            raise TypeError(f"Prompt key names a section, not a prompt: {key}")
        raise KeyError(f"Prompt key not found: {key}")
    try:
        return template.substitute(**values)
    except KeyError as exc:
        raise KeyError(f"Missing template value '{exc.args[0]}' for prompt '{key}'") from exc


def clear_prompt_cache() -> None:
    global _catalog
    _catalog = None
