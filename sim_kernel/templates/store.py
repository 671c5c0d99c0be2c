"""
Template Store — reusable definitions for worlds, nodes, interactions,
characters and encounters.

The WorldBuilder and the HTTP surface only depend on the TemplateProvider
protocol. InMemoryTemplateStore is the in-process implementation.
"""

import copy
from typing import Dict, List, Optional, Protocol

TEMPLATE_TYPES = (
    "worlds",
    "nodes",
    "interactions",
    "characters",
    "events",
    "groups",
    "items",
    "encounters",
)


class TemplateProvider(Protocol):
    """Protocol for template lookup — pluggable backend."""

    def get_template(self, template_type: str, template_id: str) -> Optional[dict]: ...

    def get_all_templates(self, template_type: str) -> List[dict]: ...

    def add_template(self, template_type: str, template: dict) -> dict: ...


class InMemoryTemplateStore:
    """Templates keyed by type, then id. Stored and returned as copies."""

    def __init__(self):
        self._templates: Dict[str, Dict[str, dict]] = {t: {} for t in TEMPLATE_TYPES}

    def get_template(self, template_type: str, template_id: str) -> Optional[dict]:
        template = self._templates.get(template_type, {}).get(template_id)
        return copy.deepcopy(template) if template is not None else None

    def get_all_templates(self, template_type: str) -> List[dict]:
        return [copy.deepcopy(t) for t in self._templates.get(template_type, {}).values()]

    def add_template(self, template_type: str, template: dict) -> dict:
        if template_type not in self._templates:
            raise ValueError(f"Unknown template type: {template_type}")
        if not template.get("id"):
            raise ValueError("Templates need an id")
        self._templates[template_type][template["id"]] = copy.deepcopy(template)
        return template

    def remove_template(self, template_type: str, template_id: str) -> bool:
        return self._templates.get(template_type, {}).pop(template_id, None) is not None

    def count(self, template_type: Optional[str] = None) -> int:
        if template_type is not None:
            return len(self._templates.get(template_type, {}))
        return sum(len(t) for t in self._templates.values())
