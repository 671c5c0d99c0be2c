"""
World Builder — six-step gated constructor for world configurations.

Steps:
  1 world properties → 2 nodes → 3 interactions → 4 characters
  → 5 node population → 6 final cross-reference validation

Behavioral Contract:
- Step k is complete only when its own predicate holds AND step k-1 is complete.
- Content for step k can only be added once steps 1..k-1 are complete.
- build() never returns an invalid world.
- The same checks gate SimulationService.initialize (see validate_world_config).
"""

from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Type, TypeVar, Union
from uuid import uuid4

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from sim_kernel.errors import (
    InvalidInputError,
    NotFoundError,
    TemplateNotFoundError,
    ValidationError,
)
from sim_kernel.models.character import Character
from sim_kernel.models.interaction import Interaction
from sim_kernel.models.validation import ValidationResult
from sim_kernel.models.world import (
    Dimensions,
    Group,
    Item,
    Node,
    WorldConfig,
    WorldEvent,
)
from sim_kernel.templates.store import TemplateProvider

M = TypeVar("M", bound=BaseModel)

STEP_NAMES = {
    1: "world properties",
    2: "nodes",
    3: "interactions",
    4: "characters",
    5: "node population",
    6: "final validation",
}

COMPLETENESS_WEIGHTS = {
    "world_properties": 0.20,
    "nodes": 0.30,
    "characters": 0.25,
    "interactions": 0.15,
    "events": 0.10,
}

# save_as_template type -> (WorldConfig field, template store type)
CONTENT_TEMPLATE_TYPES = {
    "nodes": "nodes",
    "interactions": "interactions",
    "characters": "characters",
    "events": "events",
    "groups": "groups",
    "items": "items",
}


# --- Step predicates (shared with SimulationService.initialize) ---

def _world_property_reasons(config: WorldConfig) -> List[str]:
    reasons = []
    if not config.name:
        reasons.append("World name is required")
    if not config.description:
        reasons.append("World description is required")
    if not config.rules:
        reasons.append("World rules are required")
    if not config.initial_conditions:
        reasons.append("Initial conditions are required")
    return reasons


def _node_reasons(config: WorldConfig) -> List[str]:
    if not config.nodes:
        return ["At least one node is required"]
    return [
        f"Node {node.id or '?'} needs an id, name, type and description"
        for node in config.nodes
        if not (node.id and node.name and node.type and node.description)
    ]


def _interaction_reasons(config: WorldConfig) -> List[str]:
    if not config.interactions:
        return ["At least one interaction is required"]
    return []


def _character_reasons(config: WorldConfig) -> List[str]:
    if not config.characters:
        return ["At least one character is required"]
    interaction_ids = {i.id for i in config.interactions}
    reasons = []
    for character in config.characters:
        if not character.assigned_interactions:
            reasons.append(f"Character {character.id} has no assigned interactions")
        for interaction_id in character.assigned_interactions:
            if interaction_id not in interaction_ids:
                reasons.append(
                    f"Character {character.id} is assigned unknown interaction {interaction_id}"
                )
    return reasons


def _population_reasons(config: WorldConfig) -> List[str]:
    node_ids = {n.id for n in config.nodes}
    placements = Counter(
        character_id
        for node_id, members in config.node_populations.items()
        if node_id in node_ids
        for character_id in members
    )
    reasons = []
    for node in config.nodes:
        if not config.node_populations.get(node.id):
            reasons.append(f"Node {node.id} has no characters")
    for character in config.characters:
        count = placements.get(character.id, 0)
        if count == 0:
            reasons.append(f"Character {character.id} is not placed on a node")
        elif count > 1:
            reasons.append(f"Character {character.id} is placed on {count} nodes")
    return reasons


def _cross_reference_reasons(config: WorldConfig) -> List[str]:
    reasons = []

    for label, items in (
        ("node", config.nodes),
        ("interaction", config.interactions),
        ("character", config.characters),
        ("event", config.events),
        ("group", config.groups),
        ("item", config.items),
    ):
        for item_id, count in Counter(i.id for i in items).items():
            if count > 1:
                reasons.append(f"Duplicate {label} id: {item_id}")

    node_ids = {n.id for n in config.nodes}
    character_ids = {c.id for c in config.characters}
    interaction_ids = {i.id for i in config.interactions}

    for node in config.nodes:
        for target in node.connections:
            if target not in node_ids:
                reasons.append(f"Node {node.id} connects to unknown node {target}")
        for interaction_id in node.interactions:
            if interaction_id not in interaction_ids:
                reasons.append(f"Node {node.id} references unknown interaction {interaction_id}")

    for node_id, members in config.node_populations.items():
        if node_id not in node_ids:
            reasons.append(f"Population references unknown node {node_id}")
        for character_id in members:
            if character_id not in character_ids:
                reasons.append(f"Node {node_id} is populated with unknown character {character_id}")

    for group in config.groups:
        for member in group.members:
            if member not in character_ids:
                reasons.append(f"Group {group.id} references unknown character {member}")

    return reasons


STEP_CHECKS = {
    1: _world_property_reasons,
    2: _node_reasons,
    3: _interaction_reasons,
    4: _character_reasons,
    5: _population_reasons,
    6: _cross_reference_reasons,
}


def step_reasons(config: WorldConfig) -> Dict[int, List[str]]:
    """Reasons each step's own predicate fails, ignoring earlier steps."""
    return {step: check(config) for step, check in STEP_CHECKS.items()}


def step_status(config: WorldConfig) -> Dict[int, bool]:
    """Cumulative completion: step k counts only if steps 1..k-1 do too."""
    reasons = step_reasons(config)
    status = {}
    previous = True
    for step in sorted(STEP_CHECKS):
        previous = previous and not reasons[step]
        status[step] = previous
    return status


def completeness(config: WorldConfig) -> float:
    score = 0.0
    if not _world_property_reasons(config):
        score += COMPLETENESS_WEIGHTS["world_properties"]
    if not _node_reasons(config):
        score += COMPLETENESS_WEIGHTS["nodes"]
    if config.characters:
        score += COMPLETENESS_WEIGHTS["characters"]
    if config.interactions:
        score += COMPLETENESS_WEIGHTS["interactions"]
    if config.events:
        score += COMPLETENESS_WEIGHTS["events"]
    return round(score, 6)


def _warnings(config: WorldConfig) -> List[str]:
    warnings = []
    if not config.dimensions:
        warnings.append("No world dimensions set")
    if not config.events:
        warnings.append("No world events defined")
    used = {iid for c in config.characters for iid in c.assigned_interactions}
    for interaction in config.interactions:
        if interaction.id not in used:
            warnings.append(f"Interaction {interaction.id} is not assigned to any character")
    for character in config.characters:
        if not character.goals:
            warnings.append(f"Character {character.id} has no goals")
    return warnings


def validate_world_config(config: WorldConfig) -> ValidationResult:
    """Run all six steps against a configuration."""
    reasons = step_reasons(config)
    status = step_status(config)
    errors = [reason for step in sorted(reasons) for reason in reasons[step]]
    return ValidationResult(
        is_valid=all(status.values()),
        errors=errors,
        warnings=_warnings(config),
        completeness=completeness(config),
        step_validation=status,
    )


def _coerce(model: Type[M], data: Union[M, dict], label: str) -> M:
    if isinstance(data, model):
        return data.model_copy(deep=True)
    if not isinstance(data, dict):
        raise InvalidInputError(f"{label} must be a mapping, got {type(data).__name__}")
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise InvalidInputError(f"Invalid {label}: {exc}") from exc


class WorldBuilder:
    """
    Accumulates a WorldConfig through gated add / remove / set operations.
    """

    def __init__(self, template_provider: Optional[TemplateProvider] = None):
        self.templates = template_provider
        self._config = WorldConfig()

    # --- Step gating ---

    def validate_step(self, step: int) -> bool:
        """True when the step and every step before it are complete."""
        if step not in STEP_CHECKS:
            return False
        return step_status(self._config)[step]

    def can_proceed_to_step(self, step: int) -> bool:
        if step not in STEP_CHECKS:
            return False
        if step == 1:
            return True
        return self.validate_step(step - 1)

    def _require_step(self, step: int) -> None:
        if not self.can_proceed_to_step(step):
            reasons = step_reasons(self._config)
            blocking = [r for s in range(1, step) for r in reasons[s]]
            raise ValidationError(
                f"Cannot add {STEP_NAMES[step]} before earlier steps are complete",
                blocking,
            )

    def _refresh_status(self) -> None:
        result = validate_world_config(self._config)
        self._config.is_valid = result.is_valid
        self._config.is_complete = result.is_valid

    # --- Step 1: world properties ---

    def set_world_properties(self, name: str, description: str) -> "WorldBuilder":
        if not isinstance(name, str) or not name.strip():
            raise InvalidInputError("World name must be a non-empty string")
        if not isinstance(description, str):
            raise InvalidInputError("World description must be a string")
        self._config.name = name
        self._config.description = description
        self._refresh_status()
        return self

    def set_dimensions(self, width: float, height: float) -> "WorldBuilder":
        try:
            self._config.dimensions = Dimensions(width=width, height=height)
        except PydanticValidationError as exc:
            raise InvalidInputError(f"Invalid dimensions: {exc}") from exc
        self._refresh_status()
        return self

    def set_rules(self, rules: dict) -> "WorldBuilder":
        if not isinstance(rules, dict):
            raise InvalidInputError("Rules must be a mapping")
        self._config.rules = dict(rules)
        self._refresh_status()
        return self

    def set_initial_conditions(self, conditions: dict) -> "WorldBuilder":
        if not isinstance(conditions, dict):
            raise InvalidInputError("Initial conditions must be a mapping")
        self._config.initial_conditions = dict(conditions)
        self._refresh_status()
        return self

    # --- Steps 2-4: content ---

    def add_node(self, node: Union[Node, dict]) -> Node:
        self._require_step(2)
        node = _coerce(Node, node, "node")
        self._reject_duplicate("Node", node.id, self._config.nodes)
        self._config.nodes.append(node)
        self._refresh_status()
        return node

    def add_interaction(self, interaction: Union[Interaction, dict]) -> Interaction:
        self._require_step(3)
        interaction = _coerce(Interaction, interaction, "interaction")
        self._reject_duplicate("Interaction", interaction.id, self._config.interactions)
        self._config.interactions.append(interaction)
        self._refresh_status()
        return interaction

    def add_character(self, character: Union[Character, dict]) -> Character:
        self._require_step(4)
        character = _coerce(Character, character, "character")
        self._reject_duplicate("Character", character.id, self._config.characters)
        self._config.characters.append(character)
        if character.current_node_id and self._find(self._config.nodes, character.current_node_id):
            self._place(character.id, character.current_node_id)
        self._refresh_status()
        return character

    def add_event(self, event: Union[WorldEvent, dict]) -> WorldEvent:
        event = _coerce(WorldEvent, event, "event")
        self._reject_duplicate("Event", event.id, self._config.events)
        self._config.events.append(event)
        self._refresh_status()
        return event

    def add_group(self, group: Union[Group, dict]) -> Group:
        group = _coerce(Group, group, "group")
        self._reject_duplicate("Group", group.id, self._config.groups)
        self._config.groups.append(group)
        self._refresh_status()
        return group

    def add_item(self, item: Union[Item, dict]) -> Item:
        item = _coerce(Item, item, "item")
        self._reject_duplicate("Item", item.id, self._config.items)
        self._config.items.append(item)
        self._refresh_status()
        return item

    # --- Step 5: population ---

    def assign_character_to_node(self, character_id: str, node_id: str) -> None:
        """Place a character on exactly one node, moving it if already placed."""
        self._require_step(5)
        self._get("Character", self._config.characters, character_id)
        self._get("Node", self._config.nodes, node_id)
        self._place(character_id, node_id)
        self._refresh_status()

    def populate_node(self, node_id: str, character_ids: List[str]) -> None:
        self._require_step(5)
        self._get("Node", self._config.nodes, node_id)
        for character_id in character_ids:
            self._get("Character", self._config.characters, character_id)
        for character_id in character_ids:
            self._place(character_id, node_id)
        self._refresh_status()

    def _place(self, character_id: str, node_id: str) -> None:
        for members in self._config.node_populations.values():
            if character_id in members:
                members.remove(character_id)
        self._config.node_populations.setdefault(node_id, []).append(character_id)
        character = self._find(self._config.characters, character_id)
        if character is not None:
            character.current_node_id = node_id

    # --- Removal ---

    def remove_node(self, node_id: str) -> None:
        node = self._get("Node", self._config.nodes, node_id)
        self._config.nodes.remove(node)
        for character_id in self._config.node_populations.pop(node_id, []):
            character = self._find(self._config.characters, character_id)
            if character is not None:
                character.current_node_id = None
        self._refresh_status()

    def remove_interaction(self, interaction_id: str) -> None:
        interaction = self._get("Interaction", self._config.interactions, interaction_id)
        self._config.interactions.remove(interaction)
        self._refresh_status()

    def remove_character(self, character_id: str) -> None:
        character = self._get("Character", self._config.characters, character_id)
        self._config.characters.remove(character)
        for members in self._config.node_populations.values():
            if character_id in members:
                members.remove(character_id)
        self._refresh_status()

    def remove_event(self, event_id: str) -> None:
        self._config.events.remove(self._get("Event", self._config.events, event_id))
        self._refresh_status()

    def remove_group(self, group_id: str) -> None:
        self._config.groups.remove(self._get("Group", self._config.groups, group_id))
        self._refresh_status()

    def remove_item(self, item_id: str) -> None:
        self._config.items.remove(self._get("Item", self._config.items, item_id))
        self._refresh_status()

    # --- Templates ---

    def _require_templates(self) -> TemplateProvider:
        if self.templates is None:
            raise InvalidInputError("No template provider configured")
        return self.templates

    def _instantiate(self, template_type: str, template_id: str, customizations: Optional[dict]) -> dict:
        template = self._require_templates().get_template(template_type, template_id)
        if template is None:
            raise TemplateNotFoundError(template_type, template_id)
        data = dict(template.get("data", template))
        data.update(customizations or {})
        data["id"] = f"{template_id}_{uuid4().hex[:8]}"
        return data

    def add_node_from_template(self, template_id: str, customizations: Optional[dict] = None) -> Node:
        return self.add_node(self._instantiate("nodes", template_id, customizations))

    def add_interaction_from_template(
        self, template_id: str, customizations: Optional[dict] = None
    ) -> Interaction:
        return self.add_interaction(self._instantiate("interactions", template_id, customizations))

    def add_character_from_template(
        self, template_id: str, customizations: Optional[dict] = None
    ) -> Character:
        return self.add_character(self._instantiate("characters", template_id, customizations))

    def save_as_template(
        self, template_type: str, name: str, description: str = ""
    ) -> Union[dict, List[dict]]:
        """
        Store the whole world ("world") or each item of one content list as
        templates. Returns what was stored.
        """
        templates = self._require_templates()
        created_at = datetime.utcnow().isoformat()

        if template_type == "world":
            template = {
                "id": f"world_{uuid4().hex[:12]}",
                "name": name,
                "description": description,
                "version": "1.0.0",
                "tags": ["world", "custom"],
                "created_at": created_at,
                "world_config": self._config.model_dump(mode="json"),
            }
            templates.add_template("worlds", template)
            return template

        if template_type not in CONTENT_TEMPLATE_TYPES:
            raise InvalidInputError(f"Invalid template type: {template_type}")

        content = getattr(self._config, template_type)
        if not content:
            raise InvalidInputError(f"No {template_type} content to save as template")

        saved = []
        for index, item in enumerate(content):
            template = {
                "id": f"{template_type}_{uuid4().hex[:12]}",
                "name": f"{name} {index + 1}",
                "description": description,
                "version": "1.0.0",
                "tags": [template_type, "custom"],
                "created_at": created_at,
                "data": item.model_dump(mode="json"),
            }
            templates.add_template(CONTENT_TEMPLATE_TYPES[template_type], template)
            saved.append(template)
        return saved

    def load_from_template(self, template_id: str) -> WorldConfig:
        """Replace the current config with a stored world and re-run step validation."""
        template = self._require_templates().get_template("worlds", template_id)
        if template is None:
            raise TemplateNotFoundError("worlds", template_id)
        try:
            config = WorldConfig.model_validate(template.get("world_config", {}))
        except PydanticValidationError as exc:
            raise InvalidInputError(f"Invalid world template {template_id}: {exc}") from exc

        config.template_id = template_id
        self._config = config
        self._refresh_status()
        return self.get_world_config()

    # --- Results ---

    def validate(self) -> ValidationResult:
        return validate_world_config(self._config)

    def build(self) -> WorldConfig:
        result = self.validate()
        if not result.is_valid:
            raise ValidationError("Cannot build invalid world", result.errors)

        world = self._config.model_copy(deep=True)
        world.is_valid = True
        world.is_complete = True
        world.created_at = datetime.utcnow()
        return world

    def reset(self) -> "WorldBuilder":
        self._config = WorldConfig()
        return self

    def get_world_config(self) -> WorldConfig:
        return self._config.model_copy(deep=True)

    # --- Helpers ---

    @staticmethod
    def _find(items: list, item_id: str):
        return next((i for i in items if i.id == item_id), None)

    def _get(self, kind: str, items: list, item_id: str):
        item = self._find(items, item_id)
        if item is None:
            raise NotFoundError(kind, item_id)
        return item

    def _reject_duplicate(self, kind: str, item_id: str, items: list) -> None:
        if self._find(items, item_id) is not None:
            raise InvalidInputError(f"{kind} already exists: {item_id}")
