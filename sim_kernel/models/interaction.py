"""Interaction — a parameterized action with requirements, resolvable branches and effects."""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from sim_kernel.models.character import Character


class InteractionType(str, Enum):
    ECONOMIC = "economic"
    RESOURCE_GATHERING = "resource_gathering"
    EXPLORATION = "exploration"
    SOCIAL = "social"
    COMBAT = "combat"
    CRAFTING = "crafting"
    ENCOUNTER = "encounter"     # Projected from an active Encounter


# --- Effects (tagged on "type") ---

class AttributeEffect(BaseModel):
    type: Literal["attribute"] = "attribute"
    target: str                             # Attribute name
    value: float


class ResourceEffect(BaseModel):
    type: Literal["resource"] = "resource"
    target: str                             # Resource name in WorldState.resources
    value: float


class InfluenceEffect(BaseModel):
    type: Literal["influence"] = "influence"
    value: float


class PrestigeEffect(BaseModel):
    type: Literal["prestige"] = "prestige"
    value: float


class RelationshipEffect(BaseModel):
    type: Literal["relationship"] = "relationship"
    target: str                             # Other character id
    value: float


Effect = Annotated[
    Union[
        AttributeEffect,
        ResourceEffect,
        InfluenceEffect,
        PrestigeEffect,
        RelationshipEffect,
    ],
    Field(discriminator="type"),
]


class Requirement(BaseModel):
    """Minimum value of an attribute, skill or level."""

    attr: str
    min: float = 0


class BranchCheck(BaseModel):
    """The d20 check that resolves a branch."""

    attr: str = "charisma"
    dc: int = Field(ge=1, default=10)


class Branch(BaseModel):
    id: str
    text: str = ""
    required_energy: Optional[float] = None
    check: BranchCheck = BranchCheck()
    condition: Optional[Requirement] = None  # Gate: branch only valid when met
    probability: float = Field(ge=0, default=1.0)
    effects: List[Effect] = []

    def is_valid_for(self, character: Character) -> bool:
        if self.condition is None:
            return True
        return character.stat(self.condition.attr) >= self.condition.min


class InteractionContext(BaseModel):
    """Where an interaction can happen. Empty node_types means everywhere."""

    node_types: List[str] = []


class TurnBased(BaseModel):
    """Turn-based timing block shared by encounters and the interactions they generate."""

    duration: int = Field(ge=1, default=1)
    initiative: str = "random"              # "random" | "attribute" | "fixed"
    timing: str = "immediate"               # "immediate" | "delayed" | "conditional"
    sequencing: str = "simultaneous"        # "simultaneous" | "sequential"


class Interaction(BaseModel):
    id: str
    name: str
    description: str = ""
    type: InteractionType
    requirements: List[Requirement] = []
    branches: List[Branch] = []
    effects: List[Effect] = []
    context: InteractionContext = InteractionContext()
    participants: List[str] = []
    modifiers: dict = {}
    cooldown: int = Field(ge=0, default=0)  # Turns before reusable
    repeatable: bool = False
    last_triggered: Optional[int] = None    # Turn of last successful use
    turn_based: Optional[TurnBased] = None
    source_encounter_id: Optional[str] = None

    def is_available(self, current_turn: int) -> bool:
        """Cooldown check in turn units."""
        if self.repeatable or self.last_triggered is None:
            return True
        return current_turn - self.last_triggered >= self.cooldown

    def meets_requirements(self, character: Character) -> bool:
        return all(character.stat(req.attr) >= req.min for req in self.requirements)

    def reachable_from(self, node_type: str) -> bool:
        return not self.context.node_types or node_type in self.context.node_types
