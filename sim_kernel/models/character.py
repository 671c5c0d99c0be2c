"""Character — an inhabitant of the world whose behavior the engine simulates."""

import math
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

ATTRIBUTE_NAMES = (
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
)


def attribute_modifier(score: float) -> int:
    """D20-style modifier for an attribute score."""
    return math.floor((score - 10) / 2)


class Consciousness(BaseModel):
    """Biases behavior selection. Frequency centers resonance, coherence rewards optimal picks."""

    frequency: float = Field(gt=0, default=40.0)
    coherence: float = Field(ge=0.0, le=1.0, default=0.7)


class Goal(BaseModel):
    id: str
    description: str = ""
    active: bool = True


class MemoryEntry(BaseModel):
    """One remembered decision. Turn is the world time at which it happened."""

    interaction_id: str
    outcome: str                            # "positive" | "negative"
    turn: int = Field(ge=0)


def _default_attributes() -> Dict[str, float]:
    return {name: 10.0 for name in ATTRIBUTE_NAMES}


class Character(BaseModel):
    """A simulated character and its numeric stat block."""

    id: str
    name: str
    level: int = Field(ge=1, default=1)
    attributes: Dict[str, float] = Field(default_factory=_default_attributes)
    consciousness: Consciousness = Consciousness()
    personality: Dict[str, float] = {}      # e.g., {"aggression": 0.4}
    skills: Dict[str, float] = {}
    goals: List[Goal] = []
    assigned_interactions: List[str] = []
    current_node_id: Optional[str] = None

    energy: float = Field(ge=0, le=100, default=100.0)
    health: float = Field(ge=0, le=100, default=100.0)
    mood: float = Field(ge=0, le=100, default=80.0)

    influence: float = 0.0
    prestige: float = 0.0
    relationships: Dict[str, float] = {}    # character id -> affinity in [-1, 1]
    inventory: List[str] = []               # item ids
    memory: List[MemoryEntry] = []
    last_interaction_type: Optional[str] = None

    def modifier(self, attr: str) -> int:
        """Modifier for an attribute; unknown attributes count as 0."""
        score = self.attributes.get(attr.lower())
        if score is None:
            return 0
        return attribute_modifier(score)

    def energy_proxy(self) -> float:
        """Cognitive energy: mean of INT and WIS modifiers on a base of 10."""
        return (self.modifier("intelligence") + self.modifier("wisdom")) / 2 + 10

    def stat(self, name: str) -> float:
        """Look a named value up in attributes, then skills, then level."""
        if name in self.attributes:
            return self.attributes[name]
        if name in self.skills:
            return self.skills[name]
        if name == "level":
            return float(self.level)
        return 0.0

    def active_goal_ids(self) -> List[str]:
        return [g.id for g in self.goals if g.active]
