"""
Encounter — a time-bounded templated event with its own trigger and outcome model.

An Encounter is the reusable template. Triggering one creates an
EncounterInstance that lives for `turn_based.duration` turns and is projected
into ordinary Interactions so characters can act on it like anything else.
"""

import random
from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field

from sim_kernel.behavior.selection import weighted_select
from sim_kernel.models.character import Character
from sim_kernel.models.interaction import (
    Branch,
    Effect,
    Interaction,
    InteractionType,
    Requirement,
    TurnBased,
)


class CharacterStateCondition(BaseModel):
    """True when the character's property is at or below `value`."""

    property: Literal["health", "energy", "mood"]
    value: float


# --- Triggers (tagged on "type") ---

class ProbabilityTrigger(BaseModel):
    type: Literal["probability"] = "probability"
    probability: float = Field(ge=0.0, le=1.0)


class LocationTrigger(BaseModel):
    type: Literal["location"] = "location"
    node_id: str


class TimeTrigger(BaseModel):
    type: Literal["time"] = "time"
    turn: int = Field(ge=0)


class InteractionTrigger(BaseModel):
    type: Literal["interaction"] = "interaction"
    interaction_id: str


class ConditionTrigger(BaseModel):
    type: Literal["condition"] = "condition"
    condition: CharacterStateCondition


Trigger = Annotated[
    Union[
        ProbabilityTrigger,
        LocationTrigger,
        TimeTrigger,
        InteractionTrigger,
        ConditionTrigger,
    ],
    Field(discriminator="type"),
]


# --- Prerequisites (tagged on "type") ---

class AttributePrerequisite(BaseModel):
    type: Literal["attribute"] = "attribute"
    attribute: str
    value: float


class SkillPrerequisite(BaseModel):
    type: Literal["skill"] = "skill"
    skill: str
    value: float


class LevelPrerequisite(BaseModel):
    type: Literal["level"] = "level"
    value: int = Field(ge=1)


class ItemPrerequisite(BaseModel):
    type: Literal["item"] = "item"
    item_id: str


Prerequisite = Annotated[
    Union[
        AttributePrerequisite,
        SkillPrerequisite,
        LevelPrerequisite,
        ItemPrerequisite,
    ],
    Field(discriminator="type"),
]


class EncounterOutcome(BaseModel):
    id: str
    description: str = ""
    probability: float = Field(ge=0, default=1.0)
    effects: List[Effect] = []
    condition: Optional[CharacterStateCondition] = None
    turn_duration: Optional[int] = None


class EncounterContext(BaseModel):
    """What the trigger and outcome checks are evaluated against."""

    current_turn: int = Field(ge=0, default=0)
    node_id: Optional[str] = None
    character: Optional[Character] = None
    last_interaction_id: Optional[str] = None
    participants: List[str] = []            # Character ids


class ResolvedOutcome(BaseModel):
    outcome_id: str
    description: str = ""
    effects: List[Effect] = []
    encounter_id: str
    resolved_at: int
    turn_duration: int


def _condition_met(condition: CharacterStateCondition, context: EncounterContext) -> bool:
    if context.character is None:
        return False
    return getattr(context.character, condition.property) <= condition.value


def _prerequisite_met(prereq: Prerequisite, character: Character) -> bool:
    if isinstance(prereq, AttributePrerequisite):
        return character.attributes.get(prereq.attribute, 0) >= prereq.value
    if isinstance(prereq, SkillPrerequisite):
        return character.skills.get(prereq.skill, 0) >= prereq.value
    if isinstance(prereq, LevelPrerequisite):
        return character.level >= prereq.value
    if isinstance(prereq, ItemPrerequisite):
        return prereq.item_id in character.inventory
    return True


def _trigger_met(trigger: Trigger, context: EncounterContext, rng: random.Random) -> bool:
    if isinstance(trigger, ProbabilityTrigger):
        return rng.random() < trigger.probability
    if isinstance(trigger, LocationTrigger):
        return context.node_id == trigger.node_id
    if isinstance(trigger, TimeTrigger):
        return context.current_turn >= trigger.turn
    if isinstance(trigger, InteractionTrigger):
        return context.last_interaction_id == trigger.interaction_id
    if isinstance(trigger, ConditionTrigger):
        return _condition_met(trigger.condition, context)
    return True


def _prerequisite_to_requirement(prereq: Prerequisite) -> Optional[Requirement]:
    if isinstance(prereq, AttributePrerequisite):
        return Requirement(attr=prereq.attribute, min=prereq.value)
    if isinstance(prereq, SkillPrerequisite):
        return Requirement(attr=prereq.skill, min=prereq.value)
    if isinstance(prereq, LevelPrerequisite):
        return Requirement(attr="level", min=prereq.value)
    # Item prerequisites have no attribute-threshold equivalent
    return None


class Encounter(BaseModel):
    """Encounter template plus its trigger bookkeeping."""

    id: str
    name: str
    description: str = ""
    type: str = "combat"                    # "combat" | "social" | "exploration" | "puzzle" | "environmental"
    difficulty: str = "medium"              # "trivial" | "easy" | "medium" | "hard" | "deadly"
    challenge_rating: float = 1
    turn_based: TurnBased = TurnBased()
    triggers: List[Trigger] = []
    prerequisites: List[Prerequisite] = []
    outcomes: List[EncounterOutcome] = []
    participants: List[str] = []
    rewards: List[dict] = []
    cooldown: int = Field(ge=0, default=0)  # In turns
    repeatable: bool = False
    node_restrictions: List[str] = []
    tags: List[str] = []
    template_id: Optional[str] = None

    last_triggered: int = Field(ge=0, default=0)  # A fresh encounter counts as fired at turn 0
    times_triggered: int = 0
    created_at: Optional[datetime] = None

    def is_available(self, current_turn: int) -> bool:
        return current_turn - self.last_triggered >= self.cooldown

    def can_trigger(
        self,
        context: EncounterContext,
        rng: Optional[random.Random] = None,
    ) -> bool:
        """
        True iff every prerequisite holds for the context character, every
        trigger fires, the cooldown has elapsed and the node is allowed.
        """
        rng = rng or random.Random()

        if not self.is_available(context.current_turn):
            return False

        if self.node_restrictions and context.node_id not in self.node_restrictions:
            return False

        if self.prerequisites:
            if context.character is None:
                return False
            if not all(_prerequisite_met(p, context.character) for p in self.prerequisites):
                return False

        return all(_trigger_met(t, context, rng) for t in self.triggers)

    def mark_triggered(self, turn: int) -> None:
        self.last_triggered = turn
        self.times_triggered += 1

    def resolve_outcome(
        self,
        context: EncounterContext,
        rng: Optional[random.Random] = None,
    ) -> Optional[ResolvedOutcome]:
        """Weighted single-winner draw over the outcomes whose conditions hold."""
        candidates = [
            o for o in self.outcomes
            if o.condition is None or _condition_met(o.condition, context)
        ]
        if not candidates:
            return None

        chosen = weighted_select(candidates, lambda o: o.probability, rng)
        return ResolvedOutcome(
            outcome_id=chosen.id,
            description=chosen.description,
            effects=chosen.effects,
            encounter_id=self.id,
            resolved_at=context.current_turn,
            turn_duration=chosen.turn_duration or self.turn_based.duration,
        )

    def generate_interactions(self) -> List[Interaction]:
        """Project this encounter into an Interaction with one branch per outcome."""
        requirements = [
            r for r in (_prerequisite_to_requirement(p) for p in self.prerequisites)
            if r is not None
        ]
        branches = [
            Branch(
                id=outcome.id,
                text=outcome.description or f"Outcome {index + 1}",
                probability=outcome.probability,
                effects=outcome.effects,
            )
            for index, outcome in enumerate(self.outcomes)
        ]
        return [
            Interaction(
                id=f"encounter_{self.id}_base",
                name=f"Encounter: {self.name}",
                description=self.description,
                type=InteractionType.ENCOUNTER,
                requirements=requirements,
                branches=branches,
                participants=list(self.participants),
                cooldown=self.cooldown,
                repeatable=self.repeatable,
                turn_based=self.turn_based.model_copy(),
                source_encounter_id=self.id,
            )
        ]

    def to_template(self) -> dict:
        """Reusable definition without runtime bookkeeping."""
        template = self.model_dump(
            mode="json",
            exclude={"id", "last_triggered", "times_triggered", "created_at"},
        )
        template["template_id"] = self.template_id or self.id
        return template

    @classmethod
    def from_template(
        cls, template: dict, overrides: Optional[dict] = None
    ) -> "Encounter":
        data = {k: v for k, v in template.items() if k != "id"}
        data.update(overrides or {})
        data.setdefault("id", f"enc_{uuid4().hex[:12]}")
        for key in ("last_triggered", "times_triggered"):
            data.pop(key, None)
        data["created_at"] = datetime.utcnow()
        return cls.model_validate(data)


class EncounterInstance(BaseModel):
    """A running (or finished) encounter. Lives in exactly one of active / history."""

    id: str
    encounter_id: str
    status: Literal["active", "completed", "ended"] = "active"
    start_turn: int = 0
    end_turn: Optional[int] = None
    current_turn: int = 0
    max_turns: int = Field(ge=1)
    context: EncounterContext = EncounterContext()
    generated_interactions: List[Interaction] = []
    outcome: Optional[ResolvedOutcome] = None
    end_reason: Optional[str] = None
    history: List[dict] = []


class EncounterTurnResult(BaseModel):
    type: Literal["encounter_turn", "encounter_completed"]
    instance_id: str
    encounter_id: str
    turn: int
    global_turn: int
    outcome: Optional[ResolvedOutcome] = None


class EncounterStatistics(BaseModel):
    total: int = 0
    by_type: Dict[str, int] = {}
    by_difficulty: Dict[str, int] = {}
    active: int = 0
    completed: int = 0
    average_duration: float = 0.0           # Turns, over finished instances
