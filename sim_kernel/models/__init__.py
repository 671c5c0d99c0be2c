"""SIM Kernel data models."""

from sim_kernel.models.behavior import BehaviorResult, Resolution
from sim_kernel.models.character import (
    ATTRIBUTE_NAMES,
    Character,
    Consciousness,
    Goal,
    MemoryEntry,
    attribute_modifier,
)
from sim_kernel.models.encounter import (
    AttributePrerequisite,
    CharacterStateCondition,
    ConditionTrigger,
    Encounter,
    EncounterContext,
    EncounterInstance,
    EncounterOutcome,
    EncounterStatistics,
    EncounterTurnResult,
    InteractionTrigger,
    ItemPrerequisite,
    LevelPrerequisite,
    LocationTrigger,
    ProbabilityTrigger,
    ResolvedOutcome,
    SkillPrerequisite,
    TimeTrigger,
)
from sim_kernel.models.history import HistoryEvent
from sim_kernel.models.interaction import (
    AttributeEffect,
    Branch,
    BranchCheck,
    InfluenceEffect,
    Interaction,
    InteractionContext,
    InteractionType,
    PrestigeEffect,
    RelationshipEffect,
    Requirement,
    ResourceEffect,
    TurnBased,
)
from sim_kernel.models.simulation import (
    CharacterAction,
    SimulationConfig,
    TurnChanges,
    TurnResult,
    TurnSummary,
)
from sim_kernel.models.validation import ValidationResult
from sim_kernel.models.world import (
    Dimensions,
    Group,
    Item,
    Node,
    WorldConfig,
    WorldEvent,
    WorldState,
)

__all__ = [
    "ATTRIBUTE_NAMES",
    "AttributeEffect",
    "AttributePrerequisite",
    "BehaviorResult",
    "Branch",
    "BranchCheck",
    "Character",
    "CharacterAction",
    "CharacterStateCondition",
    "ConditionTrigger",
    "Consciousness",
    "Dimensions",
    "Encounter",
    "EncounterContext",
    "EncounterInstance",
    "EncounterOutcome",
    "EncounterStatistics",
    "EncounterTurnResult",
    "Goal",
    "Group",
    "HistoryEvent",
    "InfluenceEffect",
    "Interaction",
    "InteractionContext",
    "InteractionTrigger",
    "InteractionType",
    "Item",
    "ItemPrerequisite",
    "LevelPrerequisite",
    "LocationTrigger",
    "MemoryEntry",
    "Node",
    "PrestigeEffect",
    "ProbabilityTrigger",
    "RelationshipEffect",
    "Requirement",
    "Resolution",
    "ResolvedOutcome",
    "ResourceEffect",
    "SimulationConfig",
    "SkillPrerequisite",
    "TimeTrigger",
    "TurnBased",
    "TurnChanges",
    "TurnResult",
    "TurnSummary",
    "ValidationResult",
    "WorldConfig",
    "WorldEvent",
    "WorldState",
    "attribute_modifier",
]
