"""
Evolution Service — post-outcome drift of a character's traits.

Every method returns a new Character; the input is never mutated.
"""

from typing import Optional

from sim_kernel.learning.memory import require_character
from sim_kernel.models.character import Character
from sim_kernel.models.interaction import (
    InfluenceEffect,
    Interaction,
    InteractionType,
    PrestigeEffect,
)

GOLDEN_RATIO = 1.618
MAX_SCORE = 20.0

# Interaction type -> attribute trained by succeeding at it
ATTRIBUTE_FOR_TYPE = {
    InteractionType.SOCIAL.value: "charisma",
    InteractionType.COMBAT.value: "strength",
    InteractionType.ECONOMIC.value: "intelligence",
    InteractionType.CRAFTING.value: "dexterity",
    InteractionType.EXPLORATION.value: "wisdom",
    InteractionType.RESOURCE_GATHERING.value: "constitution",
}

# Interaction type -> skill trained by attempting it
SKILL_FOR_TYPE = {
    InteractionType.SOCIAL.value: "persuasion",
    InteractionType.COMBAT.value: "combat",
    InteractionType.ECONOMIC.value: "bargaining",
    InteractionType.CRAFTING.value: "crafting",
    InteractionType.EXPLORATION.value: "survival",
    InteractionType.RESOURCE_GATHERING.value: "gathering",
}


class EvolutionService:

    def calculate_learning_rate(self, coherence: float, success: bool) -> float:
        base = 0.1 if success else 0.02
        return base * (1 + coherence * 0.5) * (GOLDEN_RATIO if success else 1)

    def select_attribute(self, interaction_type: Optional[str]) -> str:
        return ATTRIBUTE_FOR_TYPE.get(interaction_type or "", "wisdom")

    def evolve_from_interaction(
        self, character: Character, interaction: Interaction, outcome: str
    ) -> Character:
        """Apply learning from one resolved interaction."""
        require_character(character)

        success = outcome == "positive"
        rate = self.calculate_learning_rate(character.consciousness.coherence, success)
        interaction_type = interaction.type.value

        attributes = dict(character.attributes)
        if success:
            attr = self.select_attribute(interaction_type)
            attributes[attr] = min(MAX_SCORE, attributes.get(attr, 10.0) + rate)

        skills = dict(character.skills)
        skill = SKILL_FOR_TYPE.get(interaction_type)
        if skill and skill in skills:
            skills[skill] = min(MAX_SCORE, skills[skill] + rate)

        relationships = dict(character.relationships)
        for participant in interaction.participants:
            if participant == character.id:
                continue
            delta = self._relationship_delta(interaction.type, rate)
            current = relationships.get(participant, 0.0)
            relationships[participant] = max(-1.0, min(1.0, current + delta))

        influence = character.influence
        if any(isinstance(e, InfluenceEffect) for e in interaction.effects):
            influence += rate * (2 if success else 1)

        prestige = character.prestige
        if any(isinstance(e, PrestigeEffect) for e in interaction.effects):
            prestige += rate * (1.5 if success else 0.5)

        return character.model_copy(
            deep=True,
            update={
                "attributes": attributes,
                "skills": skills,
                "relationships": relationships,
                "influence": influence,
                "prestige": prestige,
                "last_interaction_type": interaction_type,
            },
        )

    def evolve_over_time(
        self,
        character: Character,
        turns_elapsed: int = 1,
        energy_decay: float = 0.0,
    ) -> Character:
        """Passive growth of the last-trained attribute plus energy decay."""
        require_character(character)

        attributes = dict(character.attributes)
        passive_rate = 0.01 * character.consciousness.coherence
        if passive_rate > 0:
            attr = self.select_attribute(character.last_interaction_type)
            if attr in attributes:
                attributes[attr] = min(MAX_SCORE, attributes[attr] + passive_rate * turns_elapsed)

        energy = max(0.0, character.energy - energy_decay * turns_elapsed)
        return character.model_copy(
            deep=True, update={"attributes": attributes, "energy": energy}
        )

    @staticmethod
    def _relationship_delta(interaction_type: InteractionType, rate: float) -> float:
        if interaction_type in (InteractionType.SOCIAL, InteractionType.ECONOMIC):
            return rate * 0.5
        if interaction_type == InteractionType.COMBAT:
            return -rate * 0.5
        return 0.0
