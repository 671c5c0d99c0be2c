"""
Memory Service — turns a character's past decisions into a selection bias.

Memories fade with age (in turns); higher coherence slows the fade. A recent
failure vetoes an interaction outright, otherwise past outcomes add a small
trust score in [-0.5, 0.5].
"""

import math
from typing import List, Optional

from sim_kernel.errors import InvalidCharacterError
from sim_kernel.models.character import Character, MemoryEntry
from sim_kernel.models.interaction import Interaction
from sim_kernel.models.simulation import SimulationConfig


class MemoryService:

    def __init__(self, config: Optional[SimulationConfig] = None):
        self.config = config or SimulationConfig()

    def retention_strength(
        self, character: Character, entry: MemoryEntry, current_turn: int
    ) -> float:
        age = max(0, current_turn - entry.turn)
        base = 0.7 if entry.outcome == "positive" else 0.3
        decay = math.exp(-age / (character.consciousness.coherence * 100 + 1))
        return max(0.0, base * decay)

    def query_memory(
        self,
        character: Character,
        current_turn: int,
        interaction_id: Optional[str] = None,
        outcome: Optional[str] = None,
        min_retention: float = 0.0,
    ) -> List[MemoryEntry]:
        require_character(character)
        return [
            entry for entry in character.memory
            if (interaction_id is None or entry.interaction_id == interaction_id)
            and (outcome is None or entry.outcome == outcome)
            and self.retention_strength(character, entry, current_turn) >= min_retention
        ]

    def update_memory(
        self,
        character: Character,
        interaction_id: str,
        outcome: str,
        current_turn: int,
    ) -> Character:
        """Return a copy of the character with the decision remembered and faded memories pruned."""
        require_character(character)
        memory = character.memory + [
            MemoryEntry(interaction_id=interaction_id, outcome=outcome, turn=current_turn)
        ]
        kept = [
            entry for entry in memory
            if self.retention_strength(character, entry, current_turn)
            >= self.config.memory_retention_threshold
        ]
        return character.model_copy(update={"memory": kept})

    def get_memory_influence(
        self, character: Character, interaction: Interaction, current_turn: int
    ) -> float:
        past = self.query_memory(character, current_turn, interaction_id=interaction.id)
        if not past:
            return 0.0

        recent_failure = any(
            e.outcome == "negative"
            and current_turn - e.turn < self.config.memory_failure_window
            for e in past
        )
        if recent_failure:
            return -1.0

        trust = sum(
            (0.5 if e.outcome == "positive" else -0.5)
            * self.retention_strength(character, e, current_turn)
            for e in past
        )
        return max(-0.5, min(0.5, trust))


def require_character(character: Character) -> None:
    if not isinstance(character, Character):
        raise InvalidCharacterError(f"Expected a Character, got {type(character).__name__}")
