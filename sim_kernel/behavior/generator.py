"""
Behavior Generator — decides what one character does in one turn.

Perceive → Decide → Act → Learn:
  1. Collect the interactions reachable from the character's node that are
     off cooldown and whose requirements the character meets.
  2. Weighted single-winner choice biased by resonance, coherence, memory
     and active goals.
  3. Resolve the chosen interaction through the InteractionResolver.
  4. Evolve the character, remember the outcome and log a history event.

The world state passed in is read-only here. Callers fold the returned
BehaviorResult back into their own state.
"""

import logging
import random
from typing import Iterable, List, Optional

from sim_kernel.behavior.resolver import InteractionResolver, resonance
from sim_kernel.behavior.selection import weighted_select
from sim_kernel.errors import (
    InvalidCharacterError,
    NoValidNodeError,
    RuntimeProcessingError,
)
from sim_kernel.history.generator import HistoryGenerator
from sim_kernel.learning.evolution import EvolutionService
from sim_kernel.learning.memory import MemoryService
from sim_kernel.models.behavior import BehaviorResult
from sim_kernel.models.character import Character
from sim_kernel.models.interaction import Interaction
from sim_kernel.models.simulation import SimulationConfig
from sim_kernel.models.world import WorldState

logger = logging.getLogger(__name__)


class BehaviorGenerator:

    def __init__(
        self,
        resolver: Optional[InteractionResolver] = None,
        memory: Optional[MemoryService] = None,
        evolution: Optional[EvolutionService] = None,
        history: Optional[HistoryGenerator] = None,
        config: Optional[SimulationConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or SimulationConfig()
        self._rng = rng or random.Random(self.config.seed)
        self.resolver = resolver or InteractionResolver(self.config, self._rng)
        self.memory = memory or MemoryService(self.config)
        self.evolution = evolution or EvolutionService()
        self.history = history or HistoryGenerator(self.config, self._rng)

    # --- Perceive ---

    def available_interactions(
        self,
        character: Character,
        world_state: WorldState,
        extra_interactions: Iterable[Interaction] = (),
    ) -> List[Interaction]:
        if not isinstance(character, Character):
            raise InvalidCharacterError(
                f"Expected a Character, got {type(character).__name__}"
            )

        node = world_state.get_node(character.current_node_id)
        if node is None:
            raise NoValidNodeError(character.id, character.current_node_id)

        candidates = [
            i for i in (world_state.get_interaction(iid) for iid in node.interactions)
            if i is not None
        ]
        candidates.extend(extra_interactions)

        return [
            i for i in candidates
            if i.is_available(world_state.time) and i.meets_requirements(character)
        ]

    # --- Decide ---

    def interaction_weight(
        self, character: Character, interaction: Interaction, current_turn: int
    ) -> float:
        valid_branches = [b for b in interaction.branches if b.is_valid_for(character)]
        required_energy = valid_branches[0].required_energy if valid_branches else None

        weight = resonance(character, required_energy)
        weight += character.consciousness.coherence * self.config.coherence_multiplier
        weight += self.memory.get_memory_influence(character, interaction, current_turn)
        if any(goal_id in interaction.name for goal_id in character.active_goal_ids()):
            weight += self.config.goal_match_bonus
        return max(0.0, weight)

    def choose_interaction(
        self,
        character: Character,
        interactions: List[Interaction],
        current_turn: int,
    ) -> Interaction:
        return weighted_select(
            interactions,
            lambda i: self.interaction_weight(character, i, current_turn),
            self._rng,
        )

    # --- Full pipeline ---

    def generate(
        self,
        character: Character,
        world_state: WorldState,
        extra_interactions: Iterable[Interaction] = (),
    ) -> Optional[BehaviorResult]:
        """
        Produce at most one action for the character. Returns None when
        nothing is available (an idle turn, not an error).
        """
        available = self.available_interactions(character, world_state, extra_interactions)
        if not available:
            logger.debug("No available interactions for %s at turn %d", character.id, world_state.time)
            return None

        interaction = self.choose_interaction(character, available, world_state.time)
        branch, resolution = self.resolver.resolve(character, interaction)

        try:
            evolved = self.evolution.evolve_from_interaction(
                character, interaction, resolution.outcome
            )
            evolved = self.memory.update_memory(
                evolved, interaction.id, resolution.outcome, world_state.time
            )
        except Exception as exc:
            raise RuntimeProcessingError(
                f"Evolution failed for {character.id}: {exc}"
            ) from exc

        try:
            event = self.history.log_event(
                character,
                interaction,
                resolution,
                timestamp=world_state.time,
                node_id=character.current_node_id,
            )
        except Exception as exc:
            raise RuntimeProcessingError(
                f"History logging failed for {character.id}: {exc}"
            ) from exc

        return BehaviorResult(
            interaction=interaction,
            branch_id=branch.id if branch else None,
            resolution=resolution,
            character=evolved,
            event=event,
        )
