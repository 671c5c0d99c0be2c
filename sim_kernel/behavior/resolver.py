"""
Interaction Resolver — picks a branch of a chosen interaction and resolves it.

Resolution is a d20 check: roll = d20 + modifier(check.attr) against check.dc.
The resolver never touches world state; it only reports what should happen.
"""

import math
import random
from typing import List, Optional, Tuple

from sim_kernel.behavior.selection import weighted_select
from sim_kernel.learning.memory import require_character
from sim_kernel.models.behavior import Resolution
from sim_kernel.models.character import Character
from sim_kernel.models.interaction import Branch, BranchCheck, Effect, Interaction
from sim_kernel.models.simulation import SimulationConfig


def resonance(character: Character, required_energy: Optional[float] = None) -> float:
    """
    Gaussian-shaped similarity between the character's energy proxy and a
    required energy, centered on the character's consciousness frequency.
    """
    proxy = character.energy_proxy()
    f = character.consciousness.frequency
    diff = proxy - (proxy if required_energy is None else required_energy)
    return math.exp(-((diff - f) ** 2) / (2 * f))


class InteractionResolver:

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or SimulationConfig()
        self._rng = rng or random.Random(self.config.seed)

    def select_branch(
        self, character: Character, interaction: Interaction
    ) -> Optional[Branch]:
        """
        Condition-gated, weighted branch choice. Weight is the branch's
        probability scaled by resonance and coherence.
        """
        valid = [b for b in interaction.branches if b.is_valid_for(character)]
        if not valid:
            return None
        if len(valid) == 1:
            return valid[0]

        coherence_bonus = character.consciousness.coherence * self.config.coherence_multiplier
        return weighted_select(
            valid,
            lambda b: b.probability * (1 + resonance(character, b.required_energy) + coherence_bonus),
            self._rng,
        )

    def roll_check(self, character: Character, check: BranchCheck) -> Tuple[int, bool]:
        roll = self._rng.randint(1, 20) + character.modifier(check.attr)
        return roll, roll >= check.dc

    def resolve(
        self,
        character: Character,
        interaction: Interaction,
        branch_id: Optional[str] = None,
    ) -> Tuple[Optional[Branch], Resolution]:
        """
        Resolve the interaction for the character. A requested branch id wins
        when it exists; otherwise a branch is selected. Interactions without
        branches resolve against the default charisma check; interactions
        whose branches are all gated out fail without a roll.
        """
        require_character(character)

        branch = None
        if branch_id is not None:
            branch = next((b for b in interaction.branches if b.id == branch_id), None)
        if branch is None:
            branch = self.select_branch(character, interaction)

        if branch is None and interaction.branches:
            # Every branch is gated out: nothing is rolled and nothing applies
            return None, Resolution(
                outcome="negative", success=False, roll=0, dc=BranchCheck().dc
            )

        check = branch.check if branch else BranchCheck()
        roll, success = self.roll_check(character, check)

        effects: List[Effect] = []
        if success:
            effects = list(interaction.effects) + (list(branch.effects) if branch else [])

        resolution = Resolution(
            outcome="positive" if success else "negative",
            success=success,
            roll=roll,
            dc=check.dc,
            effects=effects,
        )
        return branch, resolution
