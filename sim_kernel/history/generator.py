"""
History Generator — append-only log of resolved decisions with narrative text.

Behavioral Contract:
- Append-only. Recorded events are never modified or removed, except by clear().
- Significance scales with the character's coherence; trivial events are skipped.
- Timestamps are world turns, not wall-clock time.
"""

import logging
import random
from typing import List, Optional
from uuid import uuid4

from sim_kernel.errors import InvalidCharacterError
from sim_kernel.models.behavior import Resolution
from sim_kernel.models.character import Character
from sim_kernel.models.history import HistoryEvent
from sim_kernel.models.interaction import Interaction, InteractionType
from sim_kernel.models.simulation import SimulationConfig

logger = logging.getLogger(__name__)

NARRATIVE_DESCRIPTORS = ("bravely", "cautiously", "cleverly", "boldly")


class HistoryGenerator:
    """In-process history log. One per simulation session."""

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or SimulationConfig()
        self._rng = rng or random.Random(self.config.seed)
        self._events: List[HistoryEvent] = []

    def log_event(
        self,
        character: Character,
        interaction: Interaction,
        resolution: Resolution,
        timestamp: int,
        node_id: Optional[str] = None,
    ) -> Optional[HistoryEvent]:
        """
        Record one resolved decision. Returns None when the event is below the
        significance floor.
        """
        if not isinstance(character, Character) or not isinstance(interaction, Interaction):
            raise InvalidCharacterError("history events need a Character and an Interaction")

        significance = self.calculate_significance(character, resolution.outcome)
        if significance < self.config.history_significance_floor:
            logger.debug(
                "Skipping trivial event for %s (significance %.2f)",
                character.id, significance,
            )
            return None

        event = HistoryEvent(
            id=f"evt_{uuid4().hex[:12]}",
            timestamp=timestamp,
            character_id=character.id,
            character_name=character.name,
            interaction_id=interaction.id,
            interaction_name=interaction.name,
            type=interaction.type.value,
            outcome=resolution.outcome,
            roll=resolution.roll,
            dc=resolution.dc,
            node_id=node_id or character.current_node_id,
            significance=significance,
            description=self.generate_description(character, interaction, resolution.outcome),
        )
        self._events.append(event)
        return event

    def calculate_significance(self, character: Character, outcome: str) -> float:
        base = 0.5 if outcome == "positive" else 0.2
        return min(1.0, base * (1 + character.consciousness.coherence * 2))

    def generate_description(
        self, character: Character, interaction: Interaction, outcome: str
    ) -> str:
        success = outcome == "positive"
        descriptor = self._rng.choice(NARRATIVE_DESCRIPTORS)

        if interaction.type == InteractionType.SOCIAL:
            return (
                f"{character.name} {descriptor} engaged in a "
                f"{'successful' if success else 'failed'} conversation about "
                f"{interaction.name} with a charisma modifier of {character.modifier('charisma')}."
            )
        if interaction.type == InteractionType.ENCOUNTER:
            return (
                f"{character.name} experienced a {'notable' if success else 'minor'} "
                f"{interaction.name} event."
            )
        return (
            f"{character.name} {descriptor} attempted {interaction.name} "
            f"and {'succeeded' if success else 'struggled'}."
        )

    def get_events(
        self,
        character_id: Optional[str] = None,
        interaction_id: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[HistoryEvent]:
        """Query the log. Results are in append order."""
        events = [
            e for e in self._events
            if (character_id is None or e.character_id == character_id)
            and (interaction_id is None or e.interaction_id == interaction_id)
            and (since is None or e.timestamp >= since)
        ]
        if limit is not None:
            events = events[-limit:]
        return events

    def generate_narrative(self, character_id: str) -> str:
        """Join a character's event descriptions into a chronicle."""
        return " ".join(e.description for e in self.get_events(character_id=character_id))

    def count(self) -> int:
        return len(self._events)

    def clear(self) -> None:
        self._events = []
