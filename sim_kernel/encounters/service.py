"""
Encounter Service — registry and lifecycle of time-bounded encounters.

Holds the encounter templates, the active instances and the finished
instance history. An instance is always in exactly one of active / history.

Lifecycle:
  trigger_encounter → ACTIVE → (process_turn × duration) → COMPLETED
                             → end_encounter             → ENDED
"""

import logging
import random
from datetime import datetime
from typing import Dict, List, Optional, Union
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from sim_kernel.errors import EncounterNotFoundError, InvalidInputError
from sim_kernel.models.encounter import (
    Encounter,
    EncounterContext,
    EncounterInstance,
    EncounterStatistics,
    EncounterTurnResult,
)
from sim_kernel.models.interaction import Interaction
from sim_kernel.models.simulation import SimulationConfig
from sim_kernel.persistence.store import PersistenceBackend

logger = logging.getLogger(__name__)


def _validate(data: dict, label: str = "encounter") -> Encounter:
    try:
        return Encounter.model_validate(data)
    except PydanticValidationError as exc:
        raise InvalidInputError(f"Invalid {label}: {exc}") from exc


class EncounterService:

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        rng: Optional[random.Random] = None,
        persistence: Optional[PersistenceBackend] = None,
    ):
        self.config = config or SimulationConfig()
        self._rng = rng or random.Random(self.config.seed)
        self.persistence = persistence
        self._encounters: Dict[str, Encounter] = {}
        self._active: Dict[str, EncounterInstance] = {}
        self._history: List[EncounterInstance] = []

    # --- Registry ---

    def create_encounter(self, data: Union[Encounter, dict]) -> Encounter:
        if isinstance(data, Encounter):
            encounter = data
        elif isinstance(data, dict):
            payload = dict(data)
            payload.setdefault("id", f"enc_{uuid4().hex[:12]}")
            encounter = _validate(payload)
        else:
            raise InvalidInputError(
                f"Encounter data must be a mapping, got {type(data).__name__}"
            )

        if encounter.created_at is None:
            encounter.created_at = datetime.utcnow()
        self._encounters[encounter.id] = encounter
        return encounter

    def get_encounter(self, encounter_id: str) -> Encounter:
        encounter = self._encounters.get(encounter_id)
        if encounter is None:
            raise EncounterNotFoundError(encounter_id)
        return encounter

    def get_all_encounters(self) -> List[Encounter]:
        return list(self._encounters.values())

    def get_encounters_by_type(self, encounter_type: str) -> List[Encounter]:
        return [e for e in self._encounters.values() if e.type == encounter_type]

    def get_available_encounters(
        self, node_id: str, context: Optional[EncounterContext] = None
    ) -> List[Encounter]:
        """Encounters that could trigger at this node right now."""
        context = (context or EncounterContext()).model_copy(update={"node_id": node_id})
        return [
            e for e in self._encounters.values()
            if e.can_trigger(context, self._rng)
        ]

    def update_encounter(self, encounter_id: str, updates: dict) -> Encounter:
        encounter = self.get_encounter(encounter_id)
        data = {**encounter.model_dump(), **updates, "id": encounter_id}
        updated = _validate(data, "encounter update")
        self._encounters[encounter_id] = updated
        return updated

    def delete_encounter(self, encounter_id: str) -> None:
        """Remove an encounter, ending any of its active instances first."""
        self.get_encounter(encounter_id)
        for instance in list(self._active.values()):
            if instance.encounter_id == encounter_id:
                self.end_encounter(instance.id, reason="encounter_deleted")
        del self._encounters[encounter_id]

    # --- Lifecycle ---

    def trigger_encounter(
        self, encounter_id: str, context: Optional[EncounterContext] = None
    ) -> Optional[EncounterInstance]:
        """
        Start an instance of the encounter. Returns None when the encounter
        cannot trigger in this context.
        """
        encounter = self.get_encounter(encounter_id)
        context = context or EncounterContext()

        if not encounter.can_trigger(context, self._rng):
            return None

        encounter.mark_triggered(context.current_turn)
        instance = EncounterInstance(
            id=f"inst_{uuid4().hex[:12]}",
            encounter_id=encounter.id,
            status="active",
            start_turn=context.current_turn,
            current_turn=0,
            max_turns=encounter.turn_based.duration,
            context=context,
            generated_interactions=encounter.generate_interactions(),
        )
        self._active[instance.id] = instance
        logger.debug(
            "Encounter %s triggered as %s at turn %d",
            encounter.id, instance.id, context.current_turn,
        )
        return instance

    def process_turn(self, turn_number: int) -> List[EncounterTurnResult]:
        """Advance every active instance by one turn."""
        results = []
        for instance in list(self._active.values()):
            instance.current_turn += 1

            if instance.current_turn < instance.max_turns:
                result = EncounterTurnResult(
                    type="encounter_turn",
                    instance_id=instance.id,
                    encounter_id=instance.encounter_id,
                    turn=instance.current_turn,
                    global_turn=turn_number,
                )
                instance.history.append(result.model_dump(mode="json"))
            else:
                result = self._complete(instance, turn_number)
            results.append(result)
        return results

    def _complete(self, instance: EncounterInstance, turn_number: int) -> EncounterTurnResult:
        encounter = self._encounters.get(instance.encounter_id)
        outcome = None
        if encounter is not None:
            context = instance.context.model_copy(update={"current_turn": turn_number})
            outcome = encounter.resolve_outcome(context, self._rng)

        instance.status = "completed"
        instance.outcome = outcome
        instance.end_turn = turn_number
        self._move_to_history(instance)
        logger.debug("Encounter instance %s completed at turn %d", instance.id, turn_number)

        return EncounterTurnResult(
            type="encounter_completed",
            instance_id=instance.id,
            encounter_id=instance.encounter_id,
            turn=instance.current_turn,
            global_turn=turn_number,
            outcome=outcome,
        )

    def end_encounter(
        self, instance_id: str, reason: str = "forced", turn: Optional[int] = None
    ) -> bool:
        """Force an active instance into history. False if it is not active."""
        instance = self._active.get(instance_id)
        if instance is None:
            return False

        instance.status = "ended"
        instance.end_reason = reason
        instance.end_turn = turn if turn is not None else instance.start_turn + instance.current_turn
        self._move_to_history(instance)
        logger.debug("Encounter instance %s ended (%s)", instance_id, reason)
        return True

    def _move_to_history(self, instance: EncounterInstance) -> None:
        del self._active[instance.id]
        self._history.append(instance)

    # --- Queries ---

    def get_active_encounters(self) -> List[EncounterInstance]:
        return list(self._active.values())

    def get_active_interactions(self, node_id: Optional[str] = None) -> List[Interaction]:
        """
        Interactions projected by active instances. Instances triggered
        without a node are visible everywhere.
        """
        interactions = []
        for instance in self._active.values():
            if node_id is None or instance.context.node_id in (None, node_id):
                interactions.extend(instance.generated_interactions)
        return interactions

    def record_interaction_use(self, interaction_id: str, turn: int) -> int:
        """
        Start the cooldown of a generated interaction on every active
        instance that carries it. Returns how many were stamped.
        """
        stamped = 0
        for instance in self._active.values():
            for interaction in instance.generated_interactions:
                if interaction.id == interaction_id:
                    interaction.last_triggered = turn
                    stamped += 1
        return stamped

    def get_encounter_history(
        self,
        encounter_id: Optional[str] = None,
        participant_id: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> List[EncounterInstance]:
        return [
            i for i in self._history
            if (encounter_id is None or i.encounter_id == encounter_id)
            and (participant_id is None or participant_id in i.context.participants)
            and (node_id is None or i.context.node_id == node_id)
        ]

    def get_encounter_statistics(self) -> EncounterStatistics:
        by_type: Dict[str, int] = {}
        by_difficulty: Dict[str, int] = {}
        for encounter in self._encounters.values():
            by_type[encounter.type] = by_type.get(encounter.type, 0) + 1
            by_difficulty[encounter.difficulty] = by_difficulty.get(encounter.difficulty, 0) + 1

        durations = [
            i.end_turn - i.start_turn for i in self._history if i.end_turn is not None
        ]
        return EncounterStatistics(
            total=len(self._encounters),
            by_type=by_type,
            by_difficulty=by_difficulty,
            active=len(self._active),
            completed=len(self._history),
            average_duration=sum(durations) / len(durations) if durations else 0.0,
        )

    # --- Templates & storage ---

    def create_from_template(
        self, template: dict, overrides: Optional[dict] = None
    ) -> Encounter:
        try:
            encounter = Encounter.from_template(template, overrides)
        except PydanticValidationError as exc:
            raise InvalidInputError(f"Invalid encounter template: {exc}") from exc
        self._encounters[encounter.id] = encounter
        return encounter

    def export_as_template(self, encounter_id: str) -> dict:
        return self.get_encounter(encounter_id).to_template()

    def save_encounters(self) -> List[dict]:
        """
        Serialize every registered encounter. With a persistence backend the
        list is also stored there; a failing backend is logged, never raised.
        """
        data = [e.model_dump(mode="json") for e in self._encounters.values()]
        if self.persistence is not None:
            try:
                saved = bool(self.persistence.save({"encounters": data}))
            except Exception:
                logger.exception("Failed to persist %d encounters", len(data))
            else:
                if not saved:
                    logger.warning("Persistence backend refused %d encounters", len(data))
        return data

    def load_encounters(self, data: Optional[List[dict]] = None) -> List[Encounter]:
        """
        Register encounters from serialized data, or from the persistence
        backend when no data is given. Nothing is registered unless every
        item validates.
        """
        if data is None:
            data = self._load_stored()
        if not isinstance(data, list):
            raise InvalidInputError(
                f"Encounter data must be a list, got {type(data).__name__}"
            )
        loaded = []
        for item in data:
            if not isinstance(item, dict):
                raise InvalidInputError(
                    f"Encounter must be a mapping, got {type(item).__name__}"
                )
            loaded.append(_validate(item))
        for encounter in loaded:
            self._encounters[encounter.id] = encounter
        return loaded

    def _load_stored(self) -> List[dict]:
        if self.persistence is None:
            return []
        try:
            record = self.persistence.load()
        except Exception:
            logger.exception("Failed to load stored encounters")
            return []
        if not isinstance(record, dict):
            return []
        return record.get("encounters", [])

    def clear_instances(self) -> None:
        """Drop every active and finished instance. Templates are kept."""
        self._active = {}
        self._history = []
