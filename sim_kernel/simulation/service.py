"""
Simulation Service — the turn processor.

Owns the single live WorldState and advances it one discrete turn per
process_turn() call. Nothing ticks on its own.

States:
  UNINITIALIZED → initialize → INITIALIZED → (process_turn)* → reset → UNINITIALIZED

Behavioral Contract:
- initialize() either replaces the world wholesale or raises and changes nothing.
- A turn works on a copy of the state; the copy is swapped in only at the end.
- One character's failure degrades to "no action" for that character only.
- Persistence is best-effort. A failed save is logged, never raised.
- Turn numbers in the turn history are strictly increasing without gaps.
"""

import logging
import random
import time
from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from sim_kernel.behavior.generator import BehaviorGenerator
from sim_kernel.builder.world_builder import validate_world_config
from sim_kernel.encounters.service import EncounterService
from sim_kernel.errors import (
    InitializationError,
    InvalidInputError,
    NotInitializedError,
)
from sim_kernel.history.generator import HistoryGenerator
from sim_kernel.learning.evolution import EvolutionService
from sim_kernel.models.behavior import BehaviorResult
from sim_kernel.models.character import Character
from sim_kernel.models.history import HistoryEvent
from sim_kernel.models.interaction import (
    AttributeEffect,
    Effect,
    InfluenceEffect,
    PrestigeEffect,
    RelationshipEffect,
    ResourceEffect,
)
from sim_kernel.models.simulation import (
    CharacterAction,
    SimulationConfig,
    TurnChanges,
    TurnResult,
    TurnSummary,
)
from sim_kernel.models.world import WorldConfig, WorldState
from sim_kernel.persistence.store import (
    InMemoryPersistence,
    PersistenceBackend,
    deserialize_world_state,
    serialize_world_state,
)

logger = logging.getLogger(__name__)

# Change in energy / health / mood that counts a character as changed
STAT_CHANGE_THRESHOLD = 5.0


class SimulationService:
    """
    Explicit service instance; construct one per simulation session.
    """

    def __init__(
        self,
        persistence: Optional[PersistenceBackend] = None,
        history: Optional[HistoryGenerator] = None,
        encounter_service: Optional[EncounterService] = None,
        rng: Optional[random.Random] = None,
        config: Optional[SimulationConfig] = None,
        behavior: Optional[BehaviorGenerator] = None,
    ):
        self.config = config or SimulationConfig()
        self._rng = rng or random.Random(self.config.seed)
        self.persistence = persistence if persistence is not None else InMemoryPersistence()
        self.history = history or HistoryGenerator(self.config, self._rng)
        self.encounters = encounter_service or EncounterService(self.config, self._rng)
        self.evolution = EvolutionService()
        self.behavior = behavior or BehaviorGenerator(
            evolution=self.evolution,
            history=self.history,
            config=self.config,
            rng=self._rng,
        )

        self._state: Optional[WorldState] = None
        self._turn_history: List[TurnSummary] = []
        self._latest_summary: Optional[TurnSummary] = None

    @property
    def is_initialized(self) -> bool:
        return self._state is not None

    # --- Lifecycle ---

    def initialize(self, config: Union[WorldConfig, dict]) -> WorldState:
        """
        Build a fresh WorldState from a complete world configuration and
        replace any previous state with it.
        """
        world = self._coerce_config(config)

        result = validate_world_config(world)
        if not result.is_valid:
            raise InitializationError("World configuration is not complete", result.errors)

        state = self._build_state(world)

        self._state = state
        self.history.clear()
        self.encounters.clear_instances()
        initial = self._make_summary(
            turn=0,
            processing_time=0.0,
            summary="Simulation initialized",
        )
        self._turn_history = [initial]
        self._latest_summary = initial
        logger.info(
            "Simulation initialized: %s (%d nodes, %d characters)",
            state.world_name, len(state.nodes), len(state.characters),
        )

        self.save_state()
        return state.model_copy(deep=True)

    def reset(self) -> None:
        self._state = None
        self._turn_history = []
        self._latest_summary = None
        self.history.clear()
        self.encounters.clear_instances()

    @staticmethod
    def _coerce_config(config: Union[WorldConfig, dict]) -> WorldConfig:
        if isinstance(config, WorldConfig):
            return config.model_copy(deep=True)
        if not isinstance(config, dict):
            raise InvalidInputError(
                f"World configuration must be a mapping, got {type(config).__name__}"
            )
        try:
            return WorldConfig.model_validate(config)
        except PydanticValidationError as exc:
            raise InvalidInputError(f"Malformed world configuration: {exc}") from exc

    @staticmethod
    def _build_state(world: WorldConfig) -> WorldState:
        nodes = [n.model_copy(deep=True) for n in world.nodes]
        for node in nodes:
            reachable = [i.id for i in world.interactions if i.reachable_from(node.type)]
            node.interactions = list(dict.fromkeys(node.interactions + reachable))

        characters = [c.model_copy(deep=True) for c in world.characters]
        by_id = {c.id: c for c in characters}
        for node_id, members in world.node_populations.items():
            for character_id in members:
                by_id[character_id].current_node_id = node_id

        resources: Dict[str, float] = {}
        for node in nodes:
            for name, amount in node.resources.items():
                resources[name] = resources.get(name, 0.0) + amount

        return WorldState(
            time=0,
            world_name=world.name or "",
            world_description=world.description or "",
            rules=dict(world.rules),
            initial_conditions=dict(world.initial_conditions),
            nodes=nodes,
            characters=characters,
            interactions=[i.model_copy(deep=True) for i in world.interactions],
            events=[e.model_copy(deep=True) for e in world.events],
            resources=resources,
        )

    # --- Turn processing ---

    def process_turn(self) -> TurnResult:
        if self._state is None:
            raise NotInitializedError("process_turn called before initialize")

        started = time.perf_counter()
        state = self._state.model_copy(deep=True)
        turn = state.time
        before_characters = {c.id: c.model_copy() for c in state.characters}
        before_resources = dict(state.resources)

        actions: List[CharacterAction] = []
        events: List[dict] = []

        for index, character in enumerate(state.characters):
            result = self._act(character, state)
            if result is None:
                continue
            if isinstance(result, Character):
                state.characters[index] = result
                continue

            actor = result.character
            self._fold_result(state, actor, result, turn)
            state.characters[index] = actor
            actions.append(
                CharacterAction(
                    character_id=actor.id,
                    character_name=actor.name,
                    interaction_id=result.interaction.id,
                    interaction_name=result.interaction.name,
                    branch_id=result.branch_id,
                    outcome=result.resolution.outcome,
                    roll=result.resolution.roll,
                    dc=result.resolution.dc,
                )
            )
            if result.event is not None:
                events.append(self._history_event_record(result.event))

        events.extend(self._fire_world_events(state, turn))

        for encounter_result in self.encounters.process_turn(turn):
            if encounter_result.outcome is not None:
                self._apply_world_effects(state, encounter_result.outcome.effects)
            events.append(encounter_result.model_dump(mode="json"))

        state.time = turn + 1

        changes = TurnChanges(
            characters_changed=self._count_changed_characters(
                before_characters, state.characters, {a.character_id for a in actions}
            ),
            resources_changed=sum(
                1 for name in set(before_resources) | set(state.resources)
                if before_resources.get(name) != state.resources.get(name)
            ),
            new_events=len(events),
        )
        summary = self._make_summary(
            turn=state.time,
            processing_time=time.perf_counter() - started,
            summary=self._synthesize_summary(state, actions, events),
            events=events,
            character_actions=actions,
            changes=changes,
        )

        self._state = state
        self._record_summary(summary)
        logger.info(
            "Turn %d processed: %d actions, %d events", state.time, len(actions), len(events)
        )

        self.save_state()
        return TurnResult(
            success=True,
            world_state=state.model_copy(deep=True),
            turn_summary=summary.model_copy(deep=True),
        )

    def _act(
        self, character: Character, state: WorldState
    ) -> Union[None, Character, BehaviorResult]:
        """
        Passive drift then behavior for one character. Returns the behavior
        result, the drifted character when idle, or None on failure.
        """
        try:
            drifted = self.evolution.evolve_over_time(
                character, 1, self.config.energy_decay_per_turn
            )
            extras = self.encounters.get_active_interactions(drifted.current_node_id)
            result = self.behavior.generate(drifted, state, extras)
        except Exception:
            logger.exception(
                "Behavior failed for character %s at turn %d; no action taken",
                character.id, state.time,
            )
            return None

        if result is None:
            logger.debug("Character %s idle at turn %d", drifted.id, state.time)
            return drifted
        return result

    def _fold_result(
        self, state: WorldState, actor: Character, result: BehaviorResult, turn: int
    ) -> None:
        if result.resolution.success:
            if result.interaction.source_encounter_id is not None:
                # Generated interactions belong to the encounter instances
                self.encounters.record_interaction_use(result.interaction.id, turn)
            else:
                interaction = state.get_interaction(result.interaction.id)
                if interaction is not None:
                    interaction.last_triggered = turn

        for effect in result.resolution.effects:
            if isinstance(effect, ResourceEffect):
                state.resources[effect.target] = state.resources.get(effect.target, 0.0) + effect.value
            else:
                _apply_character_effect(actor, effect)

    def _fire_world_events(self, state: WorldState, turn: int) -> List[dict]:
        fired = []
        for event in state.events:
            if event.turn != turn:
                continue
            self._apply_world_effects(state, event.effects)
            for character in state.characters:
                for effect in event.effects:
                    if not isinstance(effect, ResourceEffect):
                        _apply_character_effect(character, effect)
            fired.append(
                {"type": "world_event", "id": event.id, "name": event.name, "turn": turn}
            )
            logger.debug("World event %s fired at turn %d", event.id, turn)
        return fired

    @staticmethod
    def _apply_world_effects(state: WorldState, effects: List[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, ResourceEffect):
                state.resources[effect.target] = state.resources.get(effect.target, 0.0) + effect.value

    @staticmethod
    def _count_changed_characters(
        before: Dict[str, Character], after: List[Character], acted: set
    ) -> int:
        changed = 0
        for character in after:
            previous = before.get(character.id)
            if character.id in acted or previous is None:
                changed += 1
                continue
            if any(
                abs(getattr(character, stat) - getattr(previous, stat)) > STAT_CHANGE_THRESHOLD
                for stat in ("energy", "health", "mood")
            ):
                changed += 1
        return changed

    @staticmethod
    def _history_event_record(event: HistoryEvent) -> dict:
        record = event.model_dump(mode="json")
        record["type"] = "character_action"
        record["interaction_type"] = event.type
        return record

    @staticmethod
    def _synthesize_summary(
        state: WorldState, actions: List[CharacterAction], events: List[dict]
    ) -> str:
        total = len(state.characters)
        successes = sum(1 for a in actions if a.outcome == "positive")
        parts = [f"Turn {state.time}: {len(actions)} of {total} characters acted"]
        if actions:
            parts.append(f"{successes} succeeded, {len(actions) - successes} failed")
        completed = sum(1 for e in events if e.get("type") == "encounter_completed")
        if completed:
            parts.append(f"{completed} encounter(s) completed")
        world_events = sum(1 for e in events if e.get("type") == "world_event")
        if world_events:
            parts.append(f"{world_events} world event(s)")
        return "; ".join(parts) + "."

    def _make_summary(self, turn: int, processing_time: float, summary: str, **kwargs) -> TurnSummary:
        return TurnSummary(
            turn=turn,
            timestamp=datetime.utcnow(),
            processing_time=processing_time,
            summary=summary,
            **kwargs,
        )

    def _record_summary(self, summary: TurnSummary) -> None:
        self._turn_history.append(summary)
        overflow = len(self._turn_history) - self.config.max_turn_history
        if overflow > 0:
            del self._turn_history[:overflow]
        self._latest_summary = summary

    # --- Reads ---

    def get_current_turn(self) -> int:
        return self._state.time if self._state is not None else 0

    def get_turn_history(self, n: Optional[int] = None) -> List[TurnSummary]:
        """Copies of the recorded summaries, oldest first; the last n when given."""
        if n is not None and n <= 0:
            return []
        summaries = self._turn_history if n is None else self._turn_history[-n:]
        return [s.model_copy(deep=True) for s in summaries]

    def get_latest_turn_summary(self) -> Optional[TurnSummary]:
        if self._latest_summary is None:
            return None
        return self._latest_summary.model_copy(deep=True)

    def get_world_state(self) -> Optional[WorldState]:
        return self._state.model_copy(deep=True) if self._state is not None else None

    def get_history_events(
        self, character_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[HistoryEvent]:
        return self.history.get_events(character_id=character_id, limit=limit)

    def update_config(self, config: SimulationConfig) -> SimulationConfig:
        """Replace tunables in place so every collaborator sees them."""
        for field, value in config.model_dump().items():
            setattr(self.config, field, value)
        overflow = len(self._turn_history) - self.config.max_turn_history
        if overflow > 0:
            del self._turn_history[:overflow]
        return self.config

    # --- Persistence ---

    def save_state(self) -> bool:
        if self._state is None:
            return False
        try:
            saved = bool(self.persistence.save(serialize_world_state(self._state)))
        except Exception:
            logger.exception("Failed to persist world state at turn %d", self._state.time)
            return False
        if not saved:
            logger.warning("Persistence backend refused world state at turn %d", self._state.time)
        return saved

    def load_state(self) -> Optional[WorldState]:
        """
        Restore the stored world, replacing the current one. Returns None
        and leaves everything untouched when nothing valid is stored.
        """
        try:
            record = self.persistence.load()
        except Exception:
            logger.exception("Failed to load world state")
            return None
        if record is None:
            return None

        try:
            state = deserialize_world_state(record)
        except (KeyError, TypeError, PydanticValidationError):
            logger.warning("Stored world state is invalid; ignoring it")
            return None

        self._state = state
        self.encounters.clear_instances()
        loaded = self._make_summary(
            turn=state.time, processing_time=0.0, summary="Simulation loaded"
        )
        self._turn_history = [loaded]
        self._latest_summary = loaded
        return state.model_copy(deep=True)


def _apply_character_effect(character: Character, effect: Effect) -> None:
    if isinstance(effect, AttributeEffect):
        current = character.attributes.get(effect.target, 10.0)
        character.attributes[effect.target] = current + effect.value
    elif isinstance(effect, InfluenceEffect):
        character.influence += effect.value
    elif isinstance(effect, PrestigeEffect):
        character.prestige += effect.value
    elif isinstance(effect, RelationshipEffect):
        current = character.relationships.get(effect.target, 0.0)
        character.relationships[effect.target] = max(-1.0, min(1.0, current + effect.value))
