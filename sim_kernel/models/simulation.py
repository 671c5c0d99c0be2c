"""Simulation configuration and per-turn records."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sim_kernel.models.world import WorldState


class SimulationConfig(BaseModel):
    """Tunables for the turn processor and the behavior pipeline."""

    max_turn_history: int = Field(ge=1, default=100)
    coherence_multiplier: float = 1.5
    goal_match_bonus: float = 2.0
    energy_decay_per_turn: float = 1.0
    memory_failure_window: int = 24         # Turns a failure keeps vetoing a choice
    memory_retention_threshold: float = 0.1
    history_significance_floor: float = 0.1
    seed: Optional[int] = None


class CharacterAction(BaseModel):
    character_id: str
    character_name: str
    interaction_id: str
    interaction_name: str
    branch_id: Optional[str] = None
    outcome: str
    roll: int
    dc: int


class TurnChanges(BaseModel):
    model_config = ConfigDict(frozen=True)

    characters_changed: int = 0
    resources_changed: int = 0
    new_events: int = 0


class TurnSummary(BaseModel):
    """One processed turn. Frozen once created."""

    model_config = ConfigDict(frozen=True)

    turn: int = Field(ge=0)
    timestamp: datetime
    processing_time: float = 0.0            # Seconds
    summary: str
    events: List[dict] = []
    character_actions: List[CharacterAction] = []
    changes: TurnChanges = TurnChanges()


class TurnResult(BaseModel):
    success: bool
    world_state: WorldState
    turn_summary: TurnSummary
