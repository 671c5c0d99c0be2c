"""Behavior results — what one character did in one turn."""

from typing import List, Optional

from pydantic import BaseModel

from sim_kernel.models.character import Character
from sim_kernel.models.history import HistoryEvent
from sim_kernel.models.interaction import Effect, Interaction


class Resolution(BaseModel):
    """Result of resolving a single branch check."""

    outcome: str                            # "positive" | "negative"
    success: bool
    roll: int
    dc: int
    effects: List[Effect] = []              # Effects to apply (empty on failure)


class BehaviorResult(BaseModel):
    """
    The action chosen for one character, the resolved outcome and the
    character as it looks after learning from it.
    """

    interaction: Interaction
    branch_id: Optional[str] = None
    resolution: Resolution
    character: Character                    # Evolved copy, replaces the input character
    event: Optional[HistoryEvent] = None
