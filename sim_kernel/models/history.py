"""History Event — one entry in the append-only narrative log."""

from typing import Optional

from pydantic import BaseModel, Field


class HistoryEvent(BaseModel):
    """
    A single resolved decision, recorded after the fact.
    Never modified once appended.
    """

    id: str
    timestamp: int = Field(ge=0)             # World time (turn) the decision happened at
    character_id: str
    character_name: str
    interaction_id: str
    interaction_name: str
    type: str                                # Interaction type
    outcome: str                             # "positive" | "negative"
    roll: int
    dc: int
    node_id: Optional[str] = None
    significance: float = Field(ge=0.0, le=1.0)
    description: str = ""
