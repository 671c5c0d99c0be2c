"""World Model — configuration built by the WorldBuilder and the live state it initializes."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from sim_kernel.models.character import Character
from sim_kernel.models.interaction import Effect, Interaction


class Node(BaseModel):
    """An abstract location. No spatial coordinates; connections are conceptual."""

    id: str
    name: str
    type: str                               # e.g., "settlement", "wilderness"
    description: str = ""
    connections: List[str] = []             # Other node ids
    properties: dict = {}
    resources: Dict[str, float] = {}        # Resource availability at this node
    interactions: List[str] = []            # Interaction ids reachable from this node


class WorldEvent(BaseModel):
    """A scheduled world event. Fires once when world time reaches `turn`."""

    id: str
    name: str
    description: str = ""
    turn: Optional[int] = Field(ge=0, default=None)
    effects: List[Effect] = []


class Group(BaseModel):
    id: str
    name: str
    description: str = ""
    members: List[str] = []                 # Character ids


class Item(BaseModel):
    id: str
    name: str
    description: str = ""
    properties: dict = {}


class Dimensions(BaseModel):
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class WorldConfig(BaseModel):
    """Raw world definition accumulated across the six builder steps."""

    name: Optional[str] = None
    description: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    rules: dict = {}
    initial_conditions: dict = {}

    nodes: List[Node] = []
    interactions: List[Interaction] = []
    characters: List[Character] = []
    node_populations: Dict[str, List[str]] = {}  # node id -> character ids

    events: List[WorldEvent] = []
    groups: List[Group] = []
    items: List[Item] = []

    is_valid: bool = False
    is_complete: bool = False
    created_at: Optional[datetime] = None
    template_id: Optional[str] = None


class WorldState(BaseModel):
    """The single live state of a running simulation. Owned by the SimulationService."""

    time: int = Field(ge=0, default=0)
    world_name: str
    world_description: str = ""
    rules: dict = {}
    initial_conditions: dict = {}
    nodes: List[Node] = []
    characters: List[Character] = []
    interactions: List[Interaction] = []
    events: List[WorldEvent] = []
    resources: Dict[str, float] = {}

    def get_node(self, node_id: Optional[str]) -> Optional[Node]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def get_interaction(self, interaction_id: str) -> Optional[Interaction]:
        return next((i for i in self.interactions if i.id == interaction_id), None)

    def get_character(self, character_id: str) -> Optional[Character]:
        return next((c for c in self.characters if c.id == character_id), None)
