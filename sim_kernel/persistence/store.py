"""
World State Persistence — save / load collaborators for the SimulationService.

A saved world is a plain record:
  {time, worldName, worldDescription, rules, nodes, npcs, interactions,
   events, resources}

Behavioral Contract:
- save(record) returns True on success, False on failure. It never raises.
- load() returns the latest record or None when nothing is stored.
- Callers validate what load() hands back; a record that fails validation
  is treated like an absent one.
"""

import copy
import json
import logging
import sqlite3
from typing import Optional, Protocol

from sim_kernel.models.world import WorldState

logger = logging.getLogger(__name__)

RECORD_KEYS = (
    "time",
    "worldName",
    "worldDescription",
    "rules",
    "nodes",
    "npcs",
    "interactions",
    "events",
    "resources",
)


class PersistenceBackend(Protocol):
    """Protocol for world-state storage — pluggable backend."""

    def save(self, record: dict) -> bool: ...

    def load(self) -> Optional[dict]: ...


def serialize_world_state(state: WorldState) -> dict:
    return {
        "time": state.time,
        "worldName": state.world_name,
        "worldDescription": state.world_description,
        "rules": state.rules,
        "nodes": [n.model_dump(mode="json") for n in state.nodes],
        "npcs": [c.model_dump(mode="json") for c in state.characters],
        "interactions": [i.model_dump(mode="json") for i in state.interactions],
        "events": [e.model_dump(mode="json") for e in state.events],
        "resources": dict(state.resources),
    }


def deserialize_world_state(record: dict) -> WorldState:
    """Rebuild a WorldState. Raises KeyError / pydantic ValidationError on bad records."""
    return WorldState.model_validate(
        {
            "time": record["time"],
            "world_name": record["worldName"],
            "world_description": record.get("worldDescription", ""),
            "rules": record.get("rules", {}),
            "nodes": record["nodes"],
            "characters": record["npcs"],
            "interactions": record.get("interactions", []),
            "events": record.get("events", []),
            "resources": record.get("resources", {}),
        }
    )


class InMemoryPersistence:
    """Keeps the latest saved record in process."""

    def __init__(self):
        self._record: Optional[dict] = None
        self.save_count = 0

    def save(self, record: dict) -> bool:
        self._record = copy.deepcopy(record)
        self.save_count += 1
        return True

    def load(self) -> Optional[dict]:
        return copy.deepcopy(self._record) if self._record is not None else None

    def clear(self) -> None:
        self._record = None


class SqlitePersistence:
    """
    World snapshots in SQLite. Every save appends a row; load returns the
    most recent one.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the snapshot table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS world_snapshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                world_name TEXT NOT NULL,
                time INTEGER NOT NULL,
                record_json TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_snapshots_world ON world_snapshots(world_name)
        """)
        self._conn.commit()

    def save(self, record: dict) -> bool:
        try:
            self._conn.execute(
                "INSERT INTO world_snapshots (world_name, time, record_json) VALUES (?, ?, ?)",
                (
                    record.get("worldName", ""),
                    int(record.get("time", 0)),
                    json.dumps(record, default=str),
                ),
            )
            self._conn.commit()
            return True
        except (sqlite3.Error, TypeError, ValueError):
            logger.exception("Failed to save world snapshot")
            return False

    def load(self) -> Optional[dict]:
        row = self._conn.execute(
            "SELECT record_json FROM world_snapshots ORDER BY id DESC LIMIT 1"
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["record_json"])
        except json.JSONDecodeError:
            logger.warning("Stored world snapshot is not valid JSON")
            return None

    def count(self) -> int:
        """Total number of stored snapshots."""
        row = self._conn.execute("SELECT COUNT(*) as cnt FROM world_snapshots").fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
