"""Tests for world-state persistence backends."""

import pytest

from sim_kernel.models.character import Character
from sim_kernel.models.world import Node, WorldState
from sim_kernel.persistence.store import (
    RECORD_KEYS,
    InMemoryPersistence,
    SqlitePersistence,
    deserialize_world_state,
    serialize_world_state,
)


def _make_state(time: int = 3) -> WorldState:
    return WorldState(
        time=time,
        world_name="Vale",
        world_description="A quiet river valley",
        rules={"magic": False},
        nodes=[Node(id="town", name="Town", type="settlement", description="Market town")],
        characters=[Character(id="ana", name="Ana", current_node_id="town")],
        resources={"grain": 4.0},
    )


class TestRecordFormat:
    def test_record_keys(self):
        record = serialize_world_state(_make_state())
        assert tuple(record) == RECORD_KEYS
        assert record["worldName"] == "Vale"
        assert record["npcs"][0]["id"] == "ana"

    def test_round_trip(self):
        state = _make_state()
        restored = deserialize_world_state(serialize_world_state(state))
        assert restored.time == 3
        assert restored.characters == state.characters
        assert restored.nodes == state.nodes

    def test_missing_keys(self):
        with pytest.raises(KeyError):
            deserialize_world_state({"time": 1, "nodes": []})


class TestInMemoryPersistence:
    def test_latest_record(self):
        store = InMemoryPersistence()
        assert store.load() is None
        store.save(serialize_world_state(_make_state(1)))
        store.save(serialize_world_state(_make_state(2)))
        assert store.load()["time"] == 2
        assert store.save_count == 2

    def test_records_are_copies(self):
        store = InMemoryPersistence()
        record = serialize_world_state(_make_state())
        store.save(record)
        record["resources"]["grain"] = 0
        assert store.load()["resources"]["grain"] == 4.0

    def test_clear(self):
        store = InMemoryPersistence()
        store.save(serialize_world_state(_make_state()))
        store.clear()
        assert store.load() is None


class TestSqlitePersistence:
    def setup_method(self):
        self.store = SqlitePersistence(db_path=":memory:")

    def teardown_method(self):
        self.store.close()

    def test_empty(self):
        assert self.store.load() is None
        assert self.store.count() == 0

    def test_latest_snapshot_wins(self):
        for turn in range(1, 4):
            assert self.store.save(serialize_world_state(_make_state(turn)))
        assert self.store.count() == 3
        assert self.store.load()["time"] == 3

    def test_loaded_record_deserializes(self):
        self.store.save(serialize_world_state(_make_state()))
        state = deserialize_world_state(self.store.load())
        assert state.get_character("ana").current_node_id == "town"

    def test_bad_record_returns_false(self):
        assert self.store.save({"worldName": "Vale", "time": "soon"}) is False
        assert self.store.count() == 0

    def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "worlds.db")
        first = SqlitePersistence(db_path=path)
        first.save(serialize_world_state(_make_state(7)))
        first.close()

        second = SqlitePersistence(db_path=path)
        assert second.load()["time"] == 7
        second.close()
