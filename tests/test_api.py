"""Tests for the FastAPI API endpoints."""

import random

import pytest
from fastapi.testclient import TestClient

from sim_kernel.api.app import create_app
from sim_kernel.encounters.service import EncounterService
from sim_kernel.models.simulation import SimulationConfig
from sim_kernel.simulation.service import SimulationService
from sim_kernel.templates.store import InMemoryTemplateStore

WORLD = {
    "name": "Vale",
    "description": "A quiet river valley",
    "rules": {"magic": False},
    "initial_conditions": {"season": "spring"},
    "nodes": [
        {"id": "town", "name": "Town", "type": "settlement", "description": "Market town"},
    ],
    "interactions": [{
        "id": "trade",
        "name": "Trade goods",
        "type": "economic",
        "branches": [{"id": "haggle", "check": {"attr": "charisma", "dc": 1}}],
    }],
    "characters": [{"id": "ana", "name": "Ana", "assigned_interactions": ["trade"]}],
    "node_populations": {"town": ["ana"]},
}

AMBUSH = {
    "id": "ambush",
    "name": "Roadside Ambush",
    "type": "combat",
    "turn_based": {"duration": 1},
    "outcomes": [{"id": "repelled", "description": "The bandits flee"}],
}


@pytest.fixture
def client():
    """Create a test client with fresh components."""
    config = SimulationConfig(seed=9)
    encounters = EncounterService(config, random.Random(9))
    simulation = SimulationService(encounter_service=encounters, config=config)

    app = create_app(
        simulation_service=simulation,
        encounter_service=encounters,
        template_store=InMemoryTemplateStore(),
    )
    return TestClient(app)


class TestSimulationEndpoints:
    def test_turn_before_initialize(self, client):
        assert client.post("/simulation/turn").status_code == 409
        assert client.get("/simulation/state").status_code == 409

    def test_initialize_incomplete_world(self, client):
        response = client.post("/simulation/initialize", json={})
        assert response.status_code == 422
        assert "At least one node is required" in response.json()["reasons"]

    def test_initialize_and_turn(self, client):
        response = client.post("/simulation/initialize", json=WORLD)
        assert response.status_code == 200
        assert response.json()["world_state"]["time"] == 0

        response = client.post("/simulation/turn")
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["turn_summary"]["turn"] == 1
        assert data["turn_summary"]["character_actions"][0]["interaction_id"] == "trade"

        assert client.get("/simulation/state").json()["time"] == 1
        assert [s["turn"] for s in client.get("/simulation/history").json()] == [0, 1]
        assert client.get("/simulation/summary/latest").json()["turn"] == 1
        assert len(client.get("/simulation/events", params={"character_id": "ana"}).json()) == 1

    def test_history_limit(self, client):
        client.post("/simulation/initialize", json=WORLD)
        for _ in range(3):
            client.post("/simulation/turn")
        history = client.get("/simulation/history", params={"limit": 2}).json()
        assert [s["turn"] for s in history] == [2, 3]

    def test_reset(self, client):
        client.post("/simulation/initialize", json=WORLD)
        response = client.post("/simulation/reset")
        assert response.json() == {"status": "reset", "current_turn": 0}
        assert client.get("/simulation/summary/latest").status_code == 404

    def test_config(self, client):
        assert client.get("/simulation/config").json()["seed"] == 9

        response = client.put("/simulation/config", json={"max_turn_history": 5})
        assert response.status_code == 200
        assert response.json()["max_turn_history"] == 5

        assert client.put("/simulation/config", json={"max_turn_history": 0}).status_code == 422

    def test_save_and_load(self, client):
        assert client.post("/simulation/load").status_code == 404
        client.post("/simulation/initialize", json=WORLD)
        client.post("/simulation/turn")

        assert client.post("/simulation/save").json() == {"saved": True}
        loaded = client.post("/simulation/load").json()
        assert loaded["world_state"]["time"] == 1


class TestEncounterEndpoints:
    def test_create_and_get(self, client):
        created = client.post("/encounters", json=AMBUSH).json()
        assert created["id"] == "ambush"

        assert client.get("/encounters/ambush").json()["name"] == "Roadside Ambush"
        assert [e["id"] for e in client.get("/encounters", params={"type": "combat"}).json()] == ["ambush"]
        assert client.get("/encounters", params={"type": "social"}).json() == []

    def test_unknown_encounter(self, client):
        assert client.get("/encounters/ghost").status_code == 404
        assert client.delete("/encounters/ghost").status_code == 404
        assert client.post("/encounters/ghost/trigger", json={}).status_code == 404

    def test_invalid_encounter_fields(self, client):
        created = client.post("/encounters", json={**AMBUSH, "cooldown": -1})
        assert created.status_code == 422
        assert client.get("/encounters").json() == []

        client.post("/encounters", json=AMBUSH)
        updated = client.put("/encounters/ambush", json={"cooldown": "soon"})
        assert updated.status_code == 422
        assert client.get("/encounters/ambush").json()["cooldown"] == 0

    def test_update_and_delete(self, client):
        client.post("/encounters", json=AMBUSH)
        updated = client.put("/encounters/ambush", json={"difficulty": "hard"}).json()
        assert updated["difficulty"] == "hard"

        assert client.delete("/encounters/ambush").status_code == 200
        assert client.get("/encounters").json() == []

    def test_trigger_and_complete(self, client):
        client.post("/simulation/initialize", json=WORLD)
        client.post("/encounters", json=AMBUSH)

        response = client.post("/encounters/ambush/trigger", json={"character_id": "ana"})
        data = response.json()
        assert data["triggered"] is True
        assert data["instance"]["context"]["node_id"] == "town"
        assert len(client.get("/encounters/active").json()) == 1

        client.post("/simulation/turn")
        assert client.get("/encounters/active").json() == []
        history = client.get("/encounters/history", params={"encounter_id": "ambush"}).json()
        assert history[0]["status"] == "completed"
        assert history[0]["outcome"]["outcome_id"] == "repelled"

        stats = client.get("/encounters/statistics").json()
        assert stats["total"] == 1
        assert stats["completed"] == 1

    def test_trigger_refused_on_cooldown(self, client):
        client.post("/encounters", json={**AMBUSH, "cooldown": 5})
        assert client.post("/encounters/ambush/trigger", json={"current_turn": 5}).json()["triggered"]
        refused = client.post("/encounters/ambush/trigger", json={"current_turn": 7}).json()
        assert refused == {"triggered": False, "instance": None}

    def test_trigger_with_character_needs_simulation(self, client):
        client.post("/encounters", json=AMBUSH)
        response = client.post("/encounters/ambush/trigger", json={"character_id": "ana"})
        assert response.status_code == 409

    def test_template_round_trip(self, client):
        client.post("/encounters", json=AMBUSH)
        template = client.post("/encounters/ambush/template").json()
        assert template["template_id"] == "ambush"

        assert [t["id"] for t in client.get("/templates/encounters").json()] == ["ambush"]

        copy = client.post(
            "/encounters/from-template/ambush", json={"overrides": {"name": "Night Ambush"}}
        ).json()
        assert copy["id"] != "ambush"
        assert copy["name"] == "Night Ambush"

    def test_unknown_template(self, client):
        assert client.post("/encounters/from-template/ghost", json={}).status_code == 404
        assert client.get("/templates/encounters/ghost").status_code == 404
