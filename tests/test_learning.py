"""Tests for the Memory and Evolution services."""

import math

import pytest

from sim_kernel.errors import InvalidCharacterError
from sim_kernel.learning.evolution import EvolutionService
from sim_kernel.learning.memory import MemoryService
from sim_kernel.models.character import Character, MemoryEntry
from sim_kernel.models.interaction import (
    InfluenceEffect,
    Interaction,
    InteractionType,
    PrestigeEffect,
)
from sim_kernel.models.simulation import SimulationConfig


def _make_character(**overrides) -> Character:
    data = {"id": "ana", "name": "Ana"}
    data.update(overrides)
    return Character(**data)


def _make_interaction(kind: InteractionType = InteractionType.ECONOMIC, **overrides) -> Interaction:
    data = {"id": "trade", "name": "Trade", "type": kind}
    data.update(overrides)
    return Interaction(**data)


class TestMemoryRetention:
    def test_fresh_memories(self):
        memory = MemoryService()
        character = _make_character()
        good = MemoryEntry(interaction_id="trade", outcome="positive", turn=5)
        bad = MemoryEntry(interaction_id="trade", outcome="negative", turn=5)
        assert memory.retention_strength(character, good, 5) == pytest.approx(0.7)
        assert memory.retention_strength(character, bad, 5) == pytest.approx(0.3)

    def test_decay_scales_with_coherence(self):
        memory = MemoryService()
        entry = MemoryEntry(interaction_id="trade", outcome="positive", turn=0)
        # coherence 0.7 -> time constant of 71 turns
        assert memory.retention_strength(_make_character(), entry, 71) == pytest.approx(
            0.7 * math.exp(-1)
        )
        scattered = _make_character(consciousness={"coherence": 0.0})
        assert memory.retention_strength(scattered, entry, 5) < memory.retention_strength(
            _make_character(), entry, 5
        )

    def test_query_filters(self):
        memory = MemoryService()
        character = _make_character(memory=[
            MemoryEntry(interaction_id="trade", outcome="positive", turn=1),
            MemoryEntry(interaction_id="trade", outcome="negative", turn=2),
            MemoryEntry(interaction_id="duel", outcome="positive", turn=2),
        ])
        assert len(memory.query_memory(character, 3, interaction_id="trade")) == 2
        assert len(memory.query_memory(character, 3, outcome="positive")) == 2
        assert len(memory.query_memory(character, 3, min_retention=0.5)) == 2

    def test_update_memory_prunes_faded_entries(self):
        memory = MemoryService()
        character = _make_character(memory=[
            MemoryEntry(interaction_id="old", outcome="negative", turn=0),
        ])
        updated = memory.update_memory(character, "trade", "positive", 100)

        assert [e.interaction_id for e in updated.memory] == ["trade"]
        assert [e.interaction_id for e in character.memory] == ["old"]

    def test_rejects_non_character(self):
        with pytest.raises(InvalidCharacterError):
            MemoryService().query_memory({"id": "ana"}, 0)


class TestMemoryInfluence:
    def test_no_memory_is_neutral(self):
        assert MemoryService().get_memory_influence(_make_character(), _make_interaction(), 0) == 0.0

    def test_recent_failure_vetoes(self):
        character = _make_character(memory=[
            MemoryEntry(interaction_id="trade", outcome="positive", turn=8),
            MemoryEntry(interaction_id="trade", outcome="negative", turn=9),
        ])
        assert MemoryService().get_memory_influence(character, _make_interaction(), 10) == -1.0

    def test_failure_window_is_configurable(self):
        character = _make_character(memory=[
            MemoryEntry(interaction_id="trade", outcome="negative", turn=0),
        ])
        narrow = MemoryService(SimulationConfig(memory_failure_window=5))
        influence = narrow.get_memory_influence(character, _make_interaction(), 10)
        assert -0.5 <= influence < 0

    def test_trust_is_clamped(self):
        character = _make_character(memory=[
            MemoryEntry(interaction_id="trade", outcome="positive", turn=10)
            for _ in range(4)
        ])
        assert MemoryService().get_memory_influence(character, _make_interaction(), 10) == 0.5

    def test_single_success(self):
        character = _make_character(memory=[
            MemoryEntry(interaction_id="trade", outcome="positive", turn=10),
        ])
        assert MemoryService().get_memory_influence(
            character, _make_interaction(), 10
        ) == pytest.approx(0.35)


class TestEvolution:
    def test_learning_rate(self):
        evolution = EvolutionService()
        assert evolution.calculate_learning_rate(0.7, True) == pytest.approx(0.1 * 1.35 * 1.618)
        assert evolution.calculate_learning_rate(0.7, False) == pytest.approx(0.02 * 1.35)
        assert evolution.calculate_learning_rate(0.0, False) == pytest.approx(0.02)

    def test_success_trains_mapped_attribute(self):
        evolution = EvolutionService()
        character = _make_character()
        evolved = evolution.evolve_from_interaction(character, _make_interaction(), "positive")

        assert evolved.attributes["intelligence"] == pytest.approx(10 + 0.1 * 1.35 * 1.618)
        assert evolved.last_interaction_type == "economic"
        assert character.attributes["intelligence"] == 10.0

    @pytest.mark.parametrize("kind,attribute", [
        (InteractionType.SOCIAL, "charisma"),
        (InteractionType.COMBAT, "strength"),
        (InteractionType.CRAFTING, "dexterity"),
        (InteractionType.EXPLORATION, "wisdom"),
        (InteractionType.RESOURCE_GATHERING, "constitution"),
        (InteractionType.ENCOUNTER, "wisdom"),
    ])
    def test_attribute_mapping(self, kind, attribute):
        evolved = EvolutionService().evolve_from_interaction(
            _make_character(), _make_interaction(kind), "positive"
        )
        assert evolved.attributes[attribute] > 10.0

    def test_failure_leaves_attributes(self):
        character = _make_character()
        evolved = EvolutionService().evolve_from_interaction(
            character, _make_interaction(), "negative"
        )
        assert evolved.attributes == character.attributes

    def test_attributes_capped_at_twenty(self):
        character = _make_character(attributes={"intelligence": 19.95})
        evolved = EvolutionService().evolve_from_interaction(
            character, _make_interaction(), "positive"
        )
        assert evolved.attributes["intelligence"] == 20.0

    def test_existing_skill_improves(self):
        character = _make_character(skills={"bargaining": 2.0})
        evolved = EvolutionService().evolve_from_interaction(
            character, _make_interaction(), "negative"
        )
        assert evolved.skills["bargaining"] == pytest.approx(2.0 + 0.02 * 1.35)

    def test_relationships_with_participants(self):
        evolution = EvolutionService()
        social = _make_interaction(InteractionType.SOCIAL, participants=["ana", "bo"])
        combat = _make_interaction(InteractionType.COMBAT, participants=["bo"])
        friendly = evolution.evolve_from_interaction(_make_character(), social, "positive")
        hostile = evolution.evolve_from_interaction(_make_character(), combat, "positive")

        assert friendly.relationships["bo"] > 0
        assert "ana" not in friendly.relationships
        assert hostile.relationships["bo"] < 0

    def test_influence_and_prestige(self):
        interaction = _make_interaction(effects=[InfluenceEffect(value=1), PrestigeEffect(value=1)])
        rate = 0.1 * 1.35 * 1.618
        evolved = EvolutionService().evolve_from_interaction(
            _make_character(), interaction, "positive"
        )
        assert evolved.influence == pytest.approx(rate * 2)
        assert evolved.prestige == pytest.approx(rate * 1.5)

    def test_evolve_over_time(self):
        character = _make_character(last_interaction_type="combat", energy=50)
        evolved = EvolutionService().evolve_over_time(character, 2, energy_decay=1.0)

        assert evolved.attributes["strength"] == pytest.approx(10 + 0.01 * 0.7 * 2)
        assert evolved.energy == 48
        assert character.energy == 50

    def test_energy_never_negative(self):
        evolved = EvolutionService().evolve_over_time(
            _make_character(energy=0.5), 1, energy_decay=1.0
        )
        assert evolved.energy == 0.0

    def test_rejects_non_character(self):
        with pytest.raises(InvalidCharacterError):
            EvolutionService().evolve_over_time(None)
