"""Tests for the six-step World Builder."""

import pytest

from sim_kernel.builder.world_builder import WorldBuilder, validate_world_config
from sim_kernel.errors import (
    InvalidInputError,
    NotFoundError,
    TemplateNotFoundError,
    ValidationError,
)
from sim_kernel.models.world import WorldConfig
from sim_kernel.templates.store import InMemoryTemplateStore


def _make_builder(through_step: int = 5, store=None) -> WorldBuilder:
    """A builder with steps 1..through_step filled in."""
    builder = WorldBuilder(store)
    if through_step >= 1:
        builder.set_world_properties("Vale", "A quiet river valley")
        builder.set_rules({"magic": False})
        builder.set_initial_conditions({"season": "spring"})
    if through_step >= 2:
        builder.add_node({"id": "town", "name": "Town", "type": "settlement", "description": "Market town"})
    if through_step >= 3:
        builder.add_interaction({"id": "trade", "name": "Trade", "type": "economic"})
    if through_step >= 4:
        builder.add_character({"id": "ana", "name": "Ana", "assigned_interactions": ["trade"]})
    if through_step >= 5:
        builder.assign_character_to_node("ana", "town")
    return builder


class TestStepGating:
    def test_empty_builder(self):
        builder = WorldBuilder()
        assert builder.can_proceed_to_step(1)
        assert not builder.can_proceed_to_step(2)
        assert not builder.validate_step(1)

    @pytest.mark.parametrize("filled", [0, 1, 2, 3, 4, 5])
    def test_can_proceed_truth_table(self, filled):
        builder = _make_builder(filled)
        for step in range(1, 7):
            assert builder.can_proceed_to_step(step) == (step <= filled + 1)

    def test_out_of_range_steps(self):
        builder = _make_builder()
        assert not builder.validate_step(0)
        assert not builder.validate_step(7)
        assert not builder.can_proceed_to_step(0)
        assert not builder.can_proceed_to_step(7)

    def test_content_before_prerequisites_rejected(self):
        builder = WorldBuilder()
        with pytest.raises(ValidationError) as exc_info:
            builder.add_node({"id": "town", "name": "Town", "type": "settlement", "description": "x"})
        assert "World name is required" in exc_info.value.reasons

    def test_character_needs_interactions_step(self):
        builder = _make_builder(2)
        with pytest.raises(ValidationError):
            builder.add_character({"id": "ana", "name": "Ana"})

    def test_node_without_description_blocks_later_steps(self):
        builder = _make_builder(1)
        builder.add_node({"id": "camp", "name": "Camp", "type": "wilderness"})
        assert not builder.validate_step(2)
        assert not builder.can_proceed_to_step(3)

    def test_steps_are_cumulative(self):
        builder = _make_builder(5)
        builder.set_rules({})
        assert not builder.validate_step(1)
        assert not builder.validate_step(5)


class TestContent:
    def test_invalid_input(self):
        builder = _make_builder(1)
        with pytest.raises(InvalidInputError):
            builder.add_node({"id": "town"})
        with pytest.raises(InvalidInputError):
            builder.add_node("town")
        with pytest.raises(InvalidInputError):
            builder.set_world_properties("", "desc")
        with pytest.raises(InvalidInputError):
            builder.set_dimensions(-1, 10)

    def test_duplicate_ids_rejected(self):
        builder = _make_builder(2)
        with pytest.raises(InvalidInputError):
            builder.add_node({"id": "town", "name": "Town", "type": "settlement", "description": "x"})

    def test_character_with_node_is_placed(self):
        builder = _make_builder(4)
        builder.add_character({
            "id": "bo", "name": "Bo", "assigned_interactions": ["trade"], "current_node_id": "town",
        })
        assert builder.get_world_config().node_populations["town"] == ["bo"]

    def test_assignment_moves_character(self):
        builder = _make_builder(5)
        builder.add_node({"id": "farm", "name": "Farm", "type": "rural", "description": "Fields"})
        builder.assign_character_to_node("ana", "farm")

        config = builder.get_world_config()
        assert config.node_populations == {"town": [], "farm": ["ana"]}
        assert config.characters[0].current_node_id == "farm"

    def test_populate_node(self):
        builder = _make_builder(5)
        builder.add_character({"id": "bo", "name": "Bo", "assigned_interactions": ["trade"]})
        builder.populate_node("town", ["bo"])
        assert builder.get_world_config().node_populations["town"] == ["ana", "bo"]

    def test_unknown_ids(self):
        builder = _make_builder(5)
        with pytest.raises(NotFoundError):
            builder.assign_character_to_node("ghost", "town")
        with pytest.raises(NotFoundError):
            builder.populate_node("nowhere", ["ana"])
        with pytest.raises(NotFoundError):
            builder.remove_node("nowhere")
        with pytest.raises(NotFoundError):
            builder.remove_event("nothing")

    def test_remove_character_clears_population(self):
        builder = _make_builder(5)
        builder.remove_character("ana")
        config = builder.get_world_config()
        assert config.characters == []
        assert config.node_populations["town"] == []
        assert not config.is_valid

    def test_remove_node_unplaces_characters(self):
        builder = _make_builder(5)
        builder.remove_node("town")
        config = builder.get_world_config()
        assert config.characters[0].current_node_id is None
        assert "town" not in config.node_populations

    def test_config_is_a_copy(self):
        builder = _make_builder(5)
        builder.get_world_config().nodes.clear()
        assert len(builder.get_world_config().nodes) == 1


class TestValidation:
    def test_complete_world(self):
        builder = _make_builder(5)
        result = builder.validate()
        assert result.is_valid
        assert result.errors == []
        assert result.step_validation == {step: True for step in range(1, 7)}
        assert result.completeness == pytest.approx(0.9)
        assert builder.get_world_config().is_complete

    def test_events_complete_the_score(self):
        builder = _make_builder(5)
        builder.add_event({"id": "flood", "name": "Flood", "turn": 3})
        assert builder.validate().completeness == pytest.approx(1.0)

    def test_empty_world(self):
        result = validate_world_config(WorldConfig())
        assert not result.is_valid
        assert result.completeness == 0.0
        assert "At least one node is required" in result.errors

    def test_dangling_connection_fails_final_step(self):
        builder = _make_builder(5)
        builder.remove_node("town")
        builder.add_node({
            "id": "town", "name": "Town", "type": "settlement",
            "description": "Market town", "connections": ["harbor"],
        })
        builder.assign_character_to_node("ana", "town")

        result = builder.validate()
        assert result.step_validation[5]
        assert not result.step_validation[6]
        assert "Node town connects to unknown node harbor" in result.errors

    def test_unplaced_character(self):
        builder = _make_builder(5)
        builder.add_character({"id": "bo", "name": "Bo", "assigned_interactions": ["trade"]})
        result = builder.validate()
        assert not result.step_validation[5]
        assert "Character bo is not placed on a node" in result.errors

    def test_warnings(self):
        warnings = _make_builder(5).validate().warnings
        assert "No world events defined" in warnings
        assert "Character ana has no goals" in warnings


class TestBuild:
    def test_build_valid_world(self):
        world = _make_builder(5).build()
        assert world.is_valid and world.is_complete
        assert world.created_at is not None

    def test_build_invalid_world(self):
        with pytest.raises(ValidationError) as exc_info:
            _make_builder(4).build()
        assert "Node town has no characters" in exc_info.value.reasons

    def test_reset(self):
        builder = _make_builder(5)
        builder.reset()
        assert builder.get_world_config().nodes == []
        assert not builder.can_proceed_to_step(2)


class TestTemplates:
    def test_world_round_trip(self):
        store = InMemoryTemplateStore()
        builder = _make_builder(5, store)
        before = builder.get_world_config()
        template = builder.save_as_template("world", "Vale", "Starter world")

        fresh = WorldBuilder(store)
        loaded = fresh.load_from_template(template["id"])

        exclude = {"template_id", "created_at"}
        assert loaded.model_dump(exclude=exclude) == before.model_dump(exclude=exclude)
        assert loaded.template_id == template["id"]
        assert fresh.validate_step(6)

    def test_content_templates(self):
        store = InMemoryTemplateStore()
        builder = _make_builder(5, store)
        saved = builder.save_as_template("nodes", "Town")

        assert len(saved) == 1
        assert store.get_template("nodes", saved[0]["id"])["data"]["type"] == "settlement"

    def test_add_from_template(self):
        store = InMemoryTemplateStore()
        store.add_template("nodes", {
            "id": "hamlet",
            "data": {"id": "hamlet", "name": "Hamlet", "type": "settlement", "description": "Tiny"},
        })
        builder = _make_builder(1, store)
        node = builder.add_node_from_template("hamlet", {"name": "Riverside"})

        assert node.id.startswith("hamlet_")
        assert node.name == "Riverside"
        assert node.type == "settlement"

    def test_invalid_template_requests(self):
        store = InMemoryTemplateStore()
        builder = _make_builder(1, store)
        with pytest.raises(InvalidInputError):
            builder.save_as_template("spells", "x")
        with pytest.raises(InvalidInputError):
            builder.save_as_template("events", "x")
        with pytest.raises(TemplateNotFoundError):
            builder.load_from_template("missing")
        with pytest.raises(TemplateNotFoundError):
            builder.add_node_from_template("missing")

    def test_no_provider(self):
        with pytest.raises(InvalidInputError):
            _make_builder(1).save_as_template("world", "Vale")
