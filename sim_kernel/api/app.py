"""
SIM Kernel API — FastAPI endpoints.

Exposes the kernel over REST for:
- Simulation lifecycle (initialize, turn, reset, save/load)
- Turn history and the narrative event log
- Encounter registry and lifecycle
- Template lookup

Turns only advance on an explicit POST /simulation/turn.
"""

from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sim_kernel.encounters.service import EncounterService
from sim_kernel.errors import (
    InvalidInputError,
    NotFoundError,
    NotInitializedError,
    TemplateNotFoundError,
    ValidationError,
)
from sim_kernel.models.encounter import EncounterContext
from sim_kernel.models.simulation import SimulationConfig
from sim_kernel.simulation.service import SimulationService
from sim_kernel.templates.store import InMemoryTemplateStore, TemplateProvider


# --- Request/Response Models ---

class TriggerRequest(BaseModel):
    current_turn: Optional[int] = None      # Defaults to the simulation's current turn
    node_id: Optional[str] = None
    character_id: Optional[str] = None
    last_interaction_id: Optional[str] = None
    participants: List[str] = []


class TemplateInstantiateRequest(BaseModel):
    overrides: dict = {}


# --- Application Factory ---

def create_app(
    simulation_service: Optional[SimulationService] = None,
    encounter_service: Optional[EncounterService] = None,
    template_store: Optional[TemplateProvider] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="SIM Kernel API",
        description="Turn-based world simulation kernel",
        version="0.1.0-alpha",
    )

    # Initialize components; the simulation and the API share one encounter registry
    if encounter_service is None:
        encounter_service = (
            simulation_service.encounters if simulation_service else EncounterService()
        )
    sim = simulation_service or SimulationService(encounter_service=encounter_service)
    es = encounter_service
    ts = template_store or InMemoryTemplateStore()

    # Store components on app state for access in endpoints
    app.state.simulation_service = sim
    app.state.encounter_service = es
    app.state.template_store = ts

    # === ERROR MAPPING ===

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(NotInitializedError)
    async def not_initialized(request: Request, exc: NotInitializedError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def invalid_world(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=422, content={"detail": str(exc), "reasons": exc.reasons}
        )

    @app.exception_handler(InvalidInputError)
    async def invalid_input(request: Request, exc: InvalidInputError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    def _require_initialized() -> None:
        if not sim.is_initialized:
            raise NotInitializedError("Simulation is not initialized")

    # === SIMULATION ===

    @app.post("/simulation/initialize")
    def initialize_simulation(config: dict):
        """Initialize from a complete world configuration."""
        state = sim.initialize(config)
        return {"status": "initialized", "world_state": state.model_dump(mode="json")}

    @app.post("/simulation/turn")
    def process_turn():
        """Advance the simulation by exactly one turn."""
        return sim.process_turn().model_dump(mode="json")

    @app.post("/simulation/reset")
    def reset_simulation():
        sim.reset()
        return {"status": "reset", "current_turn": sim.get_current_turn()}

    @app.get("/simulation/state")
    def get_simulation_state():
        """Current world state."""
        _require_initialized()
        return sim.get_world_state().model_dump(mode="json")

    @app.get("/simulation/history")
    def get_turn_history(limit: Optional[int] = None):
        return [s.model_dump(mode="json") for s in sim.get_turn_history(limit)]

    @app.get("/simulation/summary/latest")
    def get_latest_summary():
        summary = sim.get_latest_turn_summary()
        if summary is None:
            raise HTTPException(404, "No turn summary yet")
        return summary.model_dump(mode="json")

    @app.get("/simulation/events")
    def get_history_events(character_id: Optional[str] = None, limit: Optional[int] = None):
        """Narrative event log."""
        return [
            e.model_dump(mode="json")
            for e in sim.get_history_events(character_id=character_id, limit=limit)
        ]

    @app.get("/simulation/config")
    def get_simulation_config():
        return sim.config.model_dump()

    @app.put("/simulation/config")
    def update_simulation_config(config: SimulationConfig):
        return sim.update_config(config).model_dump()

    @app.post("/simulation/save")
    def save_simulation():
        _require_initialized()
        return {"saved": sim.save_state()}

    @app.post("/simulation/load")
    def load_simulation():
        state = sim.load_state()
        if state is None:
            raise HTTPException(404, "No valid saved world")
        return {"status": "loaded", "world_state": state.model_dump(mode="json")}

    # === ENCOUNTERS ===

    @app.post("/encounters")
    def create_encounter(data: dict):
        return es.create_encounter(data).model_dump(mode="json")

    @app.get("/encounters")
    def list_encounters(encounter_type: Optional[str] = Query(None, alias="type")):
        encounters = (
            es.get_encounters_by_type(encounter_type) if encounter_type else es.get_all_encounters()
        )
        return [e.model_dump(mode="json") for e in encounters]

    # Fixed paths are declared before /encounters/{encounter_id}
    @app.get("/encounters/active")
    def get_active_encounters():
        return [i.model_dump(mode="json") for i in es.get_active_encounters()]

    @app.get("/encounters/history")
    def get_encounter_history(
        encounter_id: Optional[str] = None,
        participant_id: Optional[str] = None,
        node_id: Optional[str] = None,
    ):
        history = es.get_encounter_history(
            encounter_id=encounter_id, participant_id=participant_id, node_id=node_id
        )
        return [i.model_dump(mode="json") for i in history]

    @app.get("/encounters/statistics")
    def get_encounter_statistics():
        return es.get_encounter_statistics().model_dump()

    @app.post("/encounters/from-template/{template_id}")
    def create_encounter_from_template(template_id: str, req: TemplateInstantiateRequest):
        template = ts.get_template("encounters", template_id)
        if template is None:
            raise TemplateNotFoundError("encounters", template_id)
        return es.create_from_template(template, req.overrides).model_dump(mode="json")

    @app.get("/encounters/{encounter_id}")
    def get_encounter(encounter_id: str):
        return es.get_encounter(encounter_id).model_dump(mode="json")

    @app.put("/encounters/{encounter_id}")
    def update_encounter(encounter_id: str, updates: dict):
        return es.update_encounter(encounter_id, updates).model_dump(mode="json")

    @app.delete("/encounters/{encounter_id}")
    def delete_encounter(encounter_id: str):
        es.delete_encounter(encounter_id)
        return {"status": "deleted", "encounter_id": encounter_id}

    @app.post("/encounters/{encounter_id}/trigger")
    def trigger_encounter(encounter_id: str, req: TriggerRequest):
        """Try to start an encounter instance."""
        character = None
        if req.character_id is not None:
            _require_initialized()
            character = sim.get_world_state().get_character(req.character_id)
            if character is None:
                raise NotFoundError("Character", req.character_id)

        context = EncounterContext(
            current_turn=req.current_turn if req.current_turn is not None else sim.get_current_turn(),
            node_id=req.node_id or (character.current_node_id if character else None),
            character=character,
            last_interaction_id=req.last_interaction_id,
            participants=req.participants,
        )
        instance = es.trigger_encounter(encounter_id, context)
        if instance is None:
            return {"triggered": False, "instance": None}
        return {"triggered": True, "instance": instance.model_dump(mode="json")}

    @app.post("/encounters/{encounter_id}/template")
    def export_encounter_template(encounter_id: str):
        """Export an encounter and store it as a reusable template."""
        template = es.export_as_template(encounter_id)
        template["id"] = template["template_id"]
        ts.add_template("encounters", template)
        return template

    # === TEMPLATES ===

    @app.get("/templates/{template_type}")
    def list_templates(template_type: str):
        return ts.get_all_templates(template_type)

    @app.get("/templates/{template_type}/{template_id}")
    def get_template(template_type: str, template_id: str):
        template = ts.get_template(template_type, template_id)
        if template is None:
            raise TemplateNotFoundError(template_type, template_id)
        return template

    return app
