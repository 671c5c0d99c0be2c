"""
Error taxonomy for the simulation kernel.

Configuration errors are raised synchronously and leave no partial state.
Per-character failures inside a turn are caught by the SimulationService and
degrade to "no action". Unknown ids always raise a NotFoundError subclass.
"""

from typing import List, Optional


class SimulationError(Exception):
    """Base class for every error raised by the kernel."""
    pass


class ValidationError(SimulationError):
    """An incomplete or invalid world, or a malformed world configuration."""

    def __init__(self, message: str, reasons: Optional[List[str]] = None):
        self.reasons = list(reasons or [])
        if self.reasons:
            message = f"{message}: {'; '.join(self.reasons)}"
        super().__init__(message)


class InitializationError(ValidationError):
    """SimulationService.initialize rejected the configuration."""
    pass


class NotInitializedError(SimulationError):
    """A turn was requested before the simulation was initialized."""
    pass


class NotFoundError(SimulationError):
    """Unknown id in a behavior, encounter or template lookup."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class EncounterNotFoundError(NotFoundError):
    def __init__(self, encounter_id: str):
        super().__init__("Encounter", encounter_id)


class NoValidNodeError(NotFoundError):
    """The character's current node does not exist in the world state."""

    def __init__(self, character_id: str, node_id: Optional[str]):
        self.character_id = character_id
        super().__init__("Node", f"{node_id} (character {character_id})")


class TemplateNotFoundError(NotFoundError):
    def __init__(self, template_type: str, template_id: str):
        self.template_type = template_type
        super().__init__(f"{template_type} template", template_id)


class InvalidInputError(SimulationError):
    """Non-object or missing-field configuration input."""
    pass


class InvalidCharacterError(InvalidInputError):
    """The value passed where a character was expected is not a Character."""
    pass


class RuntimeProcessingError(SimulationError):
    """Unexpected failure inside the evolution or history subsystems during a turn."""
    pass
