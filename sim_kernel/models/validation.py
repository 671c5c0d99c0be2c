"""World validation report."""

from typing import Dict, List

from pydantic import BaseModel, Field


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = []
    warnings: List[str] = []
    completeness: float = Field(ge=0.0, le=1.0, default=0.0)
    step_validation: Dict[int, bool] = {}   # Step number -> complete
