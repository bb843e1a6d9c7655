from enum import Enum
from typing import Literal

from pydantic import Field, StrictStr, field_validator

from ayurmed.models.base import CamelModel


class Relation(str, Enum):
    FATHER = "Father"
    MOTHER = "Mother"
    GRANDFATHER = "Grandfather"
    GRANDMOTHER = "Grandmother"
    SIBLING = "Sibling"


class FamilyHistoryItem(CamelModel):
    relation: Relation
    condition: str
    age_of_onset: str | None = None


class RiskPrediction(CamelModel):
    """Hereditary risk verdict. Ephemeral, never persisted."""

    risk_level: Literal["LOW", "MEDIUM", "HIGH"]
    score: int = Field(ge=0, le=100, description="Risk score from 0 to 100")
    prediction: StrictStr = Field(description="Main predicted condition or summary")
    factors: list[StrictStr] = Field(default=[], description="Contributing factors from history")
    recommendations: list[StrictStr] = Field(default=[], description="Screening or lifestyle recommendations")

    @field_validator("score", mode="before")
    @classmethod
    def _round_score(cls, value: object) -> object:
        # bool is an int subclass; neither it nor numeric text is a score
        if isinstance(value, (bool, str)):
            raise ValueError("score must be a number")
        # Out-of-range floats are left alone so the bounds check rejects them
        if isinstance(value, float) and 0.0 <= value <= 100.0:
            return round(value)
        return value


class RiskRequest(CamelModel):
    patient_id: str | None = None
    age: int | None = Field(None, gt=0)
    gender: str | None = None
    family_history: list[FamilyHistoryItem] = []
