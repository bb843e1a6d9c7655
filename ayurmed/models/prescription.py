from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, StrictStr

from ayurmed.models.base import CamelModel


class PrescriptionStatus(str, Enum):
    PENDING_VALIDATION = "PENDING_VALIDATION"
    VALIDATED = "VALIDATED"
    DIGITAL_CREATED = "DIGITAL_CREATED"


class Medicine(BaseModel):
    """One line of a prescription. Position in the owning list is its identity."""

    model_config = ConfigDict(extra="forbid")

    name: StrictStr
    dosage: StrictStr
    frequency: StrictStr  # slot notation, e.g. "1-0-1"
    duration: StrictStr
    instructions: StrictStr


MEDICINE_FIELDS = tuple(Medicine.model_fields)


def blank_medicine() -> Medicine:
    return Medicine(name="", dosage="", frequency="", duration="", instructions="")


class Prescription(CamelModel):
    id: str
    patient_id: str
    doctor_id: str | None = None
    date: str
    status: PrescriptionStatus
    medicines: list[Medicine] = []
    image_url: str | None = None
    diagnosis: str | None = None
    notes: str | None = None


class ExtractionResult(BaseModel):
    """Structured bundle the extraction model must return. Unknown values are empty strings."""

    model_config = ConfigDict(extra="forbid")

    medicines: list[Medicine]
    diagnosis: StrictStr
    notes: StrictStr


class ValidationDraft(CamelModel):
    prescription_id: str
    medicines: list[Medicine] = []
    diagnosis: str = ""
    notes: str = ""
    error: str | None = None
    source: Literal["stored", "ai", "fallback"] = "stored"


class UploadRequest(CamelModel):
    patient_id: str | None = None
    image_data: str


class AuthorRequest(CamelModel):
    patient_id: str
    medicines: list[Medicine] = []
    diagnosis: str = ""
    notes: str = ""


class MedicineUpdate(BaseModel):
    field: Literal["name", "dosage", "frequency", "duration", "instructions"]
    value: str


class ValidateRequest(BaseModel):
    medicines: list[Medicine]
    diagnosis: str = ""
    notes: str = ""
