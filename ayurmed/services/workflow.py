"""Prescription digitization workflow.

A prescription is uploaded as PENDING_VALIDATION, a doctor opens a draft
(optionally pre-filled by the extraction model), edits it locally, and
``validate_and_save`` replaces the stored record with status VALIDATED.
Drafts are never persisted; only ``validate_and_save`` writes back.
"""

import logging
from collections import OrderedDict
from datetime import date
from typing import Awaitable, Callable

from ayurmed.config import MAX_IMAGE_BYTES, MAX_OPEN_DRAFTS
from ayurmed.exceptions import (
    ConfigurationError,
    ExtractionError,
    InvalidTransitionError,
    NotFoundError,
    ValidationInputError,
)
from ayurmed.models.prescription import (
    MEDICINE_FIELDS,
    ExtractionResult,
    Medicine,
    Prescription,
    PrescriptionStatus,
    ValidationDraft,
    blank_medicine,
)
from ayurmed.models.user import UserRole
from ayurmed.services.extraction import decode_data_url, is_embedded_image, parse_prescription_image
from ayurmed.services.identifiers import new_record_id
from ayurmed.services.store import DataStore

logger = logging.getLogger(__name__)

UPLOAD_PLACEHOLDER_DIAGNOSIS = "Processing..."

FALLBACK_DIAGNOSIS = "Example Diagnosis (AI placeholder)"
FALLBACK_MEDICINES = [
    Medicine(name="Paracetamol", dosage="500mg", frequency="1-0-1", duration="5 days", instructions="After food"),
]

EXTRACTION_FAILED_MESSAGE = "OCR Failed. Please input manually."
NOT_CONFIGURED_MESSAGE = "AI service is not configured. Please input manually."

Extractor = Callable[[bytes, str], Awaitable[ExtractionResult]]

# Statuses validate_and_save may start from
_VALIDATION_SOURCES = {PrescriptionStatus.PENDING_VALIDATION, PrescriptionStatus.VALIDATED}


def _check_image(image_data: str) -> None:
    if is_embedded_image(image_data):
        image = decode_data_url(image_data)
        if len(image.data) > MAX_IMAGE_BYTES:
            raise ValidationInputError(f"Image is larger than {MAX_IMAGE_BYTES // (1024 * 1024)}MB")
    elif not image_data.startswith(("http://", "https://")):
        raise ValidationInputError("Image must be a data URL or an http(s) link")


class DraftRegistry:
    """Process-local store of unsaved validation drafts, one per prescription.

    Holds at most ``max_size`` drafts; the least recently used one is dropped
    first. A dropped draft is rebuilt from the stored record on next open.
    """

    def __init__(self, max_size: int = MAX_OPEN_DRAFTS) -> None:
        self.max_size = max_size
        self._drafts: OrderedDict[str, ValidationDraft] = OrderedDict()

    def __len__(self) -> int:
        return len(self._drafts)

    def get(self, prescription_id: str) -> ValidationDraft | None:
        draft = self._drafts.get(prescription_id)
        if draft is not None:
            self._drafts.move_to_end(prescription_id)
        return draft

    def put(self, draft: ValidationDraft) -> None:
        self._drafts[draft.prescription_id] = draft
        self._drafts.move_to_end(draft.prescription_id)
        while len(self._drafts) > self.max_size:
            evicted, _ = self._drafts.popitem(last=False)
            logger.info("Dropped unsaved draft for prescription %s", evicted)

    def discard(self, prescription_id: str) -> None:
        self._drafts.pop(prescription_id, None)

    def clear(self) -> None:
        self._drafts.clear()


class PrescriptionWorkflow:
    def __init__(
        self,
        store: DataStore,
        drafts: DraftRegistry,
        extractor: Extractor | None = None,
    ) -> None:
        self.store = store
        self.drafts = drafts
        self.extractor = extractor or parse_prescription_image

    async def _require_patient(self, patient_id: str):
        patient = await self.store.get_user(patient_id)
        if patient is None or patient.role != UserRole.PATIENT:
            raise NotFoundError(f"Patient {patient_id} not found")
        return patient

    async def _require_prescription(self, prescription_id: str) -> Prescription:
        prescription = await self.store.get_prescription(prescription_id)
        if prescription is None:
            raise NotFoundError(f"Prescription {prescription_id} not found")
        return prescription

    # --- Creation ---

    async def upload(self, patient_id: str, image_data: str, author_id: str | None = None) -> Prescription:
        """Record an uploaded scan for later validation. No extraction happens here."""
        if not image_data or not image_data.strip():
            raise ValidationInputError("An image is required to upload a prescription")
        _check_image(image_data.strip())
        await self._require_patient(patient_id)

        prescription = Prescription(
            id=new_record_id("rx"),
            patient_id=patient_id,
            doctor_id=author_id,
            date=date.today().isoformat(),
            status=PrescriptionStatus.PENDING_VALIDATION,
            medicines=[],
            image_url=image_data.strip(),
            diagnosis=UPLOAD_PLACEHOLDER_DIAGNOSIS,
        )
        await self.store.upsert_prescription(prescription)
        logger.info("Uploaded prescription %s for patient %s", prescription.id, patient_id)
        return prescription

    async def author(
        self,
        patient_id: str,
        doctor_id: str,
        medicines: list[Medicine],
        diagnosis: str,
        notes: str,
    ) -> Prescription:
        """Doctor writes a prescription directly; it needs no validation."""
        await self._require_patient(patient_id)
        prescription = Prescription(
            id=new_record_id("rx"),
            patient_id=patient_id,
            doctor_id=doctor_id,
            date=date.today().isoformat(),
            status=PrescriptionStatus.VALIDATED,
            medicines=list(medicines),
            diagnosis=diagnosis,
            notes=notes,
        )
        await self.store.upsert_prescription(prescription)
        logger.info("Doctor %s authored prescription %s", doctor_id, prescription.id)
        return prescription

    # --- Drafts ---

    async def open_draft(self, prescription_id: str, auto_extract: bool = True) -> ValidationDraft:
        draft = self.drafts.get(prescription_id)
        if draft is not None:
            return draft

        prescription = await self._require_prescription(prescription_id)
        draft = ValidationDraft(
            prescription_id=prescription.id,
            medicines=list(prescription.medicines),
            diagnosis=prescription.diagnosis or "",
            notes=prescription.notes or "",
        )
        self.drafts.put(draft)

        if auto_extract and prescription.image_url:
            return await self.run_extraction(prescription_id)
        return draft

    async def run_extraction(self, prescription_id: str) -> ValidationDraft:
        """Replace the draft's medicines, diagnosis and notes with a fresh extraction.

        Failures are recorded on the draft and leave its values untouched.
        """
        prescription = await self._require_prescription(prescription_id)
        draft = self.drafts.get(prescription_id)
        if draft is None:
            draft = await self.open_draft(prescription_id, auto_extract=False)

        if not prescription.image_url:
            raise ValidationInputError("Prescription has no image to scan")

        if not is_embedded_image(prescription.image_url):
            logger.info("Prescription %s has an external image, using placeholder extraction", prescription_id)
            updated = draft.model_copy(update={
                "medicines": [m.model_copy() for m in FALLBACK_MEDICINES],
                "diagnosis": FALLBACK_DIAGNOSIS,
                "error": None,
                "source": "fallback",
            })
            self.drafts.put(updated)
            return updated

        try:
            image = decode_data_url(prescription.image_url)
            result = await self.extractor(image.data, image.media_type)
        except ConfigurationError as e:
            logger.error("Extraction for %s skipped: %s", prescription_id, e)
            return self._record_error(draft, NOT_CONFIGURED_MESSAGE)
        except (ExtractionError, ValidationInputError) as e:
            logger.error("Extraction for %s failed: %s", prescription_id, e)
            return self._record_error(draft, EXTRACTION_FAILED_MESSAGE)

        updated = draft.model_copy(update={
            "medicines": list(result.medicines),
            "diagnosis": result.diagnosis,
            "notes": result.notes,
            "error": None,
            "source": "ai",
        })
        self.drafts.put(updated)
        return updated

    def _record_error(self, draft: ValidationDraft, message: str) -> ValidationDraft:
        updated = draft.model_copy(update={"error": message})
        self.drafts.put(updated)
        return updated

    async def _draft_for_edit(self, prescription_id: str) -> ValidationDraft:
        draft = self.drafts.get(prescription_id)
        if draft is None:
            draft = await self.open_draft(prescription_id, auto_extract=False)
        return draft

    async def add_medicine(self, prescription_id: str, medicine: Medicine | None = None) -> ValidationDraft:
        draft = await self._draft_for_edit(prescription_id)
        updated = draft.model_copy(update={"medicines": [*draft.medicines, medicine or blank_medicine()]})
        self.drafts.put(updated)
        return updated

    async def update_medicine(self, prescription_id: str, index: int, field: str, value: str) -> ValidationDraft:
        draft = await self._draft_for_edit(prescription_id)
        if field not in MEDICINE_FIELDS:
            raise ValidationInputError(f"Unknown medicine field {field!r}")
        if not 0 <= index < len(draft.medicines):
            raise ValidationInputError(f"No medicine at position {index}")

        medicines = list(draft.medicines)
        medicines[index] = medicines[index].model_copy(update={field: value})
        updated = draft.model_copy(update={"medicines": medicines})
        self.drafts.put(updated)
        return updated

    async def remove_medicine(self, prescription_id: str, index: int) -> ValidationDraft:
        draft = await self._draft_for_edit(prescription_id)
        if not 0 <= index < len(draft.medicines):
            raise ValidationInputError(f"No medicine at position {index}")

        medicines = [m for i, m in enumerate(draft.medicines) if i != index]
        updated = draft.model_copy(update={"medicines": medicines})
        self.drafts.put(updated)
        return updated

    # --- Validation ---

    async def validate_and_save(
        self,
        prescription_id: str,
        medicines: list[Medicine],
        diagnosis: str,
        notes: str,
        doctor_id: str | None = None,
    ) -> Prescription:
        """Approve the human-edited values, replacing the stored record in full."""
        current = await self._require_prescription(prescription_id)
        if current.status not in _VALIDATION_SOURCES:
            raise InvalidTransitionError(
                f"Prescription {prescription_id} is {current.status.value} and cannot be validated"
            )

        validated = current.model_copy(update={
            "status": PrescriptionStatus.VALIDATED,
            "medicines": list(medicines),
            "diagnosis": diagnosis,
            "notes": notes,
            "doctor_id": current.doctor_id or doctor_id,
        })
        await self.store.upsert_prescription(validated)
        self.drafts.discard(prescription_id)
        logger.info("Prescription %s validated with %d medicines", prescription_id, len(validated.medicines))
        return validated
