import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from ayurmed.dependencies import get_store, get_workflow, require_role
from ayurmed.exceptions import ValidationInputError
from ayurmed.models.prescription import (
    AuthorRequest,
    Medicine,
    MedicineUpdate,
    Prescription,
    UploadRequest,
    ValidateRequest,
    ValidationDraft,
)
from ayurmed.models.user import User, UserRole
from ayurmed.services.store import DataStore
from ayurmed.services.workflow import PrescriptionWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/prescriptions", tags=["prescriptions"])

doctor_only = require_role(UserRole.DOCTOR)


@router.post("/upload", response_model=Prescription)
async def upload_prescription(
    body: UploadRequest,
    user: User = Depends(require_role(UserRole.PATIENT, UserRole.DOCTOR)),
    workflow: PrescriptionWorkflow = Depends(get_workflow),
):
    """Upload a prescription scan for digitization.

    Patients upload for themselves; doctors upload on behalf of a patient
    and are recorded as the prescription's doctor.
    """
    if user.role == UserRole.PATIENT:
        if body.patient_id and body.patient_id != user.id:
            raise HTTPException(status_code=403, detail="Patients can only upload their own prescriptions")
        return await workflow.upload(user.id, body.image_data)

    if not body.patient_id:
        raise ValidationInputError("patient_id is required")
    return await workflow.upload(body.patient_id, body.image_data, author_id=user.id)


@router.post("", response_model=Prescription)
async def author_prescription(
    body: AuthorRequest,
    user: User = Depends(doctor_only),
    workflow: PrescriptionWorkflow = Depends(get_workflow),
):
    return await workflow.author(body.patient_id, user.id, body.medicines, body.diagnosis, body.notes)


@router.get("/pending", response_model=list[Prescription], dependencies=[Depends(doctor_only)])
async def pending_prescriptions(store: DataStore = Depends(get_store)):
    return await store.get_pending_prescriptions()


@router.get("/{prescription_id}/draft", response_model=ValidationDraft, dependencies=[Depends(doctor_only)])
async def open_draft(
    prescription_id: str,
    auto_extract: bool = Query(True),
    workflow: PrescriptionWorkflow = Depends(get_workflow),
):
    """Open the validation draft, scanning the image on first open."""
    return await workflow.open_draft(prescription_id, auto_extract=auto_extract)


@router.post("/{prescription_id}/extract", response_model=ValidationDraft, dependencies=[Depends(doctor_only)])
async def run_extraction(prescription_id: str, workflow: PrescriptionWorkflow = Depends(get_workflow)):
    """Re-scan the image. A failed scan is reported in the draft's ``error``."""
    return await workflow.run_extraction(prescription_id)


@router.post(
    "/{prescription_id}/draft/medicines",
    response_model=ValidationDraft,
    dependencies=[Depends(doctor_only)],
)
async def add_medicine(
    prescription_id: str,
    body: Medicine | None = None,
    workflow: PrescriptionWorkflow = Depends(get_workflow),
):
    return await workflow.add_medicine(prescription_id, body)


@router.patch(
    "/{prescription_id}/draft/medicines/{index}",
    response_model=ValidationDraft,
    dependencies=[Depends(doctor_only)],
)
async def update_medicine(
    prescription_id: str,
    index: int,
    body: MedicineUpdate,
    workflow: PrescriptionWorkflow = Depends(get_workflow),
):
    return await workflow.update_medicine(prescription_id, index, body.field, body.value)


@router.delete(
    "/{prescription_id}/draft/medicines/{index}",
    response_model=ValidationDraft,
    dependencies=[Depends(doctor_only)],
)
async def remove_medicine(
    prescription_id: str,
    index: int,
    workflow: PrescriptionWorkflow = Depends(get_workflow),
):
    return await workflow.remove_medicine(prescription_id, index)


@router.post("/{prescription_id}/validate", response_model=Prescription)
async def validate_prescription(
    prescription_id: str,
    body: ValidateRequest,
    user: User = Depends(doctor_only),
    workflow: PrescriptionWorkflow = Depends(get_workflow),
):
    """Approve and save. Replaces medicines, diagnosis and notes and marks it VALIDATED."""
    return await workflow.validate_and_save(
        prescription_id,
        body.medicines,
        body.diagnosis,
        body.notes,
        doctor_id=user.id,
    )
