from fastapi import APIRouter, Depends, Query

from ayurmed.dependencies import get_store, require_role
from ayurmed.exceptions import NotFoundError
from ayurmed.models.prescription import Prescription
from ayurmed.models.user import PatientCreate, User, UserRole
from ayurmed.services.store import DataStore

router = APIRouter(prefix="/api/patients", tags=["patients"])

doctor_only = require_role(UserRole.DOCTOR)


@router.post("", response_model=User, dependencies=[Depends(doctor_only)])
async def create_patient(body: PatientCreate, store: DataStore = Depends(get_store)):
    """Register a new patient. A unique Health ID is generated."""
    return await store.create_patient(body.name, body.age, body.gender, body.blood_group)


@router.get("/search", response_model=User, dependencies=[Depends(doctor_only)])
async def search_patient(
    health_id: str = Query(..., min_length=1),
    store: DataStore = Depends(get_store),
):
    patient = await store.find_patient_by_health_id(health_id)
    if patient is None:
        raise NotFoundError("Patient not found. Check Health ID.")
    return patient


@router.get("/me/prescriptions", response_model=list[Prescription])
async def my_prescriptions(
    user: User = Depends(require_role(UserRole.PATIENT)),
    store: DataStore = Depends(get_store),
):
    return await store.get_prescriptions_for_patient(user.id)


@router.get("/{patient_id}/prescriptions", response_model=list[Prescription], dependencies=[Depends(doctor_only)])
async def patient_prescriptions(patient_id: str, store: DataStore = Depends(get_store)):
    patient = await store.get_user(patient_id)
    if patient is None or patient.role != UserRole.PATIENT:
        raise NotFoundError(f"Patient {patient_id} not found")
    return await store.get_prescriptions_for_patient(patient_id)
