import logging

from fastapi import APIRouter, Depends, HTTPException

from ayurmed.dependencies import get_store, require_role
from ayurmed.exceptions import NotFoundError
from ayurmed.models.risk import RiskPrediction, RiskRequest
from ayurmed.models.user import User, UserRole
from ayurmed.services.risk import analyze_health_risk
from ayurmed.services.store import DataStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/risk", tags=["risk"])

DEFAULT_GENDER = "Male"


@router.post("/analyze", response_model=RiskPrediction)
async def analyze(
    body: RiskRequest,
    user: User = Depends(require_role(UserRole.PATIENT, UserRole.DOCTOR)),
    store: DataStore = Depends(get_store),
):
    """Predict hereditary disease risk from family history.

    Doctors analyse a patient by ``patient_id``; patients analyse themselves.
    Age and gender come from the patient record unless given in the body.
    """
    subject = user
    if body.patient_id and body.patient_id != user.id:
        if user.role != UserRole.DOCTOR:
            raise HTTPException(status_code=403, detail="Patients can only analyse their own risk")
        subject = await store.get_user(body.patient_id)
        if subject is None or subject.role != UserRole.PATIENT:
            raise NotFoundError(f"Patient {body.patient_id} not found")

    age = body.age or (subject.age if subject.role == UserRole.PATIENT else None)
    gender = body.gender or subject.gender or DEFAULT_GENDER
    return await analyze_health_risk(age, gender, body.family_history)
