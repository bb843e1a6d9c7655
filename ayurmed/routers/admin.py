from fastapi import APIRouter, Depends

from ayurmed.dependencies import get_store, require_role
from ayurmed.models.user import Counts, DoctorCreate, User, UserRole
from ayurmed.services.store import DataStore

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_role(UserRole.ADMIN))],
)


@router.post("/doctors", response_model=User)
async def create_doctor(body: DoctorCreate, store: DataStore = Depends(get_store)):
    """Add a doctor to the roster. A licence number is generated."""
    return await store.create_doctor(body.name, body.email, body.specialization)


@router.get("/doctors", response_model=list[User])
async def list_doctors(store: DataStore = Depends(get_store)):
    return await store.list_doctors()


@router.get("/patients", response_model=list[User])
async def list_patients(store: DataStore = Depends(get_store)):
    return await store.list_patients()


@router.get("/stats", response_model=Counts)
async def stats(store: DataStore = Depends(get_store)):
    return await store.get_counts()
