from enum import Enum

from pydantic import BaseModel, Field

from ayurmed.models.base import CamelModel


class UserRole(str, Enum):
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"
    ADMIN = "ADMIN"


class User(CamelModel):
    id: str
    name: str
    email: str
    role: UserRole
    avatar_url: str | None = None
    # Patient fields
    health_id: str | None = None
    age: int | None = None
    gender: str | None = None
    blood_group: str | None = None
    # Doctor fields
    specialization: str | None = None
    license_number: str | None = None


class LoginRequest(BaseModel):
    email: str


class LoginResponse(CamelModel):
    token: str
    user: User


class DoctorCreate(BaseModel):
    name: str
    email: str
    specialization: str


class PatientCreate(CamelModel):
    name: str
    age: int = Field(gt=0)
    gender: str = "Male"
    blood_group: str = "O+"


class Counts(BaseModel):
    doctors: int
    patients: int
    prescriptions: int
