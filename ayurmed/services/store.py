"""Data store gateway over users, prescriptions and sessions.

Every workflow talks to storage through :class:`DataStore`; the backing
database is whatever :class:`~ayurmed.database.DatabaseAdapter` it is given.
Updates are full-record replaces and the last write wins.
"""

import asyncio
import json
import logging
import secrets
from datetime import datetime, timezone

from ayurmed.config import STORE_LATENCY_MS
from ayurmed.database import INTEGRITY_ERRORS, DatabaseAdapter
from ayurmed.exceptions import ValidationInputError
from ayurmed.models.prescription import Medicine, Prescription, PrescriptionStatus
from ayurmed.models.user import Counts, User, UserRole
from ayurmed.services.identifiers import allocate_health_id, allocate_license_number, new_record_id

logger = logging.getLogger(__name__)

PATIENT_EMAIL_DOMAIN = "ayurmed.in"
HEALTH_ID_INSERT_ATTEMPTS = 5

_USER_COLUMNS = (
    "id, name, email, role, avatar_url, health_id, age, gender, blood_group, specialization, license_number"
)
_PRESCRIPTION_COLUMNS = "id, patient_id, doctor_id, date, status, medicines, image_url, diagnosis, notes"


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        role=UserRole(row["role"]),
        avatar_url=row["avatar_url"],
        health_id=row["health_id"],
        age=row["age"],
        gender=row["gender"],
        blood_group=row["blood_group"],
        specialization=row["specialization"],
        license_number=row["license_number"],
    )


def _row_to_prescription(row) -> Prescription:
    try:
        medicines = [Medicine.model_validate(m) for m in json.loads(row["medicines"] or "[]")]
    except ValueError as e:
        logger.error("Stored medicines for prescription %s are unreadable: %s", row["id"], e)
        raise
    return Prescription(
        id=row["id"],
        patient_id=row["patient_id"],
        doctor_id=row["doctor_id"],
        date=row["date"],
        status=PrescriptionStatus(row["status"]),
        medicines=medicines,
        image_url=row["image_url"],
        diagnosis=row["diagnosis"],
        notes=row["notes"],
    )


class DataStore:
    def __init__(self, db: DatabaseAdapter, latency_ms: int | None = None) -> None:
        self.db = db
        self.latency_ms = STORE_LATENCY_MS if latency_ms is None else latency_ms

    async def _delay(self) -> None:
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000)

    # --- Users ---

    async def get_user(self, user_id: str) -> User | None:
        await self._delay()
        row = await self.db.fetch_one(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,))
        return _row_to_user(row) if row else None

    async def find_user_by_email(self, email: str) -> User | None:
        await self._delay()
        row = await self.db.fetch_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE lower(email) = lower(?) ORDER BY created_at LIMIT 1",
            (email.strip(),),
        )
        return _row_to_user(row) if row else None

    async def find_patient_by_health_id(self, health_id: str) -> User | None:
        await self._delay()
        row = await self.db.fetch_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE role = ? AND health_id = ?",
            (UserRole.PATIENT.value, health_id.strip()),
        )
        return _row_to_user(row) if row else None

    async def _health_id_taken(self, health_id: str) -> bool:
        row = await self.db.fetch_one("SELECT 1 FROM users WHERE health_id = ?", (health_id,))
        return row is not None

    async def _license_taken(self, license_number: str) -> bool:
        row = await self.db.fetch_one("SELECT 1 FROM users WHERE license_number = ?", (license_number,))
        return row is not None

    async def _email_taken(self, email: str) -> bool:
        row = await self.db.fetch_one("SELECT 1 FROM users WHERE lower(email) = lower(?)", (email,))
        return row is not None

    async def _insert_user(self, user: User) -> None:
        await self.db.execute(
            f"INSERT INTO users ({_USER_COLUMNS}, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                user.id,
                user.name,
                user.email,
                user.role.value,
                user.avatar_url,
                user.health_id,
                user.age,
                user.gender,
                user.blood_group,
                user.specialization,
                user.license_number,
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        await self.db.commit()

    async def create_doctor(self, name: str, email: str, specialization: str) -> User:
        await self._delay()
        if not name.strip() or not email.strip():
            raise ValidationInputError("Doctor name and email are required")
        if await self._email_taken(email.strip()):
            raise ValidationInputError(f"Email {email.strip()} is already registered")

        doctor = User(
            id=new_record_id("d"),
            name=name.strip(),
            email=email.strip(),
            role=UserRole.DOCTOR,
            specialization=specialization.strip(),
            license_number=await allocate_license_number(self._license_taken),
        )
        await self._insert_user(doctor)
        logger.info("Created doctor %s (%s)", doctor.id, doctor.license_number)
        return doctor

    async def create_patient(self, name: str, age: int, gender: str, blood_group: str) -> User:
        await self._delay()
        if not name.strip():
            raise ValidationInputError("Patient name is required")
        if age is None or age <= 0:
            raise ValidationInputError("Patient age must be a positive number")

        slug = "".join(name.lower().split())
        # The unique index settles races between concurrent registrations
        for _ in range(HEALTH_ID_INSERT_ATTEMPTS):
            health_id = await allocate_health_id(self._health_id_taken)
            email = f"{slug}@{PATIENT_EMAIL_DOMAIN}"
            if await self._email_taken(email):
                email = f"{slug}{health_id.split('-', 1)[1]}@{PATIENT_EMAIL_DOMAIN}"

            patient = User(
                id=new_record_id("p"),
                name=name.strip(),
                email=email,
                role=UserRole.PATIENT,
                health_id=health_id,
                age=age,
                gender=gender,
                blood_group=blood_group,
            )
            try:
                await self._insert_user(patient)
            except INTEGRITY_ERRORS:
                logger.warning("Health ID %s was taken before insert, allocating another", health_id)
                continue
            logger.info("Created patient %s with health ID %s", patient.id, patient.health_id)
            return patient

        raise RuntimeError("Could not register patient with a unique health ID")

    async def _list_role(self, role: UserRole) -> list[User]:
        await self._delay()
        rows = await self.db.fetch_all(
            f"SELECT {_USER_COLUMNS} FROM users WHERE role = ? ORDER BY created_at, id",
            (role.value,),
        )
        return [_row_to_user(row) for row in rows]

    async def list_doctors(self) -> list[User]:
        return await self._list_role(UserRole.DOCTOR)

    async def list_patients(self) -> list[User]:
        return await self._list_role(UserRole.PATIENT)

    # --- Prescriptions ---

    async def get_prescription(self, prescription_id: str) -> Prescription | None:
        await self._delay()
        row = await self.db.fetch_one(
            f"SELECT {_PRESCRIPTION_COLUMNS} FROM prescriptions WHERE id = ?", (prescription_id,)
        )
        return _row_to_prescription(row) if row else None

    async def get_prescriptions_for_patient(self, patient_id: str) -> list[Prescription]:
        await self._delay()
        rows = await self.db.fetch_all(
            f"SELECT {_PRESCRIPTION_COLUMNS} FROM prescriptions WHERE patient_id = ? ORDER BY seq",
            (patient_id,),
        )
        return [_row_to_prescription(row) for row in rows]

    async def get_pending_prescriptions(self) -> list[Prescription]:
        await self._delay()
        rows = await self.db.fetch_all(
            f"SELECT {_PRESCRIPTION_COLUMNS} FROM prescriptions WHERE status = ? ORDER BY seq",
            (PrescriptionStatus.PENDING_VALIDATION.value,),
        )
        return [_row_to_prescription(row) for row in rows]

    async def upsert_prescription(self, record: Prescription) -> Prescription:
        """Insert a new record, or fully replace the one with the same id."""
        await self._delay()
        medicines = json.dumps([m.model_dump() for m in record.medicines])
        existing = await self.db.fetch_one("SELECT id FROM prescriptions WHERE id = ?", (record.id,))
        if existing:
            await self.db.execute(
                """UPDATE prescriptions SET patient_id = ?, doctor_id = ?, date = ?, status = ?,
                    medicines = ?, image_url = ?, diagnosis = ?, notes = ? WHERE id = ?""",
                (
                    record.patient_id,
                    record.doctor_id,
                    record.date,
                    record.status.value,
                    medicines,
                    record.image_url,
                    record.diagnosis,
                    record.notes,
                    record.id,
                ),
            )
        else:
            row = await self.db.fetch_one("SELECT COALESCE(MAX(seq), 0) AS last FROM prescriptions")
            await self.db.execute(
                f"INSERT INTO prescriptions ({_PRESCRIPTION_COLUMNS}, seq) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.patient_id,
                    record.doctor_id,
                    record.date,
                    record.status.value,
                    medicines,
                    record.image_url,
                    record.diagnosis,
                    record.notes,
                    (row["last"] if row else 0) + 1,
                ),
            )
        await self.db.commit()
        return record

    async def get_counts(self) -> Counts:
        await self._delay()
        doctors = await self.db.fetch_one(
            "SELECT COUNT(*) AS count FROM users WHERE role = ?", (UserRole.DOCTOR.value,)
        )
        patients = await self.db.fetch_one(
            "SELECT COUNT(*) AS count FROM users WHERE role = ?", (UserRole.PATIENT.value,)
        )
        prescriptions = await self.db.fetch_one("SELECT COUNT(*) AS count FROM prescriptions")
        return Counts(
            doctors=doctors["count"],
            patients=patients["count"],
            prescriptions=prescriptions["count"],
        )

    # --- Sessions ---

    async def create_session(self, user_id: str) -> str:
        token = secrets.token_hex(32)
        await self.db.execute(
            "INSERT INTO sessions (token, user_id, created_at) VALUES (?, ?, ?)",
            (token, user_id, datetime.now(timezone.utc).isoformat()),
        )
        await self.db.commit()
        return token

    async def get_session_user(self, token: str) -> User | None:
        row = await self.db.fetch_one(
            f"SELECT {', '.join('u.' + c.strip() for c in _USER_COLUMNS.split(','))} "
            "FROM sessions s JOIN users u ON u.id = s.user_id WHERE s.token = ?",
            (token,),
        )
        return _row_to_user(row) if row else None

    async def delete_session(self, token: str) -> None:
        await self.db.execute("DELETE FROM sessions WHERE token = ?", (token,))
        await self.db.commit()
