"""Login by email lookup and session bookkeeping. There are no passwords."""

import logging

from ayurmed.exceptions import NotFoundError, ValidationInputError
from ayurmed.models.user import User
from ayurmed.services.store import DataStore

logger = logging.getLogger(__name__)

DEMO_ACCOUNTS = ("rajesh@example.com", "anjali@hospital.com", "admin@hospital.com")


async def login(store: DataStore, email: str) -> tuple[str, User]:
    if not email or not email.strip():
        raise ValidationInputError("Email is required")

    user = await store.find_user_by_email(email)
    if user is None:
        raise NotFoundError(f"User not found. Try: {', '.join(DEMO_ACCOUNTS)}")

    token = await store.create_session(user.id)
    logger.info("User %s logged in as %s", user.id, user.role.value)
    return token, user


async def logout(store: DataStore, token: str) -> None:
    await store.delete_session(token)
