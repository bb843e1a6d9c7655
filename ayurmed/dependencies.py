"""Request-scoped dependencies: storage, workflow and the current session user."""

from fastapi import Cookie, Depends, Header, HTTPException

from ayurmed.config import SESSION_COOKIE_NAME
from ayurmed.database import get_db
from ayurmed.models.user import User, UserRole
from ayurmed.services.store import DataStore
from ayurmed.services.workflow import DraftRegistry, PrescriptionWorkflow

drafts = DraftRegistry()


async def get_store() -> DataStore:
    return DataStore(await get_db())


async def get_workflow(store: DataStore = Depends(get_store)) -> PrescriptionWorkflow:
    return PrescriptionWorkflow(store, drafts)


def session_token(
    x_session_token: str | None = Header(None),
    session_cookie: str | None = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> str | None:
    return x_session_token or session_cookie


async def current_user(
    token: str | None = Depends(session_token),
    store: DataStore = Depends(get_store),
) -> User:
    if not token:
        raise HTTPException(status_code=401, detail="Not logged in")
    user = await store.get_session_user(token)
    if user is None:
        raise HTTPException(status_code=401, detail="Session expired, please log in again")
    return user


def require_role(*roles: UserRole):
    """Dependency factory that admits only users holding one of ``roles``."""

    async def _check(user: User = Depends(current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Not allowed for your role")
        return user

    return _check
