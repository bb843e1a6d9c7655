import logging

from fastapi import APIRouter, Depends, Response

from ayurmed.config import SESSION_COOKIE_NAME
from ayurmed.dependencies import current_user, get_store, session_token
from ayurmed.models.user import LoginRequest, LoginResponse, User
from ayurmed.services import auth
from ayurmed.services.store import DataStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, response: Response, store: DataStore = Depends(get_store)):
    """Log in by email. The session token is returned and also set as a cookie."""
    token, user = await auth.login(store, body.email)
    response.set_cookie(SESSION_COOKIE_NAME, token, httponly=True, samesite="lax")
    return LoginResponse(token=token, user=user)


@router.post("/logout")
async def logout(
    response: Response,
    token: str | None = Depends(session_token),
    store: DataStore = Depends(get_store),
):
    if token:
        await auth.logout(store, token)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"status": "ok"}


@router.get("/me", response_model=User)
async def me(user: User = Depends(current_user)):
    return user
