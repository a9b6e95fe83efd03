from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.security import SESSION_MAX_AGE, create_session_cookie
from app.deps import SESSION_COOKIE_NAME, get_current_user, get_ledger_service
from app.models.user import User
from app.services import users as user_service
from app.services.ledger import LedgerService

router = APIRouter()
log = get_logger(__name__)


class GoogleAuthRequest(BaseModel):
    id_token: str


@router.post("/google")
async def auth_google(
    body: GoogleAuthRequest,
    response: Response,
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Exchange Google ID token for session; set httpOnly cookie."""
    claims = user_service.verify_google_id_token(body.id_token)
    user, created = await user_service.upsert_user_from_google(claims)
    if created:
        try:
            await ledger.grant_signup_tokens(str(user.id))
        except Exception as e:
            # Sign-in still succeeds; the balance row is created lazily on first read
            log.exception("billing.signup_tokens_failed", user_id=str(user.id), error=str(e))

    session_value = create_session_cookie(user_service.session_payload_for_user(user))
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_value,
        max_age=SESSION_MAX_AGE,
        httponly=True,
        secure=get_settings().env == "production",
        samesite="lax",
        path="/",
    )
    return {"user": user_service.user_profile(user)}


@router.get("/me")
async def auth_me(user: User = Depends(get_current_user)):
    """Return current user. Requires session cookie."""
    return user_service.user_profile(user)


@router.post("/logout")
async def auth_logout(response: Response, user: User = Depends(get_current_user)):
    """Clear the cookie and invalidate every outstanding session for this user."""
    await user_service.invalidate_sessions(user)
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"status": "ok"}
