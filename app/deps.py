"""Shared FastAPI dependencies."""

from dataclasses import dataclass

from fastapi import Depends, Request

from app.core.config import get_settings
from app.core.exceptions import UnauthorizedError, WebhookVerificationError
from app.core.logging import bind_user_id
from app.core.security import load_session_cookie, verify_basic_auth
from app.models.user import User
from app.repositories.base import ConversationStore, LedgerStore, SceneStore
from app.repositories.mongo import MongoConversationStore, MongoLedgerStore, MongoSceneStore
from app.services.chargebee import ChargebeeClient
from app.services.chat import ChatService
from app.services.completion import CompletionGateway
from app.services.leonardo import LeonardoClient
from app.services.ledger import LedgerService
from app.services.settlement import TurnSettlement
from app.services.storyboard import SceneDirector

SESSION_COOKIE_NAME = "storyboard_session"


async def get_current_user(request: Request) -> User:
    """Dependency: load session from cookie and return User."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid session")
    user = await User.get(user_id)
    if not user:
        raise UnauthorizedError("User not found")
    if payload.get("session_version") != user.session_version:
        raise UnauthorizedError("Session invalidated")
    bind_user_id(str(user.id))
    return user


@dataclass(frozen=True)
class Identity:
    """The signed-in user as routers see it."""
    id: str
    email: str | None = None


async def get_identity(user: User = Depends(get_current_user)) -> Identity:
    return Identity(id=str(user.id), email=user.email or None)


async def require_webhook_auth(request: Request) -> None:
    """Dependency: HTTP Basic credentials configured for the billing provider."""
    settings = get_settings()
    if not verify_basic_auth(
        request.headers.get("authorization"),
        settings.chargebee_webhook_username,
        settings.chargebee_webhook_password,
    ):
        raise WebhookVerificationError()


# Stores: one instance per request so a ledger unit of work never spans requests


def get_ledger_store() -> LedgerStore:
    return MongoLedgerStore()


def get_conversation_store() -> ConversationStore:
    return MongoConversationStore()


def get_scene_store() -> SceneStore:
    return MongoSceneStore()


def get_leonardo_client() -> LeonardoClient:
    return LeonardoClient()


def get_chargebee_client() -> ChargebeeClient:
    return ChargebeeClient()


def get_completion_gateway() -> CompletionGateway:
    return CompletionGateway()


def get_ledger_service(store: LedgerStore = Depends(get_ledger_store)) -> LedgerService:
    return LedgerService(store)


def get_chat_service(store: ConversationStore = Depends(get_conversation_store)) -> ChatService:
    return ChatService(store)


def get_scene_director(
    store: SceneStore = Depends(get_scene_store),
    leonardo: LeonardoClient = Depends(get_leonardo_client),
) -> SceneDirector:
    return SceneDirector(store, leonardo)


def get_turn_settlement(
    chat: ChatService = Depends(get_chat_service),
    ledger: LedgerService = Depends(get_ledger_service),
    gateway: CompletionGateway = Depends(get_completion_gateway),
    director: SceneDirector = Depends(get_scene_director),
) -> TurnSettlement:
    return TurnSettlement(chat, ledger, gateway, director)
