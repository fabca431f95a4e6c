"""FastAPI application exposing authentication, user and message endpoints."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import Settings, load_settings
from .database import Database
from .errors import AuthError, InvalidCredentialsError, MessagelyError, NotFoundError
from .messages import MessageStore
from .models import MailboxMessage, MessageDetail, UserSummary
from .passwords import PasswordHasher
from .security import BearerTokenAuth, ensure_correct_user
from .tokens import SessionIssuer
from .users import UserStore, normalize_username

logger = logging.getLogger("messagely.api")


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class RegisterRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None


class TokenResponse(BaseModel):
    token: str


class UserSummaryResponse(BaseModel):
    username: str
    first_name: str
    last_name: str
    phone: str


class UserListResponse(BaseModel):
    users: List[UserSummaryResponse]


class UserProfileResponse(UserSummaryResponse):
    join_at: datetime
    last_login_at: Optional[datetime] = None


class UserDetailResponse(BaseModel):
    user: UserProfileResponse


class SentMessageView(BaseModel):
    id: int
    to_user: UserSummaryResponse
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None


class ReceivedMessageView(BaseModel):
    id: int
    from_user: UserSummaryResponse
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None


class SentMessagesResponse(BaseModel):
    messages: List[SentMessageView]


class ReceivedMessagesResponse(BaseModel):
    messages: List[ReceivedMessageView]


class MessageCreateRequest(BaseModel):
    to_username: Optional[str] = Field(default=None, max_length=255)
    body: Optional[str] = None


class MessageView(BaseModel):
    id: int
    from_username: str
    to_username: str
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None


class MessageCreateResponse(BaseModel):
    message: MessageView


class MessageDetailView(BaseModel):
    id: int
    from_user: UserSummaryResponse
    to_user: UserSummaryResponse
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None


class MessageDetailResponse(BaseModel):
    message: MessageDetailView


class ReadReceiptView(BaseModel):
    id: int
    read_at: Optional[datetime]


class ReadReceiptResponse(BaseModel):
    message: ReadReceiptView


def summary_to_response(summary: UserSummary) -> UserSummaryResponse:
    return UserSummaryResponse(
        username=summary.username,
        first_name=summary.first_name,
        last_name=summary.last_name,
        phone=summary.phone,
    )


def _sent_view(entry: MailboxMessage) -> SentMessageView:
    return SentMessageView(
        id=entry.id,
        to_user=summary_to_response(entry.counterpart),
        body=entry.body,
        sent_at=entry.sent_at,
        read_at=entry.read_at,
    )


def _received_view(entry: MailboxMessage) -> ReceivedMessageView:
    return ReceivedMessageView(
        id=entry.id,
        from_user=summary_to_response(entry.counterpart),
        body=entry.body,
        sent_at=entry.sent_at,
        read_at=entry.read_at,
    )


def _detail_view(detail: MessageDetail) -> MessageDetailView:
    return MessageDetailView(
        id=detail.id,
        from_user=summary_to_response(detail.from_user),
        to_user=summary_to_response(detail.to_user),
        body=detail.body,
        sent_at=detail.sent_at,
        read_at=detail.read_at,
    )


async def _handle_messagely_error(request: Request, exc: MessagelyError) -> JSONResponse:
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    if exc.status_code >= 500:
        logger.error("Request to %s failed: %s", request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=headers,
    )


async def _handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    if request.url.path == "/login":
        # Malformed logins render exactly like rejected credentials.
        detail = "Invalid username/password"
    else:
        fields: List[str] = []
        for error in exc.errors():
            name = str(error["loc"][-1]) if error.get("loc") else "body"
            if name not in fields:
                fields.append(name)
        detail = f"Invalid or missing fields: {', '.join(fields)}"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    initialize_database: bool = False,
) -> FastAPI:
    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database(settings.database_path)
        database.initialize()
    elif initialize_database:
        database.initialize()

    users = UserStore(database, PasswordHasher(settings.work_factor))
    messages = MessageStore(database)
    issuer = SessionIssuer(settings.signing_secret, ttl=settings.token_ttl)
    auth = BearerTokenAuth(issuer)

    app = FastAPI(
        title="Messagely",
        description="User registration, token login and messaging between users",
        version="1.0.0",
    )
    app.state.database = database
    app.state.users = users
    app.state.messages = messages
    app.state.issuer = issuer
    app.add_exception_handler(MessagelyError, _handle_messagely_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation_error)

    async def get_current_user(request: Request) -> str:
        return await auth(request)

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    @app.post("/login", response_model=TokenResponse)
    async def login(request: LoginRequest) -> TokenResponse:
        username = normalize_username(request.username)
        if not await users.authenticate(username, request.password):
            logger.warning("Failed login attempt for %s", username)
            raise InvalidCredentialsError("Invalid username/password")

        token = issuer.issue(username)
        await users.update_login_timestamp(username)
        logger.info("User %s logged in", username)
        return TokenResponse(token=token)

    @app.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
    async def register(request: RegisterRequest) -> TokenResponse:
        user = await users.register(request.model_dump())
        return TokenResponse(token=issuer.issue(user.username))

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    @app.get("/users", response_model=UserListResponse)
    async def list_users(current_user: str = Depends(get_current_user)) -> UserListResponse:
        return UserListResponse(users=[summary_to_response(user) for user in await users.all()])

    @app.get("/users/{username}", response_model=UserDetailResponse)
    async def read_user(username: str, current_user: str = Depends(get_current_user)) -> UserDetailResponse:
        ensure_correct_user(current_user, username)
        profile = await users.get(username)
        return UserDetailResponse(
            user=UserProfileResponse(
                username=profile.username,
                first_name=profile.first_name,
                last_name=profile.last_name,
                phone=profile.phone,
                join_at=profile.join_at,
                last_login_at=profile.last_login_at,
            )
        )

    @app.get("/users/{username}/from", response_model=SentMessagesResponse)
    async def read_sent_messages(
        username: str,
        current_user: str = Depends(get_current_user),
    ) -> SentMessagesResponse:
        ensure_correct_user(current_user, username)
        return SentMessagesResponse(messages=[_sent_view(entry) for entry in await users.messages_from(username)])

    @app.get("/users/{username}/to", response_model=ReceivedMessagesResponse)
    async def read_received_messages(
        username: str,
        current_user: str = Depends(get_current_user),
    ) -> ReceivedMessagesResponse:
        ensure_correct_user(current_user, username)
        return ReceivedMessagesResponse(
            messages=[_received_view(entry) for entry in await users.messages_to(username)]
        )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    @app.get("/messages/{message_id}", response_model=MessageDetailResponse)
    async def read_message(message_id: int, current_user: str = Depends(get_current_user)) -> MessageDetailResponse:
        detail = await messages.get(message_id)
        if current_user not in (detail.from_user.username, detail.to_user.username):
            raise NotFoundError(f"No such message: {message_id}")
        return MessageDetailResponse(message=_detail_view(detail))

    @app.post("/messages", response_model=MessageCreateResponse, status_code=status.HTTP_201_CREATED)
    async def send_message(
        request: MessageCreateRequest,
        current_user: str = Depends(get_current_user),
    ) -> MessageCreateResponse:
        message = await messages.create(current_user, request.to_username or "", request.body or "")
        return MessageCreateResponse(
            message=MessageView(
                id=message.id,
                from_username=message.from_username,
                to_username=message.to_username,
                body=message.body,
                sent_at=message.sent_at,
                read_at=message.read_at,
            )
        )

    @app.post("/messages/{message_id}/read", response_model=ReadReceiptResponse)
    async def mark_message_read(
        message_id: int,
        current_user: str = Depends(get_current_user),
    ) -> ReadReceiptResponse:
        detail = await messages.get(message_id)
        if current_user not in (detail.from_user.username, detail.to_user.username):
            raise NotFoundError(f"No such message: {message_id}")
        if detail.to_user.username != current_user:
            raise AuthError("Only the recipient can mark a message as read")
        message_id, read_at = await messages.mark_read(message_id)
        return ReadReceiptResponse(message=ReadReceiptView(id=message_id, read_at=read_at))

    return app


__all__ = ["create_app"]
