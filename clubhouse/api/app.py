"""
FastAPI application for the clubhouse backend.

Auth routes live in clubhouse.auth.routes; this module wires the
services together and exposes the account, user and class endpoints.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr

from clubhouse.auth import (
    AuthContext,
    CredentialStore,
    LocalAuthService,
    create_verifier,
    require_auth,
)
from clubhouse.auth.routes import get_auth_service, router as auth_router
from clubhouse.config import Settings, get_settings
from clubhouse.errors import ClubhouseError
from clubhouse.integrations.oauth import OAuthManager
from clubhouse.integrations.sentry import init_sentry
from clubhouse.services import EnrollmentService, UserService
from clubhouse.services.enrollment import ENROLL_MESSAGES
from clubhouse.storage import StorageError, StorageProvider, create_storage

logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the store on startup and release it on shutdown."""
    settings: Settings = app.state.settings
    storage: StorageProvider = app.state.storage

    init_sentry(settings)

    # A store that cannot be reached at startup is fatal
    await storage.connect()
    logger.info(f"Clubhouse API starting in {settings.environment} mode ({settings.auth_mode} auth)")

    yield

    await storage.close()
    logger.info("Clubhouse API shut down")


# =============================================================================
# Dependencies
# =============================================================================


def get_enrollment_service(request: Request) -> EnrollmentService:
    return request.app.state.enrollment_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


# =============================================================================
# Request Models
# =============================================================================


class ChangePasswordRequest(BaseModel):
    current_password: str = ""
    new_password: str = ""


class UserCreateRequest(BaseModel):
    email: EmailStr | None = None
    first_name: str = ""
    last_name: str = ""
    password: str = ""
    role: str = ""
    assigned_club_ids: list[str] = []
    active: bool = True


class UserUpdateRequest(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    role: str | None = None
    assigned_club_ids: list[str] | None = None
    active: bool | None = None
    password: str | None = None


class ClassRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    instructor: str | None = None
    date: str | None = None          # YYYY-MM-DD
    start_time: str | None = None    # HH:MM
    end_time: str | None = None      # HH:MM
    duration: int | None = None      # minutes
    capacity: int | None = None
    recurring: bool | None = None
    recurring_days: list[str] | None = None
    status: str | None = None


class EnrollRequest(BaseModel):
    member_id: str = ""


# =============================================================================
# Current principal
# =============================================================================


api = APIRouter(prefix="/api")


@api.get("/me")
async def get_me(ctx: AuthContext = Depends(require_auth())):
    """The authenticated principal, without the password hash."""
    return ctx.principal.public()


@api.post("/me/change-password")
async def change_password(
    data: ChangePasswordRequest,
    ctx: AuthContext = Depends(require_auth()),
    service: LocalAuthService = Depends(get_auth_service),
):
    await service.change_password(ctx.principal, data.current_password, data.new_password)
    return {"message": "Password changed successfully"}


# =============================================================================
# Users
# =============================================================================


@api.get("/users")
async def list_users(
    role: str | None = None,
    club_id: str | None = None,
    limit: int = 100,
    offset: int = 0,
    ctx: AuthContext = Depends(require_auth()),
    service: UserService = Depends(get_user_service),
):
    users = await service.list_users(role=role, club_id=club_id, limit=limit, offset=offset)
    return [user.public() for user in users]


@api.post("/users", status_code=201)
async def create_user(
    data: UserCreateRequest,
    ctx: AuthContext = Depends(require_auth()),
    service: UserService = Depends(get_user_service),
):
    user = await service.create_user(ctx.principal, data.model_dump())
    return user.public()


@api.get("/users/{user_id}")
async def get_user(
    user_id: str,
    ctx: AuthContext = Depends(require_auth()),
    service: UserService = Depends(get_user_service),
):
    user = await service.get_user(user_id)
    return user.public()


@api.put("/users/{user_id}")
async def update_user(
    user_id: str,
    data: UserUpdateRequest,
    ctx: AuthContext = Depends(require_auth()),
    service: UserService = Depends(get_user_service),
):
    user = await service.update_user(ctx.principal, user_id, data.model_dump(exclude_none=True))
    return user.public()


@api.delete("/users/{user_id}", status_code=204)
async def delete_user(
    user_id: str,
    ctx: AuthContext = Depends(require_auth()),
    service: UserService = Depends(get_user_service),
):
    await service.delete_user(ctx.principal, user_id)
    return Response(status_code=204)


# =============================================================================
# Classes
# =============================================================================


@api.get("/classes")
async def list_classes(
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
    ctx: AuthContext = Depends(require_auth()),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    filters: dict[str, Any] = {"status": status} if status else {}
    classes = await service.list_classes(filters, limit=limit, offset=offset)
    return [gym_class.public() for gym_class in classes]


@api.post("/classes", status_code=201)
async def create_class(
    data: ClassRequest,
    ctx: AuthContext = Depends(require_auth()),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    gym_class = await service.create_class(data.model_dump(exclude_none=True))
    return gym_class.public()


@api.get("/classes/{class_id}")
async def get_class(
    class_id: str,
    ctx: AuthContext = Depends(require_auth()),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    gym_class = await service.get_class(class_id)
    return gym_class.public()


@api.put("/classes/{class_id}")
async def update_class(
    class_id: str,
    data: ClassRequest,
    ctx: AuthContext = Depends(require_auth()),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    gym_class = await service.update_class(class_id, data.model_dump(exclude_none=True))
    return gym_class.public()


@api.delete("/classes/{class_id}", status_code=204)
async def delete_class(
    class_id: str,
    ctx: AuthContext = Depends(require_auth()),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    await service.delete_class(class_id)
    return Response(status_code=204)


@api.post("/classes/{class_id}/enroll")
async def enroll_member(
    class_id: str,
    data: EnrollRequest,
    ctx: AuthContext = Depends(require_auth()),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    """Enroll a member; a full class puts them on the waitlist instead."""
    outcome = await service.enroll(class_id, data.member_id)
    return {"message": ENROLL_MESSAGES[outcome], "status": outcome.value}


@api.delete("/classes/{class_id}/unenroll/{member_id}", status_code=204)
async def unenroll_member(
    class_id: str,
    member_id: str,
    ctx: AuthContext = Depends(require_auth()),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    await service.unenroll(class_id, member_id)
    return Response(status_code=204)


# =============================================================================
# Error handlers
# =============================================================================


async def handle_clubhouse_error(request: Request, exc: ClubhouseError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": "Invalid request body"})


async def handle_storage_error(request: Request, exc: StorageError) -> JSONResponse:
    logger.error(f"Store failure on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# =============================================================================
# App Setup
# =============================================================================


def create_app(
    settings: Settings | None = None,
    storage: StorageProvider | None = None,
    oauth: OAuthManager | None = None,
) -> FastAPI:
    """
    Build the application.

    Everything the routes need hangs off `app.state`; tests pass their own
    settings, storage and OAuth manager.
    """
    settings = settings or get_settings()
    storage = storage or create_storage(settings)

    app = FastAPI(
        title="Clubhouse API",
        description="Authentication, staff users and class enrollment for gym clubs",
        version="0.1.0",
        lifespan=lifespan,
    )

    credentials = CredentialStore(storage.metadata)
    verifier = create_verifier(settings, credentials)

    app.state.settings = settings
    app.state.storage = storage
    app.state.credentials = credentials
    app.state.verifier = verifier
    app.state.oauth = oauth or OAuthManager(settings)
    app.state.auth_service = LocalAuthService(settings, credentials, verifier)
    app.state.user_service = UserService(settings, credentials)
    app.state.enrollment_service = EnrollmentService(storage.metadata)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ClubhouseError, handle_clubhouse_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StorageError, handle_storage_error)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "clubhouse-api"}

    app.include_router(auth_router)
    app.include_router(api)
    return app
