"""FastAPI application exposing the user directory over HTTP."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_serializer
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import ServiceConfig
from .models import User
from .store import DuplicateEmailError, UserNotFoundError, UserStore
from .validation import is_valid_user_id, validate_user_input

logger = logging.getLogger("userdir.api")


class InvalidRequestError(ValueError):
    """Raised when a request is rejected before it reaches the store."""


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    age: int
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")

    @field_serializer("created_at", "updated_at")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def user_to_response(user: User) -> Dict[str, Any]:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        age=user.age,
        created_at=user.created_at,
        updated_at=user.updated_at,
    ).model_dump(mode="json", by_alias=True)


def success_response(
    status_code: int,
    message: str,
    data: Any = None,
    **extra: Any,
) -> JSONResponse:
    content: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        content["data"] = data
    content.update(extra)
    content["status"] = status_code
    return JSONResponse(status_code=status_code, content=content)


def error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "status": status_code},
    )


def _require_user_id(user_id: str) -> None:
    if not is_valid_user_id(user_id):
        raise InvalidRequestError("Invalid user ID format")


def _require_valid(payload: Dict[str, Any], *, partial: bool) -> None:
    result = validate_user_input(payload, partial=partial)
    if not result:
        raise InvalidRequestError(result.reason or "Invalid user data")


def register_error_handlers(app: FastAPI) -> None:
    """Map directory errors onto the JSON envelope used by every endpoint."""

    @app.exception_handler(InvalidRequestError)
    async def _invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
        logger.debug("Rejected %s %s: %s", request.method, request.url.path, exc)
        return error_response(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.debug("Rejected body on %s %s: %s", request.method, request.url.path, exc.errors())
        if any(error.get("type") == "json_invalid" for error in exc.errors()):
            return error_response(status.HTTP_400_BAD_REQUEST, "Invalid JSON payload")
        return error_response(status.HTTP_400_BAD_REQUEST, "Request body must be a JSON object")

    @app.exception_handler(DuplicateEmailError)
    async def _duplicate_email(request: Request, exc: DuplicateEmailError) -> JSONResponse:
        return error_response(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(UserNotFoundError)
    async def _user_not_found(request: Request, exc: UserNotFoundError) -> JSONResponse:
        return error_response(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return error_response(status.HTTP_404_NOT_FOUND, "Endpoint not found")
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def create_app(
    *,
    store: Optional[UserStore] = None,
    config: Optional[ServiceConfig] = None,
) -> FastAPI:
    if store is None:
        store = UserStore()
    if config is None:
        config = ServiceConfig()

    app = FastAPI(
        title=config.title,
        description="In-memory directory of user records with unique email addresses",
        version="1.0.0",
    )
    app.state.store = store
    app.state.config = config
    register_error_handlers(app)

    def get_store() -> UserStore:
        return store

    app.state.get_store = get_store

    @app.get("/health")
    async def healthcheck() -> JSONResponse:
        return success_response(
            status.HTTP_200_OK,
            "API is running",
            timestamp=format_timestamp(datetime.now(timezone.utc)),
        )

    @app.post("/users")
    async def create_user(
        payload: Optional[Dict[str, Any]] = Body(default=None),
        users: UserStore = Depends(get_store),
    ) -> JSONResponse:
        payload = payload or {}
        _require_valid(payload, partial=False)
        user = users.create_user(payload["name"], payload["email"], payload["age"])
        return success_response(status.HTTP_201_CREATED, "User created successfully", user_to_response(user))

    @app.get("/users")
    async def list_users(users: UserStore = Depends(get_store)) -> JSONResponse:
        records = [user_to_response(user) for user in users.list_users()]
        return success_response(
            status.HTTP_200_OK,
            "Users retrieved successfully",
            records,
            count=len(records),
        )

    @app.get("/users/{user_id}")
    async def read_user(user_id: str, users: UserStore = Depends(get_store)) -> JSONResponse:
        _require_user_id(user_id)
        user = users.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return success_response(status.HTTP_200_OK, "User retrieved successfully", user_to_response(user))

    @app.put("/users/{user_id}")
    async def replace_user(
        user_id: str,
        payload: Optional[Dict[str, Any]] = Body(default=None),
        users: UserStore = Depends(get_store),
    ) -> JSONResponse:
        _require_user_id(user_id)
        if user_id not in users:
            raise UserNotFoundError(user_id)
        payload = payload or {}
        _require_valid(payload, partial=True)
        user = users.replace_user(
            user_id,
            name=payload.get("name"),
            email=payload.get("email"),
            age=payload.get("age"),
        )
        return success_response(status.HTTP_200_OK, "User updated successfully", user_to_response(user))

    @app.patch("/users/{user_id}")
    async def patch_user(
        user_id: str,
        payload: Optional[Dict[str, Any]] = Body(default=None),
        users: UserStore = Depends(get_store),
    ) -> JSONResponse:
        _require_user_id(user_id)
        if user_id not in users:
            raise UserNotFoundError(user_id)
        payload = payload or {}
        _require_valid(payload, partial=True)
        user = users.patch_user(user_id, payload)
        return success_response(status.HTTP_200_OK, "User updated successfully", user_to_response(user))

    @app.delete("/users/{user_id}")
    async def delete_user(user_id: str, users: UserStore = Depends(get_store)) -> JSONResponse:
        _require_user_id(user_id)
        users.delete_user(user_id)
        return success_response(status.HTTP_200_OK, "User deleted successfully")

    return app


__all__ = [
    "InvalidRequestError",
    "UserResponse",
    "create_app",
    "format_timestamp",
    "register_error_handlers",
    "user_to_response",
]
