"""Application factory wiring configuration, storage and the HTTP API."""
from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from .api import create_app
from .config import ServiceConfig, load_config_from_env
from .store import UserStore


def create_application(
    *,
    config: Optional[ServiceConfig] = None,
    store: Optional[UserStore] = None,
) -> FastAPI:
    """Create the ASGI application with a fresh, process-scoped user store."""

    if config is None:
        config = load_config_from_env()
    if store is None:
        store = UserStore()
    return create_app(store=store, config=config)


__all__ = ["create_application"]
