"""FastAPI dependencies shared by the MyInfo routes."""
from typing import Callable

from fastapi import Request

from myinfo_connect.auth.client import MyInfoClient
from myinfo_connect.data.session_store import SessionStore
from myinfo_connect.utils.config import Settings, get_settings

MyInfoClientFactory = Callable[[Settings, SessionStore], MyInfoClient]


def get_app_settings(request: Request) -> Settings:
    """Settings the app was created with, else the cached environment settings."""
    settings = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_myinfo_client_factory() -> MyInfoClientFactory:
    """
    Builder for request-scoped MyInfo clients.

    Routes open the client themselves, after settings are known, and close it
    with ``async with``.
    """
    return MyInfoClient
