"""
Request-scoped dependencies: the application's store, settings and time authority.
"""
from fastapi import Request

from pastestore.clock import TimeAuthority
from pastestore.config import Settings
from pastestore.database import PasteStore


def get_store(request: Request) -> PasteStore:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> TimeAuthority:
    return request.app.state.clock
