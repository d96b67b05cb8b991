"""
Request-scoped accessors for the services wired in ``create_app``.

Handlers depend on these instead of module-level singletons so that tests
can build an app around in-memory stores and scripted channels.
"""

from __future__ import annotations

from fastapi import Request

from backend.app.alerts.directory import UserDirectory
from backend.app.alerts.dispatcher import SOSDispatcher
from backend.app.alerts.lifecycle import AlertLifecycleManager
from backend.app.alerts.store import AlertStore
from backend.app.core.config import Settings


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_dispatcher(request: Request) -> SOSDispatcher:
    return request.app.state.dispatcher


def get_lifecycle(request: Request) -> AlertLifecycleManager:
    return request.app.state.lifecycle


def get_alert_store(request: Request) -> AlertStore:
    return request.app.state.alert_store


def get_user_directory(request: Request) -> UserDirectory:
    return request.app.state.user_directory
