"""Application context shared by request and socket handlers"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request, WebSocket
from sqlalchemy.engine import Engine

from config.settings import Settings, settings as default_settings
from database.db import make_engine, make_session_factory
from database.repository import QuizRepository
from realtime.broadcaster import NotificationBroadcaster
from services.lifecycle import TestLifecycleManager
from services.reset import ResetCoordinator
from services.session_registry import SessionRegistry
from utils.security import AdminSessionStore


@dataclass
class AppContext:
    """Everything a handler needs; one instance per application"""
    settings: Settings
    engine: Engine
    repository: QuizRepository
    registry: SessionRegistry
    broadcaster: NotificationBroadcaster
    lifecycle: TestLifecycleManager
    resets: ResetCoordinator
    admin_sessions: AdminSessionStore


def build_context(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> AppContext:
    settings = settings or default_settings
    engine = engine or make_engine(settings.DATABASE_URL)

    repository = QuizRepository(
        make_session_factory(engine),
        read_attempts=settings.READ_RETRY_ATTEMPTS,
        retry_delay=settings.READ_RETRY_DELAY,
    )
    registry = SessionRegistry(repository, max_words=settings.MAX_WORDS)
    broadcaster = NotificationBroadcaster()
    lifecycle = TestLifecycleManager(repository, registry, broadcaster)
    admin_sessions = AdminSessionStore(settings)
    resets = ResetCoordinator(repository, registry, broadcaster, lifecycle, admin_sessions)

    return AppContext(
        settings=settings,
        engine=engine,
        repository=repository,
        registry=registry,
        broadcaster=broadcaster,
        lifecycle=lifecycle,
        resets=resets,
        admin_sessions=admin_sessions,
    )


def get_context(request: Request) -> AppContext:
    """FastAPI dependency returning the application's context"""
    return request.app.state.context


def get_ws_context(websocket: WebSocket) -> AppContext:
    return websocket.app.state.context
