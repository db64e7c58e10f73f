"""
Minimal host application.

    CALLBACK_URL=http://192.168.1.10:3000/login \
        uvicorn --factory lnurl_auth.demo:build_app --host 0.0.0.0 --port 3000

Users are created on first login, keyed by their linking public key, and kept
in memory only.
"""

import threading
from dataclasses import dataclass
from typing import Dict, Optional

import structlog
from fastapi import Depends
from fastapi.responses import HTMLResponse

from .config import Settings, load_settings
from .logging_config import setup_logging
from .main import create_app, current_identity

logger = structlog.get_logger(__name__)


@dataclass
class User:
    id: str


class UserRepository:
    def __init__(self):
        self._users: Dict[str, User] = {}
        self._lock = threading.Lock()

    def get_or_create(self, linking_public_key: str) -> User:
        with self._lock:
            user = self._users.get(linking_public_key)
            if user is None:
                user = User(id=linking_public_key)
                self._users[linking_public_key] = user
                logger.info("user_created", user_id=user.id[:12])
            return user


def build_app(settings: Optional[Settings] = None, users: Optional[UserRepository] = None):
    settings = settings or load_settings()
    setup_logging(settings)
    users = users or UserRepository()

    app = create_app(users.get_or_create, settings=settings)

    @app.get("/", response_class=HTMLResponse)
    async def home(user: Optional[User] = Depends(current_identity)):
        if user is None:
            return f'You are not authenticated. To login go <a href="{settings.LOGIN_PATH}">here</a>.'
        return f'Logged-in as {user.id}. <a href="{settings.LOGOUT_PATH}">Logout</a>'

    return app
