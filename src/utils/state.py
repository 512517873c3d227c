from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Optional

import db.crud as crud
from db.models import Identity
from utils import settings
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens.

    Fields:
      - identity: the signed-in user, resolved once at sign-in (None if signed out)
      - token: session token, also kept in SESSION_FILE so a restart stays signed in
    """

    identity: Optional[Identity] = None
    token: Optional[str] = None

    @property
    def uid(self) -> Optional[int]:
        return self.identity.uid if self.identity else None

    @property
    def is_admin(self) -> bool:
        return bool(self.identity and self.identity.is_admin)

    async def sign_in(self, email: str, pwd: str) -> Identity:
        self.identity, self.token = await crud.sign_in(email, pwd)
        self._save_session()
        return self.identity

    async def restore(self) -> Optional[Identity]:
        """Reopen the session saved by a previous run, if it is still valid."""
        token = self._load_session()
        if not token:
            return None
        identity = await crud.current_identity(token)
        if identity is None:
            self._clear_session()
            return None
        self.identity, self.token = identity, token
        _logger.info(f"Restored session for user {identity.uid}")
        return identity

    async def sign_out(self) -> None:
        """
        End the current session if one exists.
        This is only called upon logging out or quitting
        """
        try:
            if self.token:
                await crud.sign_out(self.token)
        finally:
            self._clear_session()
            self.identity = None
            self.token = None

    def _save_session(self) -> None:
        session_dir = os.path.dirname(settings.SESSION_FILE)
        if session_dir:
            os.makedirs(session_dir, exist_ok=True)
        with open(settings.SESSION_FILE, "w", encoding="utf-8") as f:
            json.dump({"token": self.token}, f)

    def _load_session(self) -> Optional[str]:
        try:
            with open(settings.SESSION_FILE, "r", encoding="utf-8") as f:
                return json.load(f).get("token")
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            _logger.warning(f"Ignoring unreadable session file: {e}")
            return None

    def _clear_session(self) -> None:
        try:
            os.remove(settings.SESSION_FILE)
        except FileNotFoundError:
            pass
