"""JSON file store for per-user settings and authorisations."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from pydantic import ValidationError

from src.storage.models import BotState, LogLevel, UserProfile

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SettingsStore:
    """Thread-safe store backed by a single JSON file.

    The whole state is held in memory and written back after every change.
    All reads and read-modify-write operations hold one lock, so message
    handlers running in parallel threads never lose each other's updates.
    Profiles handed out are copies. Changes that depend on the current
    profile go through ``modify_user``, which reads, changes and saves in one
    locked step.
    """

    def __init__(self, path: Path | str) -> None:
        """Initialise the store and load existing state.

        :param path: Path to the JSON state file. Created on first write.
        """
        self._path = Path(path)
        self._lock = threading.Lock()
        self._state = self._load()

    @property
    def path(self) -> Path:
        """Location of the state file."""
        return self._path

    def _load(self) -> BotState:
        """Load state from disk, falling back to defaults.

        :returns: The loaded state, or an empty state if the file is missing
            or cannot be parsed.
        """
        if not self._path.exists():
            logger.info(f"State file not found, starting fresh: path={self._path}")
            return BotState()

        try:
            state = BotState.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError):
            logger.exception(f"Failed to load state file, using defaults: path={self._path}")
            return BotState()

        logger.info(
            f"Loaded state: users={len(state.users)}, "
            f"authorised={sum(state.authorized_ids.values())}, log_level={state.log_level}"
        )
        return state

    def _save(self) -> None:
        """Write state to disk atomically. Caller must hold the lock."""
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(self._state.model_dump_json(indent=2) + "\n", encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError:
            logger.exception(f"Failed to write state file: path={self._path}")
            return
        logger.debug(f"State saved: path={self._path}")

    def get_user(self, user_id: int, request_id: str = "-") -> UserProfile:
        """Get a user's profile, creating a default one for new users.

        :param user_id: Telegram user ID.
        :param request_id: Request ID used in log lines.
        :returns: A copy of the user's profile.
        """
        with self._lock:
            profile = self._state.users.get(user_id)
            if profile is None:
                logger.info(f"[{request_id}] Creating new user profile for user {user_id}")
                profile = UserProfile()
                self._state.users[user_id] = profile
                self._save()
            else:
                logger.debug(f"[{request_id}] Retrieved existing user profile for user {user_id}")
            return profile.model_copy(deep=True)

    def update_user(self, user_id: int, profile: UserProfile, request_id: str = "-") -> None:
        """Replace a user's profile and persist it.

        :param user_id: Telegram user ID.
        :param profile: The new profile.
        :param request_id: Request ID used in log lines.
        """
        with self._lock:
            self._state.users[user_id] = profile.model_copy(deep=True)
            self._save()
        logger.debug(f"[{request_id}] Updated user profile for user {user_id}")

    def modify_user(
        self,
        user_id: int,
        mutate: Callable[[UserProfile], T],
        request_id: str = "-",
    ) -> T:
        """Change a user's profile and persist it as one atomic step.

        ``mutate`` runs on a copy of the current profile while the store lock
        is held. The copy replaces the stored profile only if ``mutate``
        returns without raising.

        :param user_id: Telegram user ID.
        :param mutate: Callable that edits the profile in place.
        :param request_id: Request ID used in log lines.
        :returns: Whatever ``mutate`` returns.
        """
        with self._lock:
            current = self._state.users.get(user_id)
            if current is None:
                logger.info(f"[{request_id}] Creating new user profile for user {user_id}")
                current = UserProfile()

            profile = current.model_copy(deep=True)
            result = mutate(profile)
            self._state.users[user_id] = profile
            self._save()

        logger.debug(f"[{request_id}] Modified user profile for user {user_id}")
        return result

    def is_authorised(self, user_id: int) -> bool:
        """Check whether a user has entered the bot password.

        :param user_id: Telegram user ID.
        :returns: True if the user is authorised.
        """
        with self._lock:
            return self._state.authorized_ids.get(user_id, False)

    def authorise(self, user_id: int) -> None:
        """Mark a user as authorised and persist it.

        :param user_id: Telegram user ID.
        """
        with self._lock:
            self._state.authorized_ids[user_id] = True
            self._save()

    @property
    def log_level(self) -> LogLevel:
        """Persisted log level."""
        with self._lock:
            return self._state.log_level

    def toggle_debug(self) -> LogLevel:
        """Switch between debug and info logging and persist the choice.

        :returns: The new log level.
        """
        with self._lock:
            if self._state.log_level is LogLevel.DEBUG:
                self._state.log_level = LogLevel.INFO
            else:
                self._state.log_level = LogLevel.DEBUG
            self._save()
            return self._state.log_level

    @property
    def last_update_id(self) -> int:
        """Highest Telegram update ID already processed."""
        with self._lock:
            return self._state.last_update_id

    def update_polling_cursor(self, update_id: int) -> None:
        """Persist the highest processed update ID.

        :param update_id: The update ID to store. Lower values are ignored.
        """
        with self._lock:
            if update_id <= self._state.last_update_id:
                return
            self._state.last_update_id = update_id
            self._save()
