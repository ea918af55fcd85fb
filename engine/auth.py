"""
Sign-in gate for the kiosk.

Only allow-listed accounts may sign in. The allow-list is checked before any
credential check, and the session is persisted so the kiosk survives
restarts without asking again.
"""

import hmac
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Iterable, Optional

from loguru import logger

from .config import AuthConfig
from .document_store import Subscription


NOT_ALLOWED_MESSAGE = "This account is not allowed."
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password."


class AuthError(Exception):
    """Sign-in was refused."""


class Authenticator(ABC):
    """Verifies credentials of an account."""

    @abstractmethod
    def authenticate(self, email: str, password: str) -> bool:
        pass


class PasswordProgramAuthenticator(Authenticator):
    """
    Checks passwords against secrets held by an external password program.

    Each configured account names a key; the program (e.g. `pass`) prints the
    secret for that key.
    """

    def __init__(self, auth_config: AuthConfig):
        self._config = auth_config

    def authenticate(self, email: str, password: str) -> bool:
        account = self._config.get_account(email)
        if account is None:
            return False
        try:
            secret = account.get_password(self._config.password_program)
        except RuntimeError as e:
            logger.error(f"Could not fetch secret for {email}: {e}")
            return False
        return hmac.compare_digest(secret.encode('utf-8'), password.encode('utf-8'))


class AllowListGate:
    """
    Sign-in state of the kiosk.

    The persisted session is only honoured while its email stays on the
    allow-list.
    """

    def __init__(
        self,
        allowed_emails: Iterable[str],
        authenticator: Authenticator,
        session_file: Optional[Path] = None,
    ):
        self._allowed = {email.strip().casefold() for email in allowed_emails if email.strip()}
        self._authenticator = authenticator
        self._session_file = Path(session_file) if session_file else None
        self._listeners: list[Callable[[Optional[str]], None]] = []
        self._user: Optional[str] = self._restore_session()

    def is_allowed(self, email: str) -> bool:
        return (email or "").strip().casefold() in self._allowed

    @property
    def current_user(self) -> Optional[str]:
        """Email of the signed-in account, or None."""
        return self._user

    # ==================== Session ====================

    def _restore_session(self) -> Optional[str]:
        if self._session_file is None or not self._session_file.exists():
            return None
        try:
            with open(self._session_file, 'r', encoding='utf-8') as f:
                email = json.load(f).get("email")
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable session file: {e}")
            return None
        if not email or not self.is_allowed(email):
            logger.info("Stored session is no longer allowed")
            return None
        logger.info(f"Restored session for {email}")
        return email

    def _save_session(self) -> None:
        if self._session_file is None:
            return
        if self._user is None:
            self._session_file.unlink(missing_ok=True)
            return
        self._session_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self._session_file, 'w', encoding='utf-8') as f:
            json.dump({"email": self._user}, f)

    # ==================== Sign in / out ====================

    def sign_in(self, email: str, password: str) -> str:
        """
        Sign in an allow-listed account.

        Raises:
            AuthError: if the account is not allow-listed (checked first) or
                the credentials are wrong.
        """
        email = (email or "").strip()
        if not self.is_allowed(email):
            logger.warning(f"Rejected sign-in for {email!r}: not allowed")
            raise AuthError(NOT_ALLOWED_MESSAGE)
        if not self._authenticator.authenticate(email, password or ""):
            logger.warning(f"Rejected sign-in for {email!r}: bad credentials")
            raise AuthError(INVALID_CREDENTIALS_MESSAGE)

        self._user = email
        self._save_session()
        logger.info(f"Signed in as {email}")
        self._notify()
        return email

    def sign_out(self) -> None:
        if self._user is None:
            return
        logger.info(f"Signed out {self._user}")
        self._user = None
        self._save_session()
        self._notify()

    def subscribe(self, callback: Callable[[Optional[str]], None]) -> Subscription:
        """Call back with the current user now and after every change."""
        self._listeners.append(callback)

        def _remove():
            if callback in self._listeners:
                self._listeners.remove(callback)

        subscription = Subscription(_remove)
        callback(self._user)
        return subscription

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._user)
