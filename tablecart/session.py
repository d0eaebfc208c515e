"""Active table session as seen by the cart subsystem.

The cart code only reads the session id. Whoever runs the QR-code join flow
owns a ``SessionInfoStore`` and calls ``set_session``/``clear`` on it.
"""
from typing import Callable, List, Optional, Protocol

from tablecart.errors import SessionMissing
from tablecart.logging import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)

SessionListener = Callable[[Optional[str]], None]


class SessionContext(Protocol):
    @property
    def session_id(self) -> Optional[str]:
        ...


class SessionInfoStore:
    """Holds the active session id and tells listeners when it changes."""

    def __init__(self, session_id: Optional[str] = None):
        self._session_id = session_id or None
        self._listeners: List[SessionListener] = []

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def set_session(self, session_id: Optional[str]) -> None:
        session_id = session_id or None
        if session_id == self._session_id:
            return
        logger.info(
            "Session changed: %s -> %s",
            sanitize_id_for_logging(self._session_id),
            sanitize_id_for_logging(session_id),
        )
        self._session_id = session_id
        for listener in list(self._listeners):
            listener(session_id)

    def clear(self) -> None:
        self.set_session(None)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


def require_session_id(context: SessionContext) -> str:
    """Return the active session id or raise ``SessionMissing``."""
    session_id = context.session_id
    if not session_id:
        raise SessionMissing()
    return session_id
