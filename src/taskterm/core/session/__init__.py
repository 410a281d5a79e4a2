"""Session persistence bridge - per-task resumption metadata."""

from taskterm.core.session.persistence import SessionBridge, SessionData, SessionStore

__all__ = [
    "SessionBridge",
    "SessionData",
    "SessionStore",
]
