"""Session management module."""

from dataset_viewer.sessions.registry import Session, SessionRegistry

__all__ = [
    "Session",
    "SessionRegistry",
]
