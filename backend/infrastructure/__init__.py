"""Infrastructure layer exports."""

from .classifier import (
    CategoryClassifier,
    KeywordCategoryClassifier,
    configure_classifier,
    get_classifier,
    reset_classifier,
)
from .polling import SessionValidationPoller
from .sessions import InMemorySessionRepository, SessionRepository

__all__ = [
    "CategoryClassifier",
    "InMemorySessionRepository",
    "KeywordCategoryClassifier",
    "SessionRepository",
    "SessionValidationPoller",
    "configure_classifier",
    "get_classifier",
    "reset_classifier",
]
