"""Narrative feedback services."""

from .base import FeedbackService
from .dummy import DummyFeedbackService

__all__ = ["DummyFeedbackService", "FeedbackService"]
