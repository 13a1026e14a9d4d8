"""Encounter phase classification services."""

from .base import SectionClassifier, expected_phase_order
from .dummy import DummySectionClassifier

__all__ = ["DummySectionClassifier", "SectionClassifier", "expected_phase_order"]
