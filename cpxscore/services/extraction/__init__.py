"""Evidence extraction services."""

from .base import EvidenceExtractor
from .dummy import DummyEvidenceExtractor

__all__ = ["EvidenceExtractor", "DummyEvidenceExtractor"]
