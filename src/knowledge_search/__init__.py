"""Knowledge search package."""

from .config import ConfidenceConfig, RetrievalConfig

__all__ = ["ConfidenceConfig", "RetrievalConfig"]
