"""Core configuration and utilities for the estimator engine."""

from estimator.core.config import settings
from estimator.core.logging import setup_logging

__all__ = ["settings", "setup_logging"]
