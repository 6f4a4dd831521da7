"""Circular magnifier overlay for live page content."""
from __future__ import annotations

from magnifier_client.config import ActivationMode, MagnifierConfig, Position, UpdateFrequency
from magnifier_client.magnifier import Magnifier

__all__ = [
    "ActivationMode",
    "Magnifier",
    "MagnifierConfig",
    "Position",
    "UpdateFrequency",
]
