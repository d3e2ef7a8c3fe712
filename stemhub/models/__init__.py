"""Pydantic models for the StemHub API."""
from __future__ import annotations

from stemhub.models.base import CamelModel

__all__ = ["CamelModel"]
