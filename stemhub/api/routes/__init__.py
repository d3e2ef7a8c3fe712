"""API route modules."""
from __future__ import annotations

from stemhub.api.routes import health, review

__all__ = ["health", "review"]
