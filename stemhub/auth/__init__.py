"""
StemHub Authentication Module

Identity is verified upstream by the gateway; this module only reads the
verified user id it forwards.
"""
from __future__ import annotations

from stemhub.auth.dependencies import require_user_id

__all__ = ["require_user_id"]
