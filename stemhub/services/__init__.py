"""Services for the StemHub review engine."""
from __future__ import annotations
