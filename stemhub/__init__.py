"""StemHub — multi-reviewer consensus and version promotion for stem stages."""
from __future__ import annotations

__version__ = "0.4.0"
