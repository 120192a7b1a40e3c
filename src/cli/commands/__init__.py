"""CLI command modules."""

from .ingest import ingest
from .insights import insights
from .patterns import patterns
from .profile import profile
from .style import style

__all__ = [
    "ingest",
    "insights",
    "patterns",
    "profile",
    "style",
]
