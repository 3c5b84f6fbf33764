"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from src.api.routes import commands, platforms, scheduler

__all__ = [
    "commands",
    "platforms",
    "scheduler",
]
