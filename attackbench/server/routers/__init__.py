"""
Router initialization module.

Exports all API routers for the workbench backend.
"""
from attackbench.server.routers import attacks, evidence, realtime, tools

__all__ = [
    "attacks",
    "evidence",
    "realtime",
    "tools",
]
