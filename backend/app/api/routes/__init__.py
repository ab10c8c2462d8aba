"""Route exports for the API layer.

Re-exports the participant and cluster routers so callers can include every endpoint group with a single import.
"""

from .clusters import router as clusters_router
from .participants import router as participants_router

__all__ = ["clusters_router", "participants_router"]
