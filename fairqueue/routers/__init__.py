"""API Routers package

Routers are organized by feature domain.
"""

from . import auth_router, overlay_router, queue_router, rewards_router, status_router

__all__ = [
    "auth_router",
    "overlay_router",
    "queue_router",
    "rewards_router",
    "status_router",
]
