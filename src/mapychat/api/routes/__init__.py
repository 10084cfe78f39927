"""API routes for the MapyChat proxy."""

from mapychat.api.routes.proxy import router as proxy_router
from mapychat.api.routes.system import router as system_router

__all__ = ["proxy_router", "system_router"]
