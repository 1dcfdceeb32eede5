from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.ping import router as ping_router

__all__ = ["health_router", "ping_router"]
