from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.power import router as power_router

__all__ = ["health_router", "power_router"]
