from .auth import router as auth_router
from .dashboard import router as dashboard_router
from .pages import router as pages_router

__all__ = ["auth_router", "dashboard_router", "pages_router"]
