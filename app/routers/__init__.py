from .cron import cron_router
from .main import main_router

__all__ = ["main_router", "cron_router"]
