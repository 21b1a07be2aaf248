from .cron import *

__all__ = [
    # Scheduled/Cron Tasks
    "daily_alert_generator_task",
]
