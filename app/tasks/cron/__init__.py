from .daily_alert_generator import daily_alert_generator_task

__all__ = ["daily_alert_generator_task"]
