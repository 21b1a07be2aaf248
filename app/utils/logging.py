import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict

from loguru import logger

from app.config.settings import settings
from app.utils.context import get_request_id

LOGGING_CONFIG_PATH = Path(__file__).resolve().parents[2] / "logging_config.json"

# Third-party loggers routed through loguru
INTERCEPTED_LOGGERS = [
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "celery",
    "celery.task",
    "httpx",
]


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru with the current request id."""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(request_id=get_request_id() or "app").opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


class CustomizeLogger:
    @classmethod
    def make_logger(cls, config_path: Path, environment: str = "logger"):
        config = cls.load_logging_config(config_path)
        logging_config = config.get(environment, config["logger"])

        logger.remove()
        logger.configure(extra={"request_id": "app"})

        # Console logger with colors
        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            level=logging_config["level"].upper(),
            format=logging_config["console_format"],
            colorize=True,
        )
        logger.add(**cls._file_sink_options(logging_config))

        cls._setup_intercept_handlers()
        return logger

    @staticmethod
    def _file_sink_options(logging_config: Dict[str, Any]) -> Dict[str, Any]:
        filename = f"{date.today().strftime('%Y-%m-%d')}-{logging_config['filename']}"
        options: Dict[str, Any] = {
            "sink": str(Path(logging_config["log_dir"]) / filename),
            "rotation": logging_config["rotation"],
            "retention": logging_config["retention"],
            "enqueue": True,
            "backtrace": True,
            "level": logging_config["level"].upper(),
            "colorize": False,
        }
        # JSON file logs for production log shipping
        if logging_config.get("use_json_logs") and logging_config["file_format"] == "json":
            options["serialize"] = True
        else:
            options["format"] = logging_config["file_format"]
        return options

    @staticmethod
    def _setup_intercept_handlers():
        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

        for log_name in INTERCEPTED_LOGGERS:
            _logger = logging.getLogger(log_name)
            _logger.handlers = [InterceptHandler()]
            _logger.propagate = False

    @staticmethod
    def load_logging_config(config_path: Path) -> Dict[str, Any]:
        with open(config_path) as config_file:
            return json.load(config_file)


custom_logger = CustomizeLogger.make_logger(
    LOGGING_CONFIG_PATH,
    "production" if settings.ENVIRONMENT == "production" else "logger",
)


def get_logger():
    """Get the custom logger instance with request ID binding."""
    request_id = get_request_id() or "app"
    return custom_logger.bind(request_id=request_id)
