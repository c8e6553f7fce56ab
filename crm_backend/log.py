"""
Console logging setup for the server entry point.
"""

import logging
import os
import sys


class ColoredFormatter(logging.Formatter):
    """Custom formatter that adds colors to log output."""

    grey = "\x1b[38;21m"
    green = "\x1b[32m"
    yellow = "\x1b[33m"
    red = "\x1b[31m"
    bold_red = "\x1b[31;1m"
    orange = "\x1b[38;5;208m"
    reset = "\x1b[0m"

    COLORS = {
        logging.DEBUG: grey,
        logging.INFO: green,
        logging.WARNING: yellow,
        logging.ERROR: red,
        logging.CRITICAL: bold_red
    }

    def format(self, record):
        formatted = super().format(record)

        # Only colorize if outputting to terminal
        if sys.stdout.isatty():
            log_color = self.COLORS.get(record.levelno, self.grey)

            # Format is: "timestamp - LEVEL - name - message"
            parts = formatted.split(' - ', 3)
            if len(parts) >= 3:
                timestamp = parts[0]
                level = parts[1]
                rest = ' - '.join(parts[2:])
                formatted = f"{self.orange}{timestamp}{self.reset} - {log_color}{level}{self.reset} - {rest}"

        return formatted


VALID_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _level_from_env(name: str, default: str) -> str:
    level = os.environ.get(name, default).upper()
    return level if level in VALID_LEVELS else default


def setup_logging() -> dict:
    """
    Configure root, application and uvicorn loggers.

    ``LOG_LEVEL`` sets the crm_backend level (default INFO) and
    ``WEBSOCKET_LOG_LEVEL`` the websocket package (default WARNING).

    Returns:
        uvicorn ``log_config`` using the same formatter
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter(
        '%(asctime)s - %(levelname)-8s - %(name)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root.addHandler(handler)
    root.setLevel(logging.WARNING)

    logging.getLogger("crm_backend").setLevel(_level_from_env("LOG_LEVEL", "INFO"))
    logging.getLogger("crm_backend.websocket").setLevel(_level_from_env("WEBSOCKET_LOG_LEVEL", "WARNING"))

    uvicorn_level = _level_from_env("UVICORN_LOG_LEVEL", "INFO")

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "colored": {
                "()": ColoredFormatter,
                "fmt": "%(asctime)s - %(levelname)-8s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "colored",
                "stream": "ext://sys.stdout"
            },
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": uvicorn_level, "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": uvicorn_level, "propagate": False},
            "uvicorn.access": {
                "handlers": ["default"],
                "level": "INFO" if uvicorn_level != "ERROR" else "WARNING",
                "propagate": False
            },
        }
    }
