from __future__ import annotations

from typing import Any, Dict
import logging


def get_uvicorn_log_config(level: int | str = logging.INFO, capture: bool = True) -> Dict[str, Any]:
    """Return a logging dictConfig for uvicorn and the fetcher loggers.

    - Time format: HH:MM:SS
    - uvicorn error/access logs keep uvicorn's color-capable formatters.
    - ``backend.fetcher.*`` records are also copied into the in-memory
      acquisition log buffer when ``capture`` is true (served by /diagnostics/logs).
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    time_format = "%H:%M:%S"
    default_fmt = "%(asctime)s %(levelprefix)s [%(name)s] %(message)s"
    access_fmt = "%(asctime)s %(levelprefix)s %(client_addr)s - \"%(request_line)s\" %(status_code)s"

    app_handlers = ["default", "buffer"] if capture else ["default"]

    handlers: Dict[str, Any] = {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "level": level,
            "stream": "ext://sys.stdout",
        },
        "access": {
            "class": "logging.StreamHandler",
            "formatter": "access",
            "level": level,
            "stream": "ext://sys.stdout",
        },
    }
    if capture:
        handlers["buffer"] = {
            "()": "backend.fetcher.utils.log_buffer.make_buffer_handler",
            "level": level,
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": "uvicorn.logging.DefaultFormatter",
                "fmt": default_fmt,
                "datefmt": time_format,
                "use_colors": True,
            },
            "access": {
                "()": "uvicorn.logging.AccessFormatter",
                "fmt": access_fmt,
                "datefmt": time_format,
                "use_colors": True,
            },
        },
        "handlers": handlers,
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": level, "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": level, "propagate": False},
            "uvicorn.access": {"handlers": ["access"], "level": level, "propagate": False},
            "backend.fetcher": {"handlers": app_handlers, "level": level, "propagate": False},
        },
        "root": {"handlers": ["default"], "level": level},
    }
