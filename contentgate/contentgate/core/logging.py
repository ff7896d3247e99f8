"""
Logging configuration for the gate service.

Records carry two pipeline fields next to the usual ones: ``pipeline`` (the
``[date platform/variant]`` tag of the request being generated) and
``gate_state`` (its current generation state). Records logged outside a
pipeline get ``-`` for both.
"""
import logging
import logging.config
import sys
from typing import Any, Dict, MutableMapping, Optional, Tuple

from .settings import get_settings

settings = get_settings()

PIPELINE_FIELDS = ("pipeline", "gate_state")


class PipelineContextFilter(logging.Filter):
    """Fill in missing pipeline fields so every formatter can reference them."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in PIPELINE_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, "-")
        return True


class PipelineLoggerAdapter(logging.LoggerAdapter):
    """Logger bound to one generation pipeline; ``set_state`` follows its transitions."""

    def set_state(self, state: str) -> None:
        self.extra["gate_state"] = state

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logging_config(service_name: Optional[str] = None) -> Dict[str, Any]:
    """Build the dictConfig for one service; JSON output in production."""
    formatter = "json" if settings.environment == "production" else "console"
    service = service_name or "contentgate"
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "pipeline_context": {
                "()": PipelineContextFilter,
            }
        },
        "formatters": {
            "json": {
                "format": f"%(asctime)s %(levelname)s {service} %(name)s %(pipeline)s %(gate_state)s %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
                "class": "pythonjsonlogger.jsonlogger.JsonFormatter"
            },
            "console": {
                "format": f"%(asctime)s [{service}] [%(levelname)s] %(name)s %(pipeline)s %(gate_state)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": settings.log_level,
                "formatter": formatter,
                "filters": ["pipeline_context"],
                "stream": sys.stdout
            }
        },
        "loggers": {
            "contentgate": {
                "level": settings.log_level,
                "handlers": ["console"],
                "propagate": False
            },
            "uvicorn": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False
            },
            "uvicorn.access": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False
            },
            "httpx": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False
            }
        },
        "root": {
            "level": settings.log_level,
            "handlers": ["console"]
        }
    }
    return config


def setup_logging(service_name: Optional[str] = None) -> None:
    """Configure logging for a service process."""
    logging.config.dictConfig(get_logging_config(service_name))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_pipeline_logger(name: str, pipeline: str, gate_state: str = "-") -> PipelineLoggerAdapter:
    """Logger whose records carry the pipeline tag and its current gate state."""
    return PipelineLoggerAdapter(logging.getLogger(name), {"pipeline": pipeline, "gate_state": gate_state})
