"""structlog configuration for CourseMind.

Console output in development, one JSON object per line in production
(``main.py`` passes ``json_output`` based on ``APP_ENV``).  The stdlib
root logger is routed through the same processors so chromadb, httpx and
uvicorn records share the format and carry the bound ``job_id`` /
``material_id`` context.
"""

import logging
import sys

import structlog

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Install the structlog pipeline and the stdlib bridge.

    Parameters
    ----------
    log_level:
        Minimum level name, e.g. ``"INFO"``.
    json_output:
        Render JSON lines instead of the coloured console format.
    """
    level = logging.getLevelName(log_level.upper())
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, structlog.dev.set_exc_info, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(level)


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)
