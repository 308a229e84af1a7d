"""structlog configuration for joconde-sync.

One processor chain (contextvars, level, timestamp, stack/exception info)
ends in either a console renderer or a JSON renderer.  JSON is used when
``json_output`` is set or ``APP_ENV=production``; imports that run for
hours under a scheduler usually want the latter.

Everything is written to stderr.  The CLI prints its reports on stdout, so
``joconde-sync status > runs.txt`` captures the report without log noise.

Stdlib loggers (httpx, aiosqlite) are routed through the same renderer and
held at ``library_level`` so a per-chunk download does not flood the log.
"""

import logging
import os
import sys

import structlog

_LIBRARY_LOGGERS = ("httpx", "httpcore", "aiosqlite")


class _StderrHandler(logging.StreamHandler):
    """A StreamHandler that writes to whatever ``sys.stderr`` is at emit time."""

    @property
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, value) -> None:
        pass


def _stderr_logger_factory(*args) -> structlog.PrintLogger:
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    library_level: str = "WARNING",
) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: Minimum level for joconde-sync events (DEBUG shows the
                   per-record parser events).
        json_output: Render JSON lines regardless of ``APP_ENV``.
        library_level: Minimum level for httpx / aiosqlite stdlib loggers.

    Returns:
        The root structlog logger.
    """
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"

    # merge_contextvars must run first so the orchestrator's run_id binding
    # is present before rendering.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=_stderr_logger_factory,
        # Loggers are rebuilt per call so a replaced sys.stderr is honored.
        cache_logger_on_first_use=False,
    )

    handler = _StderrHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared_processors,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level.upper())

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger tagged with *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


def bind_run(run_id: str) -> None:
    """Attach *run_id* to every event logged by the current task."""
    structlog.contextvars.bind_contextvars(run_id=run_id)


def unbind_run() -> None:
    structlog.contextvars.unbind_contextvars("run_id")
