"""Structured logging for appliance sessions and reconciliation calls.

Every event passes through two local processors before rendering: one merges
the fields bound with :class:`LogContext` or :func:`add_context` (appliance
address, record kind, resource identifier), the other masks login credentials
and anti-forgery values. A VERBOSE level (15) sits between DEBUG and INFO and
carries one line per page exchange with the appliance.
"""

import logging
import sys
from collections.abc import Mapping
from contextvars import ContextVar, Token
from pathlib import Path
from typing import Any

import structlog

VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")


def _stdlib_verbose(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
    if self.isEnabledFor(VERBOSE):
        self._log(VERBOSE, message, args, **kwargs)


logging.Logger.verbose = _stdlib_verbose  # type: ignore[attr-defined]

# Event keys whose values must never reach a log sink
SECRET_KEYS = frozenset({"password", "passwordfld", "csrf_token", "form_value", "token"})
REDACTED = "***"

_bound_fields: ContextVar[Mapping[str, Any]] = ContextVar("opnsense_log_fields", default={})

# Chatty transport loggers that echo full URLs at INFO
_TRANSPORT_LOGGERS = ("httpx", "httpcore")


class LogContext:
    """
    Bind fields to every event logged inside a ``with`` block.

    Blocks nest; inner fields win on collision and the outer set is restored
    on exit::

        with LogContext(record="DHCP static mapping", verb="update"):
            with LogContext(resource="opt3/aa:bb:cc:dd:ee:ff"):
                logger.info("Resolving row")
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._token: Token[Mapping[str, Any]] | None = None

    def __enter__(self) -> "LogContext":
        self._token = _bound_fields.set({**_bound_fields.get(), **self.fields})
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._token is not None:
            _bound_fields.reset(self._token)
            self._token = None


def add_context(**fields: Any) -> None:
    """Bind fields for the rest of the current task (e.g. the appliance address)."""
    _bound_fields.set({**_bound_fields.get(), **fields})


def clear_context(key: str) -> None:
    fields = _bound_fields.get()
    if key in fields:
        _bound_fields.set({k: v for k, v in fields.items() if k != key})


def clear_all_context() -> None:
    _bound_fields.set({})


def _context_processor(
    logger: logging.Logger | None, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Merge bound fields into the event; explicit event keys take precedence."""
    bound = _bound_fields.get()
    if not bound:
        return event_dict
    return {**bound, **event_dict}


def _mask(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: REDACTED if k in SECRET_KEYS and v else _mask(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_mask(item) for item in value]
    return value


def redact_secrets(
    logger: logging.Logger | None, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Mask credential and token values anywhere in the event.

    Logged form bodies are nested mappings, so the walk descends into dicts
    and lists. Empty values are left as they are so a missing token
    stays visible when debugging.
    """
    return _mask(event_dict)


class VerboseBoundLogger(structlog.stdlib.BoundLogger):
    """Stdlib-backed bound logger with a ``verbose`` method for the VERBOSE level."""

    def verbose(self, event: str, *args: Any, **kw: Any) -> Any:
        return self._proxy_to_logger("verbose", event, *args, **kw)


def log_verbose(logger: Any, event: str, **fields: Any) -> None:
    """
    Emit ``event`` at VERBOSE.

    Before :func:`configure_logging` has run, structlog hands out its default
    filtering logger, which only knows the standard levels; the event goes out
    at DEBUG there.
    """
    bound = logger.bind()
    emit = bound.verbose if isinstance(bound, VerboseBoundLogger) else bound.debug
    emit(event, **fields)


def get_log_level(level: str) -> int:
    """Resolve a level name (VERBOSE included) to its number; INFO when unknown."""
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _route_stdlib(log_level: int, log_file: str | Path | None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path))

    logging.basicConfig(format="%(message)s", level=log_level, handlers=handlers, force=True)
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def _processors(json_logs: bool) -> list[Any]:
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    return [
        structlog.contextvars.merge_contextvars,
        _context_processor,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets,
        renderer,
    ]


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_file: str | Path | None = None,
) -> None:
    """
    Route structlog through the standard library and pick a renderer.

    Args:
        level: Level name, VERBOSE included
        json_logs: Render JSON lines instead of the console format
        log_file: Also append rendered events to this file
    """
    _route_stdlib(get_log_level(level), log_file)
    structlog.configure(
        processors=_processors(json_logs),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=VerboseBoundLogger,
        cache_logger_on_first_use=True,
    )
