"""
Structured logging configuration using structlog.

All logs go to stderr so stdout stays free for the MCP protocol and the CLI
summary. Values under credential-like keys are masked before rendering.
"""
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, MutableMapping

import structlog

LOG_FILE_NAME = "multicloud-deploy.log"

REDACTED = "***"

# Substrings of keys whose values never reach a log line
SENSITIVE_KEY_PARTS = ("token", "secret", "password", "private_key", "api_key", "authorization")

# Chatty libraries kept at WARNING regardless of our level
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def _is_sensitive(key: Any) -> bool:
    lowered = str(key).lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: REDACTED if _is_sensitive(k) else _redact(v) for k, v in value.items()}
    return value


def redact_sensitive(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """structlog processor masking credential-like keys, including inside nested context dicts."""
    for key in list(event_dict):
        if key == "event":
            continue
        if _is_sensitive(key):
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _redact(event_dict[key])
    return event_dict


def setup_logging(
    level: str = "INFO",
    json_logs: bool = True,
    log_dir: Path | None = None
) -> None:
    """
    Configure structured logging with structlog.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, output JSON format. If False, use console format
        log_dir: Optional directory for the multicloud-deploy.log file
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / LOG_FILE_NAME))

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root_logger.level))


def configure_logging(settings) -> None:
    """setup_logging from Settings (log_level, log_json, log_dir)."""
    setup_logging(level=settings.log_level, json_logs=settings.log_json, log_dir=settings.log_dir)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def deployment_log_context(deployment_id: str, **extra: Any) -> Iterator[None]:
    """
    Bind deployment identifiers to every log line emitted inside the block.

    Nested async calls (command runner, reconcilers) inherit the binding
    through structlog contextvars.

    Args:
        deployment_id: Deployment being executed
        **extra: Additional key/values to bind (environment, run id)
    """
    with structlog.contextvars.bound_contextvars(deployment_id=deployment_id, **extra):
        yield
