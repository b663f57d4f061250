import logging
import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

# Chatty third-party loggers, capped at WARNING once routed into loguru.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "uvicorn.access")


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


class ConsoleLogConsumer:
    def register(self, level: str) -> None:
        logger.add(
            sys.stderr,
            level=level,
            format="<green>{time:HH:mm:ss}</green> <level>{level:<8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        )

    def describe(self, level: str) -> str:
        return f"console (stderr, {level})"


class FileLogConsumer:
    def __init__(self, path: str = "logs/portfolio_chat.log", rotation: str = "10 MB", retention: int = 5):
        self._path = path
        self._rotation = rotation
        self._retention = retention

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self._path,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}",
            rotation=self._rotation,
            retention=self._retention,
            enqueue=True,
        )

    def describe(self, level: str) -> str:
        return f"file ({self._path}, {level}, rotate at {self._rotation})"


class JsonLogConsumer:
    """One JSON record per line, for log collectors in production."""

    def __init__(self, stream: str = "stdout"):
        self._stream = stream

    def register(self, level: str) -> None:
        sink = sys.stderr if self._stream == "stderr" else sys.stdout
        logger.add(sink, level=level, serialize=True)

    def describe(self, level: str) -> str:
        return f"json ({self._stream}, {level})"


class _InterceptHandler(logging.Handler):
    """Forwards stdlib ``logging`` records (uvicorn, httpx, SDKs) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def route_stdlib_logging(level: str = "INFO") -> None:
    logging.basicConfig(handlers=[_InterceptHandler()], level=level, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = []
        std_logger.propagate = True
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
    "json": JsonLogConsumer,
}


def setup_logging(level: str = "INFO", consumers: list[dict[str, Any]] | None = None) -> list[str]:
    """Replace every loguru sink with the configured consumers.

    ``consumers`` defaults to console only. Each entry is ``{"type": ..., "level": ...}``
    plus constructor kwargs for that consumer. Returns one description per sink.
    """
    logger.remove()

    descriptions: list[str] = []
    for config in consumers if consumers is not None else [{"type": "console"}]:
        sink_type = config.get("type", "")
        cls = _CONSUMER_TYPES.get(sink_type)
        if cls is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue

        sink_level = config.get("level", level)
        consumer = cls(**{k: v for k, v in config.items() if k not in ("type", "level")})
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))

    route_stdlib_logging(level)
    return descriptions
