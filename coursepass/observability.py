"""
coursepass Observability

Structured logging and a hash-chained audit trail.

    ┌─────────────────────────────────────────────────────────┐
    │  logger.info("msg", course_id=x)  audit.log(...)        │
    │              │                          │               │
    │              ▼                          ▼               │
    │      StructuredHandler          AuditEvent + chain hash │
    │      (one JSON line)            (tamper-evident trail)  │
    └─────────────────────────────────────────────────────────┘

Correlation ids travel in a context variable so every record written while
handling one call shares the same id.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
import time
import traceback
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, TypeVar

from coursepass.core import canonical_json_bytes, sha256_bytes

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Layer(Enum):
    """Subsystems, used to categorize log records."""
    ENGINE = "engine"
    STORE = "store"
    GENESIS = "genesis"
    LEDGER = "ledger"
    AUTH = "auth"
    RUNTIME = "runtime"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


def configure_logging(level: str = "info", log_format: str = "json", stream: Any = None) -> None:
    """Install a single handler on the ``coursepass`` logger tree."""
    root = logging.getLogger("coursepass")
    root.setLevel(getattr(logging, LogLevel(level.lower()).name))
    for handler in list(root.handlers):
        root.removeHandler(handler)
    if log_format == "json":
        handler: logging.Handler = StructuredHandler(stream)
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)


class CourseLogger:
    """
    Structured logger for coursepass components.

    Records carry the layer, an optional operation name and free-form
    keyword context; ``StructuredHandler`` renders them as JSON.
    """

    def __init__(self, name: str, layer: Layer):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"coursepass.{layer.value}.{name}")

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        """Internal log method."""
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=round(duration_ms, 3),
            **context,
        )


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one if unset."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: Layer) -> CourseLogger:
    """Get a logger for a coursepass component."""
    return CourseLogger(name, layer)


T = TypeVar("T")


def timed_operation(
    logger: CourseLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
        wrapper.__name__ = getattr(func, "__name__", operation_name)
        wrapper.__doc__ = func.__doc__
        return wrapper
    return decorator


@dataclass
class AuditEvent:
    """One audited registry call."""
    event_id: str
    timestamp: str
    actor: str
    action: str
    resource_id: str
    outcome: str  # success, failure
    correlation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    previous_hash: str = ""
    event_hash: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditLogger:
    """
    Hash-chained audit trail.

    Each entry's hash covers its own content and the previous entry's hash,
    so editing or dropping an entry breaks ``verify_chain``. Only the most
    recent ``retention`` entries stay in memory; every entry is also written
    to the log.
    """

    GENESIS_HASH = "genesis"
    DEFAULT_RETENTION = 1000

    def __init__(self, logger: CourseLogger, retention: int = DEFAULT_RETENTION):
        self._logger = logger
        self._last_hash: str = self.GENESIS_HASH
        # Hash the oldest retained entry links back to
        self._anchor_hash: str = self.GENESIS_HASH
        self._entries: Deque[AuditEvent] = deque(maxlen=retention)
        self._lock = threading.Lock()

    @staticmethod
    def _compute_hash(event: AuditEvent) -> str:
        content = event.to_dict()
        content.pop("event_hash", None)
        return sha256_bytes(canonical_json_bytes(content))

    def log(
        self,
        actor: str,
        action: str,
        resource_id: str,
        outcome: str,
        **details: Any,
    ) -> AuditEvent:
        """Record an audit event."""
        with self._lock:
            event = AuditEvent(
                event_id=uuid.uuid4().hex,
                timestamp=datetime.now(timezone.utc).isoformat(),
                actor=actor,
                action=action,
                resource_id=resource_id,
                outcome=outcome,
                correlation_id=get_correlation_id(),
                details={k: v for k, v in details.items() if v is not None},
                previous_hash=self._last_hash,
            )
            event.event_hash = self._compute_hash(event)
            self._last_hash = event.event_hash
            if len(self._entries) == self._entries.maxlen:
                self._anchor_hash = self._entries[0].event_hash
            self._entries.append(event)

        self._logger.info(
            f"AUDIT: {action} on {resource_id or '-'} -> {outcome}",
            operation="audit",
            actor=actor,
            event_hash=event.event_hash,
        )
        return event

    @property
    def entries(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._entries)

    def verify_chain(self) -> bool:
        """Recompute every retained hash and link."""
        with self._lock:
            previous = self._anchor_hash
            for entry in self._entries:
                if entry.previous_hash != previous:
                    return False
                if self._compute_hash(entry) != entry.event_hash:
                    return False
                previous = entry.event_hash
            return True
