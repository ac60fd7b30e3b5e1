"""
SOULMINT Observability

Structured logging, tracing spans, and a hash-chained audit trail for the
mint pipeline. Every log line is a single JSON object on stderr carrying the
correlation id, trace/span ids and the pipeline layer that emitted it.

Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │  authorizer / roots / zkp / ledger / events / cli        │
    │      logger.warning(..., error_code=...)   span(...)     │
    └───────────────────────┬──────────────────────────────────┘
                            │  contextvars: correlation, trace, span
    ┌───────────────────────▼──────────────────────────────────┐
    │   MintLogger ──▶ "soulmint.<layer>.<name>" std logger    │
    │   Tracer ──▶ exporters        AuditLog ──▶ hash chain    │
    └───────────────────────┬──────────────────────────────────┘
                            │
    ┌───────────────────────▼──────────────────────────────────┐
    │        StructuredHandler + JsonFormatter (stderr)        │
    └──────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import hashlib
import json
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

ROOT_LOGGER = "soulmint"

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "soulmint_correlation_id", default=""
)
_trace_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "soulmint_trace_id", default=""
)
_span_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "soulmint_span_id", default=""
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class LogLevel(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def stdlib_level(self) -> int:
        return logging.getLevelName(self.value.upper())


class MintLayer(Enum):
    """Pipeline layer a log line or span belongs to."""
    DATES = "dates"
    ROOTS = "roots"
    ATTESTATION = "attestation"
    ZK = "zk"
    LEDGER = "ledger"
    AUTHORIZER = "authorizer"
    EVENTS = "events"
    CONFIG = "config"
    CLI = "cli"


# =============================================================================
# CORRELATION
# =============================================================================

def generate_correlation_id() -> str:
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Correlation id of the current context; one is minted on first use."""
    current = correlation_id_var.get()
    if not current:
        current = generate_correlation_id()
        correlation_id_var.set(current)
    return current


# =============================================================================
# STRUCTURED LOGGING
# =============================================================================

_STRUCTURED_FIELDS = ("layer", "operation", "error_code", "duration_ms", "context")


class JsonFormatter(logging.Formatter):
    """Render a record as one JSON object, dropping empty fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": correlation_id_var.get(),
            "trace_id": _trace_var.get(),
            "span_id": _span_var.get(),
        }
        for name in _STRUCTURED_FIELDS:
            payload[name] = getattr(record, name, None)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(
            {k: v for k, v in payload.items() if v not in (None, "", {})},
            default=str,
        )


class StructuredHandler(logging.StreamHandler):
    """Stream handler (stderr by default) emitting ``JsonFormatter`` lines."""

    def __init__(self, stream: Any = None):
        super().__init__(stream)
        self.setFormatter(JsonFormatter())


_level = LogLevel.INFO


def configure_logging(level: LogLevel) -> None:
    """Set the level of the ``soulmint`` logger tree."""
    global _level
    _level = level
    logging.getLogger(ROOT_LOGGER).setLevel(level.stdlib_level)


def _ensure_root_handler() -> None:
    root = logging.getLogger(ROOT_LOGGER)
    if root.level == logging.NOTSET:
        root.setLevel(_level.stdlib_level)
    if not any(isinstance(h, StructuredHandler) for h in root.handlers):
        root.addHandler(StructuredHandler())


class MintLogger:
    """
    Layer-tagged wrapper over a stdlib logger.

    Keyword arguments other than ``operation``, ``error_code`` and
    ``duration_ms`` end up in the record's ``context`` object.
    """

    def __init__(self, name: str, layer: MintLayer):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"{ROOT_LOGGER}.{layer.value}.{name}")
        _ensure_root_handler()

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
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(
            level,
            message,
            exc_info=exc_info,
            extra={
                "layer": self.layer.value,
                "operation": operation,
                "error_code": error_code,
                "duration_ms": duration_ms,
                "context": context,
            },
        )

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(self, message: str, exc_info: bool = False, **context: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **context)

    def operation(self, name: str, duration_ms: float, success: bool = True, **context: Any) -> None:
        """One line per finished operation: info on success, warning on failure."""
        self._log(
            logging.INFO if success else logging.WARNING,
            f"{name} {'succeeded' if success else 'failed'}",
            operation=name,
            duration_ms=round(duration_ms, 3),
            **context,
        )


def get_logger(name: str, layer: MintLayer) -> MintLogger:
    return MintLogger(name, layer)


T = TypeVar("T")


def timed_operation(logger: MintLogger, name: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Log the wall time and outcome of every call to the decorated function."""
    def decorate(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def timed(*args: Any, **kwargs: Any) -> T:
            started = time.monotonic()
            ok = False
            try:
                result = func(*args, **kwargs)
                ok = True
                return result
            finally:
                logger.operation(name, (time.monotonic() - started) * 1000, ok)
        return timed
    return decorate


# =============================================================================
# TRACING
# =============================================================================

@dataclass
class SpanEvent:
    name: str
    timestamp: str
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Span:
    """
    A timed unit of work, usually one ``authorize_mint`` call.

    Pipeline phases (root resolved, date checked, ...) are recorded as span
    events rather than child spans.
    """
    name: str
    layer: str
    trace_id: str
    span_id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    parent_span_id: str = ""
    status: str = "ok"
    attributes: Dict[str, Any] = field(default_factory=dict)
    events: List[SpanEvent] = field(default_factory=list)
    started: float = field(default_factory=time.monotonic)
    finished: Optional[float] = None

    def record_event(self, name: str, **attributes: Any) -> None:
        self.events.append(SpanEvent(name, _utc_now(), attributes))

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    @property
    def duration_ms(self) -> float:
        end = self.finished if self.finished is not None else time.monotonic()
        return (end - self.started) * 1000

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        del data["started"], data["finished"]
        data["duration_ms"] = round(self.duration_ms, 3)
        return data


SpanExporter = Callable[[Span], None]


class Tracer:
    """
    In-process tracer.

    Spans nest through context variables: a span opened inside another one
    shares its trace id and records it as parent. Finished spans are handed
    to every exporter; a failing exporter is logged and skipped.
    """

    def __init__(self):
        self._open: Dict[str, Span] = {}
        self._exporters: List[SpanExporter] = []
        self._lock = threading.Lock()

    def add_exporter(self, exporter: SpanExporter) -> None:
        self._exporters.append(exporter)

    @property
    def active_spans(self) -> int:
        with self._lock:
            return len(self._open)

    @contextmanager
    def span(self, name: str, layer: MintLayer, **attributes: Any) -> Iterator[Span]:
        span = Span(
            name=name,
            layer=layer.value,
            trace_id=_trace_var.get() or uuid.uuid4().hex,
            parent_span_id=_span_var.get(),
            attributes=attributes,
        )
        trace_token = _trace_var.set(span.trace_id)
        span_token = _span_var.set(span.span_id)
        with self._lock:
            self._open[span.span_id] = span
        try:
            yield span
        except BaseException as e:
            span.status = "error"
            span.attributes["exception_type"] = type(e).__name__
            span.attributes["status_message"] = str(e)
            raise
        finally:
            span.finished = time.monotonic()
            _span_var.reset(span_token)
            _trace_var.reset(trace_token)
            with self._lock:
                self._open.pop(span.span_id, None)
            self._export(span)

    def _export(self, span: Span) -> None:
        for exporter in self._exporters:
            try:
                exporter(span)
            except Exception:
                logging.getLogger(f"{ROOT_LOGGER}.tracer").exception(
                    "Span exporter failed for %s", span.name
                )


_tracer: Optional[Tracer] = None


def get_tracer() -> Tracer:
    global _tracer
    if _tracer is None:
        _tracer = Tracer()
    return _tracer


# =============================================================================
# AUDIT TRAIL
# =============================================================================

@dataclass
class AuditEntry:
    """One mint decision. ``outcome`` is ``minted`` or ``rejected``."""
    recipient: str
    action: str
    outcome: str
    reason: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: str = field(default_factory=_utc_now)
    correlation_id: str = field(default_factory=get_correlation_id)
    previous_hash: str = ""
    entry_hash: str = ""

    def compute_hash(self) -> str:
        body = asdict(self)
        del body["entry_hash"]
        canonical = json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class AuditLog:
    """
    Append-only, hash-chained record of mint decisions.

    Each entry commits to its predecessor's hash, so editing or dropping an
    entry breaks ``verify_chain()`` for everything after it.
    """

    GENESIS = "0" * 64

    def __init__(self, logger: Optional[MintLogger] = None):
        self._logger = logger or get_logger("audit", MintLayer.AUTHORIZER)
        self._entries: List[AuditEntry] = []
        self._lock = threading.Lock()

    @property
    def head(self) -> str:
        with self._lock:
            return self._entries[-1].entry_hash if self._entries else self.GENESIS

    def record(
        self,
        recipient: str,
        action: str,
        outcome: str,
        reason: str = "",
        **details: Any,
    ) -> AuditEntry:
        entry = AuditEntry(recipient, action, outcome, reason, details)
        with self._lock:
            entry.previous_hash = (
                self._entries[-1].entry_hash if self._entries else self.GENESIS
            )
            entry.entry_hash = entry.compute_hash()
            self._entries.append(entry)

        self._logger.info(
            f"Audit {action}: {outcome}",
            operation="audit",
            recipient=recipient,
            reason=reason,
            entry_hash=entry.entry_hash,
        )
        return entry

    def entries(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def verify_chain(self) -> bool:
        with self._lock:
            previous = self.GENESIS
            for entry in self._entries:
                if entry.previous_hash != previous or entry.compute_hash() != entry.entry_hash:
                    return False
                previous = entry.entry_hash
            return True
