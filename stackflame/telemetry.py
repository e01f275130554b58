"""
Span instrumentation for the flame graph pipeline.

Features:
- `profile_block` context manager, the default stage hook of the pipeline
- `@profile` decorator for function-level spans
- `add_tag` to annotate the current span
- optional SQLite span exporter (`init_telemetry`), spans are dropped when
  no database is configured
- `start_session` / `end_session` root span around a CLI invocation
"""

import json
import os
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from functools import wraps
from typing import Dict, List, Optional

# globals
_LOCK = threading.Lock()
_conn = None
_trace_id = None
_root_span = None
_tls = threading.local()


def _get_span_stack():
    if not hasattr(_tls, "span_stack"):
        _tls.span_stack = []
    return _tls.span_stack


def _init_db_file(db_file: str):
    """Initialize SQLite connection and table at given path."""
    directory = os.path.dirname(db_file)
    if directory:
        os.makedirs(directory, exist_ok=True)
    global _conn
    _conn = sqlite3.connect(db_file, check_same_thread=False)
    _conn.execute("PRAGMA journal_mode=WAL;")
    _conn.execute("""
CREATE TABLE IF NOT EXISTS otel_spans (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  trace_id TEXT NOT NULL,
  span_id TEXT NOT NULL,
  parent_span_id TEXT,
  name TEXT NOT NULL,
  start_time INTEGER NOT NULL,
  end_time INTEGER NOT NULL,
  attributes TEXT NOT NULL,
  status_code INTEGER NOT NULL
);
""")
    _conn.commit()


def init_telemetry(db_path: str) -> None:
    """Open (or create) the span database and start a new trace ID."""
    global _trace_id
    with _LOCK:
        if _conn is not None:
            return
        _trace_id = str(uuid.uuid4())
        _init_db_file(os.path.expanduser(db_path))


def telemetry_enabled() -> bool:
    return _conn is not None


def current_trace_id() -> Optional[str]:
    return _trace_id


class Span:
    def __init__(self, name: str, attributes: dict = None):
        self.name = name
        self.attributes = dict(attributes) if attributes else {}
        self.parent = None
        self.span_id = uuid.uuid4().hex
        self.start_time = None
        self.end_time = None
        self.status_code = 0

    def __enter__(self):
        stack = _get_span_stack()
        if stack:
            self.parent = stack[-1]
        self.start_time = time.time_ns()
        stack.append(self)
        return self

    def __exit__(self, exc_type, exc, tb):
        self.end_time = time.time_ns()
        if exc is not None:
            self.attributes["exception"] = str(exc)
            self.attributes["exception.type"] = type(exc).__name__
            self.status_code = 1
        stack = _get_span_stack()
        if stack and stack[-1] is self:
            stack.pop()
        _export_span(self)
        return False

    @property
    def duration_ms(self) -> float:
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.time_ns()
        return (end - self.start_time) / 1_000_000

    def set_attribute(self, key: str, value):
        self.attributes[key] = value


def _export_span(span: Span):
    """Write a completed span into the SQLite table."""
    parent_id = span.parent.span_id if span.parent else None
    start_time = int(span.start_time / 1_000)  # μs
    end_time = int(span.end_time / 1_000)
    attr_json = json.dumps(span.attributes, default=str)
    with _LOCK:
        # end_session may close the connection from another thread
        if _conn is None:
            return
        _conn.execute(
            """
INSERT INTO otel_spans
  (trace_id, span_id, parent_span_id, name,
   start_time, end_time, attributes, status_code)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
""",
            (
                _trace_id,
                span.span_id,
                parent_id,
                span.name,
                start_time,
                end_time,
                attr_json,
                span.status_code,
            ),
        )
        _conn.commit()


def profile(func):
    """Decorator: wrap a function in a Span."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        with Span(func.__name__):
            return func(*args, **kwargs)

    return wrapper


@contextmanager
def profile_block(name: str, tags: dict = None):
    """Context manager: wrap a code block in a Span and yield it."""
    with Span(name, attributes=tags) as span:
        yield span


def add_tag(key: str, value):
    """Add a tag to the current span on the stack."""
    stack = _get_span_stack()
    if stack:
        stack[-1].set_attribute(key, value)


def start_session(command_name: str, db_path: str = None):
    """
    Begin a root span for the CLI invocation.
    Must call end_session() when done.
    """
    if db_path:
        init_telemetry(db_path)
    global _root_span
    _root_span = Span("cli_invocation", attributes={"cli.command": command_name})
    _root_span.__enter__()


def end_session():
    """End the root invocation span and close the DB."""
    global _root_span, _conn, _trace_id
    if _root_span:
        _root_span.__exit__(None, None, None)
        _root_span = None
    with _LOCK:
        if _conn is not None:
            _conn.commit()
            _conn.close()
            _conn = None
            _trace_id = None


def read_spans(db_path: str, trace_id: str = None, limit: int = 100) -> List[Dict]:
    """Return recorded spans, newest first, optionally for a single trace."""
    conn = sqlite3.connect(db_path)
    try:
        query = """
            SELECT trace_id, span_id, parent_span_id, name,
                   start_time, end_time, attributes, status_code
              FROM otel_spans
        """
        params = []
        if trace_id:
            query += " WHERE trace_id = ?"
            params.append(trace_id)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        rows = conn.execute(query, params).fetchall()
    finally:
        conn.close()
    spans = []
    for trace, span_id, parent_id, name, start_us, end_us, attrs_json, status in rows:
        spans.append(
            {
                "trace_id": trace,
                "span_id": span_id,
                "parent_span_id": parent_id,
                "name": name,
                "start_time": start_us,
                "end_time": end_us,
                "duration_us": end_us - start_us,
                "attributes": json.loads(attrs_json),
                "status_code": status,
            }
        )
    return spans
