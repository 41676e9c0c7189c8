from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

MAX_CORRELATION_ID_LENGTH = 128

_correlation_id: ContextVar[str | None] = ContextVar("subtrack_correlation_id", default=None)


def accept_correlation_id(raw: str | None) -> str:
    """Return ``raw`` when usable as a correlation id, otherwise a fresh uuid4."""
    candidate = (raw or "").strip()
    if not candidate or len(candidate) > MAX_CORRELATION_ID_LENGTH:
        return str(uuid.uuid4())
    return candidate


@contextmanager
def correlation_scope(value: str | None) -> Iterator[str | None]:
    token = _correlation_id.set(value)
    try:
        yield value
    finally:
        _correlation_id.reset(token)


def get_correlation_id() -> str | None:
    return _correlation_id.get()
