# obs.py (Langfuse v3-compatible)
from __future__ import annotations

import time
import inspect
import logging
from functools import wraps
from contextlib import contextmanager, nullcontext
from typing import Any, Callable, ParamSpec, TypeVar, Optional, Mapping
from observability.langfuse_client import langfuse

logger = logging.getLogger(__name__)

SENSITIVE = {"text", "message", "content", "body"}

def _dump(obj: Any) -> Any:
    try:
        md = getattr(obj, "model_dump", None)
        if callable(md): return md()
        return obj
    except Exception:
        return obj

def _maybe_redact(v: Any, *, redact: bool) -> Any:
    if not redact or not isinstance(v, Mapping): return v
    try:
        return {k: ("***" if k in SENSITIVE else val) for k, val in v.items()}
    except Exception:
        return v

P = ParamSpec("P")
T = TypeVar("T")

def _start_span(name: str):
    try:
        return langfuse.start_as_current_span(name=name)
    except Exception:
        # Never let observability crash business logic
        logger.debug("span %s not started", name, exc_info=True)
        return nullcontext()

def _safe_update_current_span(**kwargs: Any) -> None:
    try:
        langfuse.update_current_span(**kwargs)
    except Exception:
        pass

def _safe_span_update(span, *, metadata: dict[str, Any]) -> None:
    if span is None:
        return
    try:
        span.update(metadata=metadata)
    except Exception:
        pass

def mark_error(exc: Exception, *, kind: str = "UnhandledError", span=None) -> None:
    """
    Minimal error marking; no payload dumping.
    """
    meta = {"status": "error", "error.kind": kind, "error.type": type(exc).__name__}
    _safe_span_update(span, metadata=meta)
    _safe_update_current_span(metadata=meta, status_message=str(exc), level="ERROR")

def instrument_io(
    *,
    # span name (static) or builder(args, kwargs) -> str
    name: str | Callable[..., str],
    # metadata to set on span at start (static dict) or builder(args, kwargs) -> dict
    meta: Optional[dict] | Callable[..., Mapping[str, Any]] = None,
    # input extractor: (args, kwargs) -> dict | Any
    input_fn: Optional[Callable[..., Any]] = None,
    # output extractor: (result) -> dict | Any
    output_fn: Optional[Callable[[Any], Any]] = None,
    redact: bool = False,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorate a coroutine so each call becomes a span, with safe input/output logging.
    """
    def deco(fn: Callable[P, T]) -> Callable[P, T]:
        if not inspect.iscoroutinefunction(fn):
            raise TypeError(f"instrument_io expects a coroutine function, got {fn!r}")

        def _name(*args, **kwargs) -> str:
            return name(*args, **kwargs) if callable(name) else name

        def _meta(*args, **kwargs) -> dict:
            try:
                if callable(meta): return dict(meta(*args, **kwargs))
                return dict(meta or {})
            except Exception:
                return {}

        def _extract(fn_: Callable[..., Any], *args, **kwargs) -> Any:
            try:
                return _maybe_redact(_dump(fn_(*args, **kwargs)), redact=redact)
            except Exception:
                return None

        @wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            n = _name(*args, **kwargs)
            t0 = time.perf_counter()
            with _start_span(n) as s:
                _safe_span_update(s, metadata=_meta(*args, **kwargs))
                if input_fn is not None:
                    _safe_update_current_span(input=_extract(input_fn, *args, **kwargs))
                try:
                    out = await fn(*args, **kwargs)
                except Exception as e:
                    _safe_update_current_span(
                        metadata={"status": "error", "error.kind": type(e).__name__,
                                  "duration.ms": int((time.perf_counter()-t0)*1000)},
                        status_message=str(e), level="ERROR",
                    )
                    mark_error(e, kind="InstrumentedIOError", span=s)
                    raise
                if output_fn is not None:
                    _safe_update_current_span(output=_extract(output_fn, out))
                _safe_update_current_span(metadata={"status": "ok", "duration.ms": int((time.perf_counter()-t0)*1000)})
                return out

        return wrapper  # type: ignore[return-value]
    return deco


@contextmanager
def span_attrs(name: str, **attrs: Any):
    """
    Lightweight nested observation with fixed metadata.
    """
    t0 = time.perf_counter()
    with _start_span(name) as s:
        if attrs:
            _safe_span_update(s, metadata=dict(attrs))
        try:
            yield s
        except Exception as e:
            dur_ms = int((time.perf_counter() - t0) * 1000)
            _safe_span_update(s, metadata={"status": "error", "error.kind": type(e).__name__, "duration.ms": dur_ms})
            raise
        dur_ms = int((time.perf_counter() - t0) * 1000)
        _safe_span_update(s, metadata={"status": "ok", "duration.ms": dur_ms})
