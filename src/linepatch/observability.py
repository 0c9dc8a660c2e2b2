"""Optional logging and metrics collaborators for the patch pipeline."""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Protocol

TELEMETRY_LOGGER = logging.getLogger("linepatch.telemetry")


class MetricsSink(Protocol):
    """Call shape expected from a metrics collaborator."""

    def increment(self, name: str, value: float = 1, tags: Mapping[str, Any] | None = None) -> None: ...

    def set_gauge(self, name: str, value: float, tags: Mapping[str, Any] | None = None) -> None: ...

    def start_timer(self) -> int: ...

    def end_timer(self, name: str, start: int, tags: Mapping[str, Any] | None = None) -> float | None: ...


def _metric_key(name: str, tags: Mapping[str, Any] | None) -> str:
    if not tags:
        return name
    rendered = ",".join(f"{key}={tags[key]}" for key in sorted(tags))
    return f"{name}{{{rendered}}}"


@dataclass(slots=True)
class HistogramStats:
    count: int
    min: float
    max: float
    avg: float
    sum: float


@dataclass(slots=True)
class MetricsRecorder:
    """In-memory counters, gauges and latency histograms keyed by name and tags.

    Every distinct tag set gets its own key and nothing is evicted, so a
    recorder shared across batches tagged with ``batch_id`` grows per batch.
    Call :meth:`reset` between runs, or build the collaborators with
    ``Observability(tag_batch=False)``.
    """

    enabled: bool = True
    counters: Dict[str, float] = field(default_factory=dict)
    gauges: Dict[str, float] = field(default_factory=dict)
    histograms: Dict[str, List[float]] = field(default_factory=dict)

    def increment(self, name: str, value: float = 1, tags: Mapping[str, Any] | None = None) -> None:
        if not self.enabled:
            return
        key = _metric_key(name, tags)
        self.counters[key] = self.counters.get(key, 0) + value

    def counter(self, name: str, tags: Mapping[str, Any] | None = None) -> float:
        return self.counters.get(_metric_key(name, tags), 0)

    def set_gauge(self, name: str, value: float, tags: Mapping[str, Any] | None = None) -> None:
        if not self.enabled:
            return
        self.gauges[_metric_key(name, tags)] = value

    def gauge(self, name: str, tags: Mapping[str, Any] | None = None) -> float | None:
        return self.gauges.get(_metric_key(name, tags))

    def record_histogram(self, name: str, value: float, tags: Mapping[str, Any] | None = None) -> None:
        if not self.enabled:
            return
        self.histograms.setdefault(_metric_key(name, tags), []).append(value)

    def histogram(self, name: str, tags: Mapping[str, Any] | None = None) -> HistogramStats | None:
        values = self.histograms.get(_metric_key(name, tags)) or []
        if not values:
            return None
        total = sum(values)
        return HistogramStats(
            count=len(values),
            min=min(values),
            max=max(values),
            avg=total / len(values),
            sum=total,
        )

    def start_timer(self) -> int:
        return time.perf_counter_ns()

    def end_timer(self, name: str, start: int, tags: Mapping[str, Any] | None = None) -> float | None:
        """Record the elapsed milliseconds since ``start`` and return them."""
        if not self.enabled or not start:
            return None
        duration_ms = (time.perf_counter_ns() - start) / 1_000_000
        self.record_histogram(name, duration_ms, tags)
        return duration_ms

    def snapshot(self) -> Dict[str, Any]:
        histograms: Dict[str, Any] = {}
        for key, values in self.histograms.items():
            if values:
                total = sum(values)
                histograms[key] = {
                    "count": len(values),
                    "min": min(values),
                    "max": max(values),
                    "avg": total / len(values),
                    "sum": total,
                }
        return {
            "counters": dict(self.counters),
            "gauges": dict(self.gauges),
            "histograms": histograms,
        }

    def reset(self) -> None:
        self.counters.clear()
        self.gauges.clear()
        self.histograms.clear()

    def summary(self) -> str:
        lines = ["Metrics summary:"]
        if self.counters:
            lines.append("Counters:")
            lines.extend(f"  {key}: {value:g}" for key, value in sorted(self.counters.items()))
        if self.gauges:
            lines.append("Gauges:")
            lines.extend(f"  {key}: {value:g}" for key, value in sorted(self.gauges.items()))
        stats = self.snapshot()["histograms"]
        if stats:
            lines.append("Histograms:")
            for key, entry in sorted(stats.items()):
                lines.append(
                    f"  {key}: count={entry['count']} min={entry['min']:.2f}ms "
                    f"max={entry['max']:.2f}ms avg={entry['avg']:.2f}ms"
                )
        return "\n".join(lines)


def _serialise_event_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if hasattr(value, "model_dump"):
        return _serialise_event_value(value.model_dump())
    if isinstance(value, (list, tuple, set)):
        return [_serialise_event_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): _serialise_event_value(child) for key, child in value.items()}
    return str(value)


def new_batch_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(slots=True)
class Observability:
    """Bundle of optional telemetry collaborators shared by one batch.

    With neither ``logger`` nor ``metrics`` every hook is a no-op, so the
    engine behaves identically with or without telemetry attached. A
    ``metrics`` object may implement any subset of :class:`MetricsSink`;
    missing hooks are skipped.

    Metrics are tagged with ``batch_id`` unless ``tag_batch`` is false.
    """

    logger: logging.Logger | None = None
    metrics: MetricsSink | None = None
    batch_id: str = field(default_factory=new_batch_id)
    tag_batch: bool = True

    @property
    def enabled(self) -> bool:
        return self.logger is not None or self.metrics is not None

    def log(self, level: int, layer: str, message: str, **context: Any) -> None:
        """Emit ``message`` with structured ``context`` on the attached logger."""
        if self.logger is None or not self.logger.isEnabledFor(level):
            return
        payload = {"layer": layer, "batch_id": self.batch_id}
        payload.update({key: _serialise_event_value(value) for key, value in context.items()})
        self.logger.log(level, "%s %s", message, json.dumps(payload, separators=(",", ":"), sort_keys=True))

    def emit_event(self, event: str, layer: str, **fields: Any) -> None:
        """Log a compact JSON telemetry event when a logger is attached."""
        if self.logger is None:
            return
        payload: Dict[str, Any] = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "batch_id": self.batch_id,
            "layer": layer,
        }
        for key, value in fields.items():
            payload[key] = _serialise_event_value(value)
        try:
            message = json.dumps(payload, separators=(",", ":"), ensure_ascii=True)
        except (TypeError, ValueError):
            fallback = {key: _serialise_event_value(value) for key, value in payload.items()}
            message = json.dumps(fallback, separators=(",", ":"), ensure_ascii=True)
        TELEMETRY_LOGGER.info(message)

    def _tags(self) -> Dict[str, Any] | None:
        return {"batch_id": self.batch_id} if self.tag_batch else None

    def _hook(self, name: str) -> Any:
        if self.metrics is None:
            return None
        return getattr(self.metrics, name, None)

    def increment(self, name: str, value: float = 1) -> None:
        hook = self._hook("increment")
        if hook is not None:
            hook(name, value, self._tags())

    def set_gauge(self, name: str, value: float) -> None:
        hook = self._hook("set_gauge")
        if hook is not None:
            hook(name, value, self._tags())

    def start_timer(self) -> int | None:
        hook = self._hook("start_timer")
        return hook() if hook is not None else None

    def end_timer(self, name: str, start: int | None) -> float | None:
        hook = self._hook("end_timer")
        if hook is None or start is None:
            return None
        return hook(name, start, self._tags())


def resolve_observability(observability: Observability | None) -> Observability:
    return observability if observability is not None else Observability()


__all__ = [
    "HistogramStats",
    "MetricsRecorder",
    "MetricsSink",
    "Observability",
    "TELEMETRY_LOGGER",
    "new_batch_id",
    "resolve_observability",
]
