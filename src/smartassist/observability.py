"""Request metrics emitted through logging and optionally Prometheus."""

from __future__ import annotations

import logging
import re
import time
from contextlib import contextmanager
from typing import Any, Iterator

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

_PROM_NAME_RE = re.compile(r"[^a-zA-Z0-9_]")


class MetricsRecorder:
    """Emit structured metrics via logging and (optionally) Prometheus."""

    def __init__(
        self,
        *,
        enabled: bool = True,
        namespace: str = "smartassist",
        logger: logging.Logger | None = None,
        prometheus_enabled: bool = False,
        registry: CollectorRegistry | None = None,
    ) -> None:
        self._enabled = enabled
        self._namespace = namespace.strip() or "smartassist"
        self._logger = logger or logging.getLogger("smartassist.metrics")
        self._prometheus_enabled = prometheus_enabled
        if prometheus_enabled:
            self._registry: CollectorRegistry | None = registry or CollectorRegistry()
        else:
            self._registry = None
        self._counters: dict[tuple[str, tuple[str, ...]], Counter] = {}
        self._histograms: dict[tuple[str, tuple[str, ...]], Histogram] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def prometheus_enabled(self) -> bool:
        return self._prometheus_enabled and self._registry is not None

    @property
    def prometheus_content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def render_prometheus(self) -> bytes:
        if not self.prometheus_enabled:
            raise RuntimeError("Prometheus export is disabled")
        return generate_latest(self._registry)

    def increment(self, metric: str, *, value: int = 1, **tags: Any) -> None:
        """Increment a counter metric."""

        if not self._enabled:
            return
        value = int(value)
        clean_tags = _clean(tags)
        self._emit(metric, fields={"value": value}, tags=clean_tags)
        if self.prometheus_enabled:
            counter = self._metric(self._counters, Counter, metric, clean_tags, "counter")
            counter.labels(**self._label_values(clean_tags)).inc(float(max(value, 0)))

    def record_timing(self, metric: str, duration_seconds: float, **tags: Any) -> None:
        """Emit a timing metric, recording milliseconds to logs."""

        if not self._enabled:
            return
        clean_tags = _clean(tags)
        duration_ms = max(duration_seconds * 1000.0, 0.0)
        self._emit(metric, fields={"duration_ms": round(duration_ms, 4)}, tags=clean_tags)
        if self.prometheus_enabled:
            histogram = self._metric(self._histograms, Histogram, metric, clean_tags, "duration")
            histogram.labels(**self._label_values(clean_tags)).observe(max(duration_seconds, 0.0))

    @contextmanager
    def track_timing(self, metric: str, **tags: Any) -> Iterator[None]:
        """Record execution time for the wrapped block."""

        if not self._enabled:
            yield
            return
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_timing(metric, time.perf_counter() - start, **tags)

    def _emit(self, metric: str, *, fields: dict[str, Any], tags: dict[str, Any]) -> None:
        segments = [f"{key}={_stringify(value)}" for key, value in sorted(fields.items())]
        segments.extend(f"{key}={_stringify(value)}" for key, value in sorted(tags.items()))
        message = f"{self._namespace}.{metric}"
        if segments:
            message = f"{message} {' '.join(segments)}"
        self._logger.info(message)

    def _metric(self, cache: dict, factory, metric: str, tags: dict[str, Any], kind: str):
        label_names = tuple(_sanitize_label(name) for name in sorted(tags))
        key = (metric, label_names)
        instrument = cache.get(key)
        if instrument is None:
            instrument = factory(
                self._prom_metric_name(metric),
                f"{metric} {kind}",
                labelnames=list(label_names),
                registry=self._registry,
            )
            cache[key] = instrument
        return instrument

    @staticmethod
    def _label_values(tags: dict[str, Any]) -> dict[str, str]:
        return {_sanitize_label(key): _stringify(value) for key, value in tags.items()}

    def _prom_metric_name(self, metric: str) -> str:
        cleaned = _PROM_NAME_RE.sub("_", metric)
        return f"{_PROM_NAME_RE.sub('_', self._namespace)}_{cleaned}".strip("_")


def _clean(tags: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in tags.items() if value is not None}


def _sanitize_label(label: str) -> str:
    return _PROM_NAME_RE.sub("_", label) or "label"


def _stringify(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.4f}" if not value.is_integer() else f"{int(value)}"
    return str(value)


__all__ = ["MetricsRecorder"]
