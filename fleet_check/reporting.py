"""Turns verification events into metrics, progress log lines and a run summary."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import FleetCheckError
from .telemetry import DEFAULT_BUCKETS, MetricsSink

_LOGGER = logging.getLogger(__name__)


@dataclass
class RunSummary:
    uploaded: int = 0
    not_uploaded: int = 0
    synced: int = 0
    not_synced: int = 0
    downloaded: int = 0
    not_downloaded: int = 0
    retrieved: int = 0
    not_retrieved: int = 0
    bytes_uploaded: int = 0
    bytes_downloaded: int = 0
    failed_pushes: int = 0
    upload_seconds_total: float = 0.0
    sync_seconds_total: float = 0.0
    download_seconds_total: float = 0.0

    @property
    def failures(self) -> int:
        return self.not_uploaded + self.not_synced + self.not_downloaded + self.not_retrieved

    @staticmethod
    def _mean(total: float, count: int) -> float:
        return total / count if count else 0.0

    def lines(self) -> List[str]:
        return [
            f"uploaded: {self.uploaded} ok, {self.not_uploaded} failed ({self.bytes_uploaded} bytes, "
            f"mean {self._mean(self.upload_seconds_total, self.uploaded):.3f}s)",
            f"synced: {self.synced} ok, {self.not_synced} failed (mean {self._mean(self.sync_seconds_total, self.synced):.3f}s)",
            f"downloaded: {self.downloaded} ok, {self.not_downloaded} failed ({self.bytes_downloaded} bytes, "
            f"mean {self._mean(self.download_seconds_total, self.downloaded):.3f}s)",
            f"retrieved: {self.retrieved} ok, {self.not_retrieved} failed",
        ]


@dataclass
class RunOutcome:
    passed: bool
    error: Optional[FleetCheckError] = None
    summary: RunSummary = field(default_factory=RunSummary)

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1


class Reporter:
    """Records unit events for one engine.

    Counters are labelled by the node's overlay, duration gauges by overlay and
    content address. Histograms carry no labels. Metric push failures are
    logged and never raised.
    """

    def __init__(self, sink: MetricsSink, subsystem: str, unit: str = "chunk") -> None:
        self.sink = sink
        self.subsystem = subsystem
        self.unit = unit
        self.summary = RunSummary()
        self._register()

    def _name(self, suffix: str) -> str:
        return f"{self.subsystem}_{suffix}"

    def _register(self) -> None:
        unit = self.unit
        counters = {
            f"{unit}s_uploaded": f"Number of uploaded {unit}s.",
            f"{unit}s_not_uploaded": f"Number of not uploaded {unit}s.",
            f"{unit}s_downloaded": f"Number of downloaded {unit}s.",
            f"{unit}s_not_downloaded": f"Number of {unit}s that has not been downloaded.",
            f"{unit}s_retrieved": f"Number of {unit}s that has been retrieved.",
            f"{unit}s_not_retrieved": f"Number of {unit}s that has not been retrieved.",
            "tags_synced": "Number of synced tags.",
            "tags_not_synced": "Number of not synced tags.",
        }
        for suffix, doc in counters.items():
            self.sink.register_counter(self._name(suffix), doc, ["node"])
        gauges = {
            f"{unit}_upload_duration_seconds": f"{unit.capitalize()} upload duration Gauge.",
            f"{unit}_download_duration_seconds": f"{unit.capitalize()} download duration Gauge.",
            "tags_sync_duration_seconds": "Tags sync duration Gauge.",
        }
        for suffix, doc in gauges.items():
            self.sink.register_gauge(self._name(suffix), doc, ["node", unit])
        histograms = {
            f"{unit}_upload_seconds": f"{unit.capitalize()} upload duration Histogram.",
            f"{unit}_download_seconds": f"{unit.capitalize()} download duration Histogram.",
            "tags_sync_seconds": "Tags sync duration Histogram.",
        }
        for suffix, doc in histograms.items():
            self.sink.register_histogram(self._name(suffix), doc, DEFAULT_BUCKETS)

    def _timed(self, counter: str, gauge: str, histogram: str, overlay: str, address: str, seconds: float) -> None:
        self.sink.inc(self._name(counter), {"node": overlay})
        self.sink.set(self._name(gauge), seconds, {"node": overlay, self.unit: address})
        self.sink.observe(self._name(histogram), seconds)

    # Events ------------------------------------------------------------------
    def uploaded(self, overlay: str, address: str, seconds: float, size: int) -> None:
        unit = self.unit
        self._timed(f"{unit}s_uploaded", f"{unit}_upload_duration_seconds", f"{unit}_upload_seconds", overlay, address, seconds)
        self.summary.uploaded += 1
        self.summary.bytes_uploaded += size
        self.summary.upload_seconds_total += seconds

    def not_uploaded(self, overlay: str) -> None:
        self.sink.inc(self._name(f"{self.unit}s_not_uploaded"), {"node": overlay})
        self.summary.not_uploaded += 1

    def synced(self, overlay: str, address: str, seconds: float) -> None:
        self._timed("tags_synced", "tags_sync_duration_seconds", "tags_sync_seconds", overlay, address, seconds)
        self.summary.synced += 1
        self.summary.sync_seconds_total += seconds

    def not_synced(self, overlay: str) -> None:
        self.sink.inc(self._name("tags_not_synced"), {"node": overlay})
        self.summary.not_synced += 1

    def downloaded(self, overlay: str, address: str, seconds: float, size: int) -> None:
        unit = self.unit
        self._timed(
            f"{unit}s_downloaded", f"{unit}_download_duration_seconds", f"{unit}_download_seconds", overlay, address, seconds
        )
        self.summary.downloaded += 1
        self.summary.bytes_downloaded += size
        self.summary.download_seconds_total += seconds

    def not_downloaded(self, overlay: str) -> None:
        self.sink.inc(self._name(f"{self.unit}s_not_downloaded"), {"node": overlay})
        self.summary.not_downloaded += 1

    def retrieved(self, overlay: str) -> None:
        self.sink.inc(self._name(f"{self.unit}s_retrieved"), {"node": overlay})
        self.summary.retrieved += 1

    def not_retrieved(self, overlay: str) -> None:
        self.sink.inc(self._name(f"{self.unit}s_not_retrieved"), {"node": overlay})
        self.summary.not_retrieved += 1

    def push(self, context: str) -> None:
        try:
            self.sink.push()
        except Exception as exc:
            self.summary.failed_pushes += 1
            _LOGGER.warning("%s: metrics push failed: %s", context, exc)

    def log_summary(self) -> None:
        for line in self.summary.lines():
            _LOGGER.info("%s %s", self.subsystem, line)
