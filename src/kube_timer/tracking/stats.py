"""Latency statistics over a batch of completion records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable

from .models import CompletionRecord

_ZERO = timedelta(0)


@dataclass(frozen=True, slots=True)
class LatencyReport:
    count: int
    max_name: str
    max_duration: timedelta
    min_name: str
    min_duration: timedelta
    average: timedelta
    median: timedelta
    total: timedelta


def summarize(records: Iterable[CompletionRecord]) -> LatencyReport:
    """Reduce completion records to min/max/avg/median/total.

    Durations are reported as measured, negative ones included. An empty input
    yields zero durations and empty names.
    """

    ordered = sorted(records, key=lambda record: record.duration)
    if not ordered:
        return LatencyReport(
            count=0,
            max_name="",
            max_duration=_ZERO,
            min_name="",
            min_duration=_ZERO,
            average=_ZERO,
            median=_ZERO,
            total=_ZERO,
        )

    durations = [record.duration for record in ordered]
    total = sum(durations, _ZERO)
    middle = len(durations) // 2
    if len(durations) % 2:
        median = durations[middle]
    else:
        median = (durations[middle - 1] + durations[middle]) / 2

    return LatencyReport(
        count=len(ordered),
        max_name=ordered[-1].name,
        max_duration=durations[-1],
        min_name=ordered[0].name,
        min_duration=durations[0],
        average=total / len(durations),
        median=median,
        total=total,
    )


def format_duration(value: timedelta) -> str:
    """Render a duration compactly, e.g. ``1h2m3.5s`` or ``0.85s``."""

    seconds_total = value.total_seconds()
    sign = "-" if seconds_total < 0 else ""
    hours, remainder = divmod(abs(seconds_total), 3600)
    minutes, seconds = divmod(remainder, 60)
    text = f"{seconds:.3f}".rstrip("0").rstrip(".") + "s"
    if hours or minutes:
        text = f"{int(minutes)}m{text}"
    if hours:
        text = f"{int(hours)}h{text}"
    return sign + text


def format_report(report: LatencyReport, *, verb: str = "creating", measure: str = "provision") -> str:
    """Render the one-line batch summary."""

    return (
        f"Finished {verb} {report.count} services, "
        f"max {measure} time: {format_duration(report.max_duration)} ({report.max_name}), "
        f"min {measure} time: {format_duration(report.min_duration)} ({report.min_name}), "
        f"avg {measure} time: {format_duration(report.average)}, "
        f"median {measure} time: {format_duration(report.median)}, "
        f"total {measure} time: {format_duration(report.total)}"
    )


__all__ = ["LatencyReport", "format_duration", "format_report", "summarize"]
