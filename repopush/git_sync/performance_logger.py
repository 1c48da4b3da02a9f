"""Timing of publishing stages."""

import logging
import time
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Optional


@dataclass
class StageTiming:
    """One run of a publishing stage."""
    stage: str
    duration: float
    succeeded: bool = True
    context: Optional[Dict[str, Any]] = None


@dataclass
class StageTotals:
    """All runs of one stage, e.g. every subcontainer push of a run."""
    stage: str
    runs: int = 0
    failures: int = 0
    total: float = 0.0
    longest: float = 0.0


class PerformanceLogger:
    """
    Records how long each publishing stage takes.

    A stage such as ``subcontainer_push`` runs once per subcontainer, so the
    summary groups runs by stage name instead of listing them one by one.
    """

    SLOW_STAGE_SECONDS = 30.0

    def __init__(self, logger_name: str = 'repopush.git_sync.performance'):
        self.logger = logging.getLogger(logger_name)
        self._timings: List[StageTiming] = []

    @contextmanager
    def time_operation(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        log_level: int = logging.DEBUG
    ) -> Generator[None, None, None]:
        """
        Time the enclosed block as one run of a stage.

        Args:
            operation: Stage name
            context: Details logged with the timing (subdirectory, URL, ...)
            log_level: Level of the start and finish messages
        """
        details = ""
        if context:
            details = " (" + ", ".join(f"{key}={value}" for key, value in context.items()) + ")"
        self.logger.log(log_level, f"⏱️ {operation}{details} started")

        started = time.monotonic()
        succeeded = False
        try:
            yield
            succeeded = True
        finally:
            duration = time.monotonic() - started
            self._timings.append(StageTiming(operation, duration, succeeded, context))
            if succeeded:
                self.logger.log(log_level, f"✅ {operation}{details} took {duration:.3f}s")
            else:
                self.logger.debug(f"❌ {operation}{details} failed after {duration:.3f}s")
            if duration > self.SLOW_STAGE_SECONDS:
                self.logger.warning(f"⚠️ Slow stage: {operation}{details} took {duration:.1f}s")

    def totals(self) -> List[StageTotals]:
        """Per-stage totals in the order stages first ran."""
        grouped: "OrderedDict[str, StageTotals]" = OrderedDict()
        for timing in self._timings:
            entry = grouped.setdefault(timing.stage, StageTotals(timing.stage))
            entry.runs += 1
            entry.total += timing.duration
            entry.longest = max(entry.longest, timing.duration)
            if not timing.succeeded:
                entry.failures += 1
        return list(grouped.values())

    def log_performance_summary(self) -> None:
        """Log one line per stage: runs, failures, total and longest time."""
        totals = self.totals()
        if not totals:
            return

        lines = ["📊 Stage timings:"]
        for entry in totals:
            failed = f", {entry.failures} failed" if entry.failures else ""
            lines.append(
                f"  {entry.stage}: {entry.runs} run(s){failed}, "
                f"{entry.total:.3f}s total, {entry.longest:.3f}s longest"
            )
        self.logger.debug("\n".join(lines))
