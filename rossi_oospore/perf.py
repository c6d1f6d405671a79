"""Phase timing for the hourly simulation loop.

Disabled monitors are no-ops, so the engine can always call them.

Usage:
    perf = PerfMonitor(enabled=True)
    result = run_model(weather, start, end, perf=perf)
    print(perf.report())
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict


@dataclass
class PhaseStats:
    """Accumulated wall-clock time of one loop phase."""
    total_time: float = 0.0
    call_count: int = 0

    @property
    def mean_time(self) -> float:
        return self.total_time / self.call_count if self.call_count > 0 else 0.0


class PerfMonitor:
    """Wall-clock time per named phase (e.g. "clock", "spawn", "cohorts")."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._stats: Dict[str, PhaseStats] = defaultdict(PhaseStats)

    @contextmanager
    def track(self, phase: str):
        if not self.enabled:
            yield
            return
        t0 = time.perf_counter()
        try:
            yield
        finally:
            stats = self._stats[phase]
            stats.total_time += time.perf_counter() - t0
            stats.call_count += 1

    def get_stats(self) -> Dict[str, PhaseStats]:
        return dict(self._stats)

    def report(self, title: str = "Hourly loop timing") -> str:
        """Human-readable breakdown, slowest phase first."""
        total = sum(s.total_time for s in self._stats.values())
        lines = [
            title,
            f"{'Phase':<12} {'Total (s)':>10} {'Calls':>8} {'Mean (us)':>10} {'%':>6}",
        ]
        for name, stats in sorted(self._stats.items(), key=lambda x: -x[1].total_time):
            pct = (stats.total_time / total * 100) if total > 0 else 0.0
            lines.append(
                f"{name:<12} {stats.total_time:>10.4f} {stats.call_count:>8} "
                f"{stats.mean_time * 1e6:>10.2f} {pct:>5.1f}%"
            )
        lines.append(f"{'TOTAL':<12} {total:>10.4f}")
        return '\n'.join(lines)
