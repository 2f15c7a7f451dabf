"""In-process request timing metrics."""

import math
import time
from collections import deque
from dataclasses import dataclass


@dataclass
class RequestSample:
    timestamp: float
    duration_ms: float
    status_code: int


class RequestMetrics:
    """Rolling window of recent request durations."""

    def __init__(self, max_samples: int = 1000) -> None:
        self._samples: deque[RequestSample] = deque(maxlen=max_samples)

    def record(self, duration_ms: float, status_code: int) -> None:
        self._samples.append(RequestSample(time.time(), duration_ms, status_code))

    def summary(self, window_seconds: float = 300.0) -> dict:
        """Count, average, p95 and max duration over the window.

        Args:
            window_seconds: How far back to look

        Returns:
            dict: Timing summary; averages are None when there were no requests
        """
        cutoff = time.time() - window_seconds
        samples = [s for s in self._samples if s.timestamp > cutoff]
        durations = sorted(s.duration_ms for s in samples)
        if not durations:
            return {
                "count": 0,
                "error_count": 0,
                "average_ms": None,
                "p95_ms": None,
                "max_ms": None,
            }

        p95_index = max(0, math.ceil(0.95 * len(durations)) - 1)
        return {
            "count": len(durations),
            "error_count": sum(1 for s in samples if s.status_code >= 500),
            "average_ms": round(sum(durations) / len(durations), 2),
            "p95_ms": round(durations[p95_index], 2),
            "max_ms": round(durations[-1], 2),
        }
