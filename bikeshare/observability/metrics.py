"""
Action Metrics
--------------
In-process counters and latency samples for every orchestrated action
(reserve, inspect, return, register, ...). Consumed by /admin/metrics.

Nothing is persisted: counters live for the lifetime of the process, which
matches the lifetime of one client session.
"""
from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from typing import Deque, Dict, List, Tuple

from bikeshare.settings import settings

OUTCOMES = ("attempt", "success", "failure", "rejected")

_counters: Dict[str, Dict[str, int]] = defaultdict(lambda: {k: 0 for k in OUTCOMES})
_latencies: Dict[str, Deque[int]] = {}


def _samples(action: str) -> Deque[int]:
    buf = _latencies.get(action)
    if buf is None:
        buf = deque(maxlen=max(1, int(settings.METRICS_MAX_SAMPLES)))
        _latencies[action] = buf
    return buf


def _percentile(data: List[float], p: float) -> float:
    """Deterministic percentile (nearest-rank on sorted data)."""
    if not data:
        return 0.0
    d = sorted(data)
    k = max(1, math.ceil(p * len(d)))
    return float(d[k - 1])


def _p50_p95(latencies_s: List[float]) -> Tuple[float, float]:
    if not latencies_s:
        return 0.0, 0.0
    return _percentile(latencies_s, 0.50), _percentile(latencies_s, 0.95)


def increment(action: str, outcome: str) -> None:
    if outcome not in OUTCOMES:
        raise ValueError(f"unknown outcome {outcome!r}")
    _counters[action][outcome] += 1


def record_latency(action: str, ms: int) -> None:
    _samples(action).append(max(0, int(ms)))


def reset() -> None:
    _counters.clear()
    _latencies.clear()


def get_metrics_snapshot() -> dict:
    """
    Per-action counters plus success rate and p50/p95 latency (seconds).
    Success rate is a percentage (100 * successes / attempts), 0.0 when nothing
    was attempted.
    """
    actions = {}
    for action in sorted(set(_counters) | set(_latencies)):
        c = _counters[action]
        lat_s = [ms / 1000.0 for ms in _latencies.get(action, ())]
        p50, p95 = _p50_p95(lat_s)
        att = c["attempt"]
        actions[action] = {
            **c,
            "success_rate": round((c["success"] / att) * 100.0, 3) if att else 0.0,
            "p50_latency": round(p50, 3),
            "p95_latency": round(p95, 3),
        }
    return {"actions": actions, "snapshot_at": int(time.time())}
