from __future__ import annotations

import os
import threading
import time
from typing import Dict, List, Tuple

# A series is a metric name plus its sorted label pairs.
Series = Tuple[str, Tuple[Tuple[str, str], ...]]

_lock = threading.Lock()
_counters: Dict[Series, int] = {}
_gauges: Dict[Series, int] = {}
_started_ms = int(time.time() * 1000)


def metrics_enabled() -> bool:
    v = (os.environ.get("ZEROMONEY_METRICS_ENABLED") or "").strip().lower()
    return v in {"1", "true", "yes", "y", "on"}


def _series(name: str, labels: Dict[str, object]) -> Series:
    return str(name).strip(), tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def inc_counter(name: str, value: int = 1, **labels: object) -> None:
    key = _series(name, labels)
    if not key[0]:
        return
    with _lock:
        _counters[key] = _counters.get(key, 0) + int(value)


def set_gauge(name: str, value: int, **labels: object) -> None:
    key = _series(name, labels)
    if not key[0]:
        return
    with _lock:
        _gauges[key] = int(value)


def counter_value(name: str, **labels: object) -> int:
    with _lock:
        return _counters.get(_series(name, labels), 0)


def gauge_value(name: str, **labels: object) -> int:
    with _lock:
        return _gauges.get(_series(name, labels), 0)


def reset() -> None:
    with _lock:
        _counters.clear()
        _gauges.clear()


def _render(series: Series) -> str:
    name, labels = series
    if not labels:
        return name
    inner = ",".join(f'{k}="{v}"' for k, v in labels)
    return f"{name}{{{inner}}}"


def snapshot() -> dict:
    now_ms = int(time.time() * 1000)
    with _lock:
        return {
            "ts_ms": now_ms,
            "started_ms": _started_ms,
            "uptime_ms": now_ms - _started_ms,
            "counters": {_render(k): v for k, v in _counters.items()},
            "gauges": {_render(k): v for k, v in _gauges.items()},
        }


def format_prometheus(prefix: str = "zeromoney_") -> str:
    """Prometheus text exposition (integer counters and gauges only).

    Each metric name gets one `# TYPE` line followed by all of its series,
    unlabeled first.
    """
    pre = str(prefix or "").strip() or "zeromoney_"
    with _lock:
        counters = dict(_counters)
        gauges = dict(_gauges)

    lines: List[str] = [
        f"# TYPE {pre}uptime_ms gauge",
        f"{pre}uptime_ms {int(time.time() * 1000) - _started_ms}",
    ]
    for kind, table in (("counter", counters), ("gauge", gauges)):
        typed = set()
        for series in sorted(table):
            name = series[0]
            if name not in typed:
                lines.append(f"# TYPE {pre}{name} {kind}")
                typed.add(name)
            lines.append(f"{pre}{_render(series)} {table[series]}")

    return "\n".join(lines) + "\n"
