"""
Statistical primitives shared by every analyzer.

Pure functions over plain values: nothing here touches the sample store or
keeps state between calls.
"""

from collections.abc import Iterable

import numpy as np

from .models import Severity

SEVERITY_ORDER = {
    Severity.INFO: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


def _clean(values: Iterable[float | None]) -> np.ndarray:
    """Drop None/NaN entries and return a float array"""
    array = np.asarray([v for v in values if v is not None], dtype=float)
    return array[~np.isnan(array)]


def stddev(values: Iterable[float | None]) -> float:
    """Population standard deviation of the non-null values.

    Returns 0.0 for an empty input; callers must read that as "no baseline",
    not as "zero variance".
    """
    array = _clean(values)
    if array.size == 0:
        return 0.0
    return float(np.std(array))


def mean(values: Iterable[float | None]) -> float | None:
    """Mean of the non-null values, or None when there are none"""
    array = _clean(values)
    if array.size == 0:
        return None
    return float(array.mean())


def linear_growth_rate(points: Iterable[tuple[float, float]]) -> float:
    """Least-squares slope of ``y`` over ``x``.

    ``x`` is expected to be a dense index (e.g. day offset), so the result is
    in units of ``y`` per index step. Returns 0.0 for fewer than two points or
    when every ``x`` is identical.
    """
    pairs = list(points)
    if len(pairs) < 2:
        return 0.0

    x = np.asarray([p[0] for p in pairs], dtype=float)
    y = np.asarray([p[1] for p in pairs], dtype=float)

    # Centered normal equations: slope = Sxy / Sxx
    dx = x - x.mean()
    sxx = float(np.sum(dx * dx))
    if sxx == 0:
        return 0.0
    sxy = float(np.sum(dx * (y - y.mean())))
    return sxy / sxx


def index_growth_rate(values: Iterable[float]) -> float:
    """Slope of a series against its position index"""
    return linear_growth_rate(enumerate(values))


def max_severity(severities: Iterable[Severity | str]) -> Severity:
    """Highest severity in the input, ``info`` when empty"""
    highest = Severity.INFO
    for severity in severities:
        severity = Severity(severity)
        if SEVERITY_ORDER[severity] > SEVERITY_ORDER[highest]:
            highest = severity
    return highest


def percent_change(old: float | None, new: float | None) -> float:
    """Relative change from ``old`` to ``new`` in percent (0.0 if undefined)"""
    if old is None or new is None or old == 0:
        return 0.0
    return (new - old) / old * 100
