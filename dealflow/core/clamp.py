from __future__ import annotations

STAT_MIN = 0
STAT_MAX = 100

LOAN_RATE_MIN = 0.05
LOAN_RATE_MAX = 0.50


def clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, x))


def clamp01(x: float) -> float:
    return clamp(x, 0.0, 1.0)


def clamp_stat(value: float | int | None, *, fallback: int = 0) -> int:
    """Round and bound a scalar stat to [0, 100].

    `None` and non-numeric garbage fall back to `fallback` (itself bounded).
    """

    if value is None or isinstance(value, bool):
        value = fallback
    try:
        num = float(value)
    except (TypeError, ValueError):
        num = float(fallback)
    if num != num:  # NaN
        num = float(fallback)
    return int(round(clamp(num, STAT_MIN, STAT_MAX)))


def clamp_loan_rate(rate: float) -> float:
    # Exactly zero means the loan is paid off.
    if rate == 0:
        return 0.0
    return clamp(rate, LOAN_RATE_MIN, LOAN_RATE_MAX)


def as_int(value: object, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value == value:
        return int(round(value))
    if isinstance(value, str):
        try:
            return int(round(float(value.strip())))
        except ValueError:
            return default
    return default


def as_float(value: object, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        num = float(value)
        return num if num == num else default
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default
