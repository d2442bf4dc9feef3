"""Level computation.

Level is always derived from total XP: ``level = floor(sqrt(xp / 100)) + 1``.
The XP floor of level L is ``(L-1)^2 * 100`` and its ceiling is ``L^2 * 100``.
"""

from __future__ import annotations

from math import isqrt

XP_PER_LEVEL_UNIT = 100


def level_for_xp(xp: int) -> int:
    """Return the level reached with ``xp`` total XP. Always >= 1."""
    if xp < 0:
        msg = f"xp must be non-negative, got {xp}"
        raise ValueError(msg)
    # floor(sqrt(xp / 100)) == isqrt(xp // 100) for integers, without float rounding
    return isqrt(xp // XP_PER_LEVEL_UNIT) + 1


def xp_threshold(level: int) -> int:
    """Cumulative XP needed to leave ``level`` (i.e. to reach level + 1)."""
    return level * level * XP_PER_LEVEL_UNIT


def level_floor(level: int) -> int:
    """Cumulative XP at which ``level`` starts."""
    return (level - 1) * (level - 1) * XP_PER_LEVEL_UNIT


def progress_fraction(xp: int, level: int) -> float:
    """Percentage toward the next level, clamped to [0, 100].

    Clamping tolerates a stale ``level`` that no longer matches ``xp``.
    """
    floor = level_floor(level)
    span = xp_threshold(level) - floor
    if span <= 0:
        return 0.0
    pct = (xp - floor) * 100 / span
    return max(0.0, min(100.0, pct))


def compute_level(total_xp: int) -> dict:
    """Level info for a total XP amount."""
    level = level_for_xp(total_xp)
    floor = level_floor(level)
    ceiling = xp_threshold(level)
    return {
        "level": level,
        "xp_total": total_xp,
        "level_floor_xp": floor,
        "next_level_xp": ceiling,
        "xp_into_level": total_xp - floor,
        "xp_for_level": ceiling - floor,
        "progress_percent": progress_fraction(total_xp, level),
    }
