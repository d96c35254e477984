"""Level computation from cumulative XP.

Leaving level ``N`` takes ``N * 100`` XP, so the XP needed to reach level
``L`` is the triangular number ``100 * L * (L - 1) / 2``: 0 XP is level 1,
100 XP level 2, 300 XP level 3, 600 XP level 4. There is no level cap.
"""

from __future__ import annotations

from math import isqrt

XP_STEP = 100

# (first level of the band, title)
LEVEL_TITLES: list[tuple[int, str]] = [
    (1, "Couch Starter"),
    (3, "Weekend Warrior"),
    (6, "Active Mover"),
    (10, "Fitness Enthusiast"),
    (15, "Dedicated Athlete"),
    (20, "Endurance Pro"),
    (30, "Elite Performer"),
    (40, "Champion"),
    (50, "Legend"),
]

LEVEL_MILESTONES = (5, 10, 25, 50)


def xp_for_level(level: int) -> int:
    """Cumulative XP required to reach ``level``."""
    if level < 1:
        msg = "Level must be at least 1"
        raise ValueError(msg)
    return XP_STEP * level * (level - 1) // 2


def level_for_xp(total_xp: int) -> int:
    """Highest level whose threshold is <= ``total_xp``.

    Raises:
        ValueError: If ``total_xp`` is negative.
    """
    if total_xp < 0:
        msg = "XP cannot be negative"
        raise ValueError(msg)
    steps = total_xp // XP_STEP
    # Largest L with L * (L - 1) / 2 <= steps
    return (1 + isqrt(1 + 8 * steps)) // 2


def title_for_level(level: int) -> str:
    title = LEVEL_TITLES[0][1]
    for first_level, band_title in LEVEL_TITLES:
        if level >= first_level:
            title = band_title
    return title


def compute_level(total_xp: int) -> dict:
    """Level info for a profile header or progress bar."""
    level = level_for_xp(total_xp)
    floor = xp_for_level(level)
    ceiling = xp_for_level(level + 1)
    xp_into_level = total_xp - floor
    span = ceiling - floor
    return {
        "level": level,
        "title": title_for_level(level),
        "xp_into_level": xp_into_level,
        "xp_for_level": span,
        "xp_to_next": ceiling - total_xp,
        "progress_pct": round(100 * xp_into_level / span, 1),
        "next_level": level + 1,
        "next_title": title_for_level(level + 1),
    }


def level_table(max_level: int = 50) -> list[dict]:
    return [
        {
            "level": lvl,
            "title": title_for_level(lvl),
            "xp_required": xp_for_level(lvl) - xp_for_level(lvl - 1) if lvl > 1 else 0,
            "cumulative": xp_for_level(lvl),
        }
        for lvl in range(1, max_level + 1)
    ]
