"""
Derived values the site front end renders from the synced data.

All functions here are pure.
"""
import math
from typing import Any, Dict, List, Sequence

from sync.records import Tool, ToolStatus, WaitlistEntry

BASE_RATING = 4.7
MAX_RATING = 5.0
COUNTER_LEAD = 12
MEMBERS_COUNTER_MS = 1800
TOOLS_COUNTER_MS = 1200
RECENT_MEMBERS = 5

TOOL_TABS = ("All", "Live", "Soon")


def _round_half_up(value: float) -> int:
    """Math.round semantics (Python's round() is banker's rounding)"""
    return math.floor(value + 0.5)


def rating_score(members: int) -> float:
    """4.7 plus 0.01 per 100 members, capped at 5.0"""
    bonus = min(members / 100, 30) * 0.01
    return min(_round_half_up((BASE_RATING + bonus) * 10) / 10, MAX_RATING)


def format_rating(members: int) -> str:
    return f"{rating_score(members):.1f}★"


def counter_value(target: int, elapsed_ms: float, duration_ms: float = MEMBERS_COUNTER_MS) -> int:
    """
    Value of the animated counter `elapsed_ms` after it started.

    Starts at max(0, target - 12) and eases out (cubic) to `target` over
    `duration_ms`.
    """
    start = max(0, target - COUNTER_LEAD)
    if duration_ms <= 0:
        progress = 1.0
    else:
        progress = min(max(elapsed_ms / duration_ms, 0.0), 1.0)
    ease = 1 - (1 - progress) ** 3
    return _round_half_up(start + ease * (target - start))


def counter_hint(target: int, duration_ms: int) -> Dict[str, int]:
    return {"from": max(0, target - COUNTER_LEAD), "to": target, "durationMs": duration_ms}


def filter_tools(tools: Sequence[Tool], tab: str = "All") -> List[Tool]:
    """Landing page filter tabs"""
    if tab == "Live":
        return [t for t in tools if t.status is ToolStatus.LIVE]
    if tab == "Soon":
        return [t for t in tools if t.status is ToolStatus.COMING_SOON]
    return list(tools)


def recent_members(entries: Sequence[WaitlistEntry], limit: int = RECENT_MEMBERS) -> List[Dict[str, str]]:
    """Avatar data for the latest joins; `entries` are most recent first"""
    return [
        {"email": entry.email, "initial": entry.email[:1].upper()}
        for entry in list(entries)[:limit]
    ]


def waitlist_stats(entries: Sequence[WaitlistEntry], tools: Sequence[Tool]) -> Dict[str, Any]:
    members = len(entries)
    tool_count = len(tools)
    return {
        "members": members,
        "tools": tool_count,
        "daysPerTool": 15,
        "rating": rating_score(members),
        "ratingLabel": format_rating(members),
        "recentMembers": recent_members(entries),
        "counters": {
            "members": counter_hint(members, MEMBERS_COUNTER_MS),
            "tools": counter_hint(tool_count, TOOLS_COUNTER_MS),
        },
    }
