"""
Counters (server mirror), DisplayCounters, and the pure merge function.

Nothing in here does I/O. The server collaborator is responsible for the
daily rollover; merge() assumes the counters it gets are current for today.
"""

from dataclasses import dataclass, asdict, replace
from datetime import datetime, timezone

from .constants import DEFAULT_DAILY_TARGET, DEFAULT_FINAL_TARGET


def today_str(now=None):
    """Current UTC calendar date as YYYY-MM-DD."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%d")


def _as_count(value, default=0):
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    return max(0, value)


@dataclass(frozen=True)
class Counters:
    daily_count: int = 0
    total_count: int = 0
    last_active_date: str = ""
    daily_target: int = DEFAULT_DAILY_TARGET
    final_target: int = DEFAULT_FINAL_TARGET
    username: str = ""

    @classmethod
    def from_dict(cls, data):
        """Build from the server's camelCase JSON. Unknown keys are ignored."""
        return cls(
            daily_count=_as_count(data.get("dailyCount")),
            total_count=_as_count(data.get("totalCount")),
            last_active_date=str(data.get("lastActiveDate") or ""),
            daily_target=_as_count(data.get("dailyTarget"), DEFAULT_DAILY_TARGET) or DEFAULT_DAILY_TARGET,
            final_target=_as_count(data.get("finalTarget"), DEFAULT_FINAL_TARGET) or DEFAULT_FINAL_TARGET,
            username=str(data.get("username") or ""),
        )

    def to_dict(self):
        return {
            "dailyCount": self.daily_count,
            "totalCount": self.total_count,
            "lastActiveDate": self.last_active_date,
            "dailyTarget": self.daily_target,
            "finalTarget": self.final_target,
            "username": self.username,
        }

    def with_delta(self, delta):
        return replace(
            self,
            daily_count=self.daily_count + delta,
            total_count=self.total_count + delta,
        )


@dataclass(frozen=True)
class DisplayCounters:
    display_daily: int
    display_total: int
    daily_target: int
    final_target: int
    pending: int

    @property
    def daily_progress(self):
        return progress_percent(self.display_daily, self.daily_target)

    @property
    def total_progress(self):
        return progress_percent(self.display_total, self.final_target)

    @property
    def synced(self):
        """False while taps are waiting for the server (drives the "not synced" badge)."""
        return self.pending == 0

    def as_dict(self):
        data = asdict(self)
        data["daily_progress"] = self.daily_progress
        data["total_progress"] = self.total_progress
        return data


def progress_percent(count, target):
    """Percentage of target reached, clamped to [0, 100]."""
    if target <= 0:
        return 0.0
    return min(max(count / target * 100.0, 0.0), 100.0)


def merge(counters, pending):
    """Combine authoritative counters with the locally pending delta."""
    pending = max(0, int(pending))
    return DisplayCounters(
        display_daily=counters.daily_count + pending,
        display_total=counters.total_count + pending,
        daily_target=counters.daily_target,
        final_target=counters.final_target,
        pending=pending,
    )
