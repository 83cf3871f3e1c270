"""Structured form of a natural-language query."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta


class QueryIntent(str, enum.Enum):
    SEARCH = "search"
    ANALYSIS = "analysis"
    ADVICE = "advice"
    SUMMARY = "summary"
    COMPARISON = "comparison"


class TimePeriod(str, enum.Enum):
    TODAY = "today"
    THIS_WEEK = "this_week"
    LAST_WEEK = "last_week"
    THIS_MONTH = "this_month"
    LAST_MONTH = "last_month"
    THIS_YEAR = "this_year"
    LAST_YEAR = "last_year"


def _month_start(year: int, month: int) -> datetime:
    # month may be 0 or 13 after +/- 1
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return datetime(year, month, 1)


@dataclass(frozen=True)
class TimeRange:
    """A half-open date range ``[start, effective_end)``.

    Period ranges carry only ``start``; ``effective_end`` derives the end
    from the period. Custom ranges carry both ends.
    """

    start: datetime | None = None
    end: datetime | None = None
    period: TimePeriod | None = None

    @classmethod
    def for_period(cls, period: TimePeriod, now: datetime) -> TimeRange:
        today = datetime(now.year, now.month, now.day)
        if period is TimePeriod.TODAY:
            start = today
        elif period is TimePeriod.THIS_WEEK:
            start = today - timedelta(days=today.weekday())
        elif period is TimePeriod.LAST_WEEK:
            start = today - timedelta(days=today.weekday() + 7)
        elif period is TimePeriod.THIS_MONTH:
            start = _month_start(now.year, now.month)
        elif period is TimePeriod.LAST_MONTH:
            start = _month_start(now.year, now.month - 1)
        elif period is TimePeriod.THIS_YEAR:
            start = datetime(now.year, 1, 1)
        else:
            start = datetime(now.year - 1, 1, 1)
        return cls(start=start, period=period)

    @classmethod
    def custom(cls, start: datetime, end: datetime) -> TimeRange:
        return cls(start=start, end=end)

    @property
    def effective_end(self) -> datetime | None:
        if self.end is not None:
            return self.end
        if self.period is None or self.start is None:
            return None
        if self.period is TimePeriod.TODAY:
            return self.start + timedelta(days=1)
        if self.period in (TimePeriod.THIS_WEEK, TimePeriod.LAST_WEEK):
            return self.start + timedelta(days=7)
        if self.period in (TimePeriod.THIS_MONTH, TimePeriod.LAST_MONTH):
            return _month_start(self.start.year, self.start.month + 1)
        return datetime(self.start.year + 1, 1, 1)

    @property
    def description(self) -> str:
        if self.period is not None:
            return self.period.value.replace("_", " ")
        if self.start is not None and self.end is not None:
            return f"from {self.start.date().isoformat()} to {self.end.date().isoformat()}"
        if self.start is not None:
            return f"since {self.start.date().isoformat()}"
        return "all time"

    def contains(self, ts: datetime) -> bool:
        end = self.effective_end
        if self.start is not None and ts < self.start:
            return False
        if end is not None and ts >= end:
            return False
        return True


@dataclass(frozen=True)
class QueryContext:
    """Output of QueryPlanner.plan(): intent, domains, time range, keywords, filters."""

    original_query: str
    intent: QueryIntent
    target_domains: frozenset[str] = frozenset()
    time_range: TimeRange | None = None
    keywords: tuple[str, ...] = ()
    filters: dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    @property
    def is_cross_domain(self) -> bool:
        return len(self.target_domains) > 1

    @property
    def is_advice_query(self) -> bool:
        return self.intent is QueryIntent.ADVICE

    @property
    def is_analysis_query(self) -> bool:
        return self.intent is QueryIntent.ANALYSIS
