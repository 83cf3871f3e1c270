"""Totals, averages and counts computed straight from the records.

Similarity search cannot answer "How much did I spend on groceries last
month?"; the figure has to be added up. The aggregator reads through the
DomainDataRetriever, restricted to the planned time range and filters:

  sum, average  finance expenses (income when the question asks about it),
                or health metric values when a metric_type filter is planned
  count         records in every planned domain that pass the filters

A finance category named in the query keywords ("groceries", "coffee")
narrows the sum unless a category filter was planned already.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from lifebutler.query.context import QueryContext, TimeRange
from lifebutler.records import DomainDataRetriever, Record, as_naive_utc
from lifebutler.terms import Terms, contains_term, default_terms

logger = logging.getLogger(__name__)

_FINANCE = "finance_records"
_HEALTH = "health_metrics"
_DEFAULT_CURRENCY = "USD"


class AggregationType(str, enum.Enum):
    SUM = "sum"
    AVERAGE = "average"
    COUNT = "count"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS: dict[AggregationType, str] = {
    AggregationType.SUM: "Total",
    AggregationType.AVERAGE: "Average",
    AggregationType.COUNT: "Count",
}


@dataclass(frozen=True)
class DataPoint:
    """One record's contribution to an aggregation."""

    object_type: str
    object_id: str
    value: float
    timestamp: datetime
    category: str | None = None

    @property
    def citation(self) -> str:
        return f"{self.object_type}({self.object_id})"


@dataclass
class AggregationResult:
    """A computed figure and the records behind it.

    Attributes:
        kind: Sum, average or count.
        value: The figure itself.
        data_points: Contributing records, oldest first.
        unit: Currency or metric unit; empty for counts and mixed units.
        subject: What was aggregated, e.g. ``groceries expense`` or ``sleep``.
        period: Time range description, ``all time`` without one.
        breakdown: Per-category sums for money, per-domain counts for counts.
    """

    kind: AggregationType
    value: float
    data_points: list[DataPoint] = field(default_factory=list)
    unit: str = ""
    subject: str = ""
    period: str = "all time"
    breakdown: dict[str, float] = field(default_factory=dict)

    @property
    def record_count(self) -> int:
        return len(self.data_points)

    def describe(self) -> str:
        """One line, e.g. ``Total groceries expense: 82.10 USD (1 record(s), last month)``."""
        if self.kind is AggregationType.COUNT:
            amount = str(int(self.value))
        else:
            amount = f"{self.value:.2f} {self.unit}".rstrip()
        subject = f" {self.subject}" if self.subject else ""
        return f"{self.kind.label}{subject}: {amount} ({self.record_count} record(s), {self.period})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "value": self.value,
            "unit": self.unit,
            "subject": self.subject,
            "period": self.period,
            "record_count": self.record_count,
            "breakdown": dict(self.breakdown),
            "sources": [p.citation for p in self.data_points],
        }


@dataclass
class _Series:
    points: list[DataPoint]
    unit: str
    subject: str
    breakdown: dict[str, float]


def _number(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _category(record: Record) -> str:
    return str(record.data.get("category") or "").lower()


def _single_unit(values: Iterable[str]) -> str:
    units = set(values)
    return units.pop() if len(units) == 1 else ""


def _matches_filters(record: Record, filters: dict[str, str]) -> bool:
    """Filters apply only to records that carry the filtered field."""
    for key, value in filters.items():
        if key in record.data and str(record.data[key]).lower() != value.lower():
            return False
    return True


class DataAggregator:
    """Compute figures for summary and comparison questions.

    Args:
        retriever: Read-only access to the life records.
        terms: Phrase lists; the packaged defaults if omitted.
    """

    def __init__(self, retriever: DomainDataRetriever, terms: Terms | None = None) -> None:
        self.retriever = retriever
        self.terms = terms or default_terms()

    def aggregation_types(self, query: str) -> list[AggregationType]:
        """Aggregations the query asks for, in sum → average → count order."""
        return [
            AggregationType(kind)
            for kind, phrases in self.terms.aggregations
            if any(contains_term(query, p) for p in phrases)
        ]

    def records(self, domain: str, time_range: TimeRange | None) -> list[Record]:
        """Records of *domain* inside the half-open *time_range*, oldest first."""
        start = time_range.start if time_range else None
        end = time_range.effective_end if time_range else None
        try:
            records = self.retriever.get_records(domain, start, end)
        except Exception as exc:
            logger.warning("Could not read %s for aggregation: %s", domain, exc)
            return []
        if time_range is not None:
            records = [r for r in records if time_range.contains(as_naive_utc(r.timestamp))]
        return sorted(records, key=lambda r: as_naive_utc(r.timestamp))

    # ------------------------------------------------------------------
    # Value series
    # ------------------------------------------------------------------

    def _finance_series(self, context: QueryContext) -> _Series:
        kind = "expense"
        if any(contains_term(context.original_query, t) for t in self.terms.income_terms):
            kind = "income"
        records = [
            r
            for r in self.records(_FINANCE, context.time_range)
            if str(r.data.get("type") or "").lower() == kind
        ]

        if "category" in context.filters:
            categories = {context.filters["category"].lower()}
        else:
            keywords = " ".join(context.keywords)
            categories = {
                c for c in {_category(r) for r in records} if c and contains_term(keywords, c, whole_word=True)
            }
        if categories:
            records = [r for r in records if _category(r) in categories]

        points: list[DataPoint] = []
        breakdown: dict[str, float] = {}
        for r in records:
            amount = _number(r.data.get("amount"))
            if amount is None:
                logger.warning("Skipping %s(%s): amount is not a number", r.object_type, r.id)
                continue
            category = _category(r) or "other"
            points.append(DataPoint(r.object_type, r.id, amount, r.timestamp, category))
            breakdown[category] = breakdown.get(category, 0.0) + amount

        unit = _single_unit(str(r.data.get("currency") or _DEFAULT_CURRENCY) for r in records)
        return _Series(points, unit, " ".join(sorted(categories) + [kind]), breakdown)

    def _metric_series(self, context: QueryContext) -> _Series:
        metric = context.filters["metric_type"].lower()
        records = [
            r
            for r in self.records(_HEALTH, context.time_range)
            if str(r.data.get("metric_type") or "").lower() == metric
        ]
        points = [
            DataPoint(r.object_type, r.id, value, r.timestamp, metric)
            for r in records
            if (value := _number(r.data.get("value"))) is not None
        ]
        unit = _single_unit(str(r.data.get("unit") or "") for r in records)
        return _Series(points, unit, metric, {metric: sum(p.value for p in points)})

    def _series(self, context: QueryContext) -> _Series | None:
        if _FINANCE in context.target_domains:
            return self._finance_series(context)
        if _HEALTH in context.target_domains and "metric_type" in context.filters:
            return self._metric_series(context)
        return None

    # ------------------------------------------------------------------
    # Aggregations
    # ------------------------------------------------------------------

    def _period(self, context: QueryContext) -> str:
        return context.time_range.description if context.time_range else "all time"

    def calculate_sum(self, context: QueryContext) -> AggregationResult | None:
        """Sum of money (or metric values). None if the planned domains have no values to add."""
        series = self._series(context)
        if series is None:
            return None
        return AggregationResult(
            kind=AggregationType.SUM,
            value=sum(p.value for p in series.points),
            data_points=series.points,
            unit=series.unit,
            subject=series.subject,
            period=self._period(context),
            breakdown=series.breakdown,
        )

    def calculate_average(self, context: QueryContext) -> AggregationResult | None:
        """Mean per record; 0.0 when no record matches."""
        series = self._series(context)
        if series is None:
            return None
        total = sum(p.value for p in series.points)
        return AggregationResult(
            kind=AggregationType.AVERAGE,
            value=total / len(series.points) if series.points else 0.0,
            data_points=series.points,
            unit=series.unit,
            subject=series.subject,
            period=self._period(context),
            breakdown=series.breakdown,
        )

    def calculate_count(self, context: QueryContext) -> AggregationResult:
        points: list[DataPoint] = []
        breakdown: dict[str, float] = {}
        for domain in sorted(context.target_domains):
            matched = [r for r in self.records(domain, context.time_range) if _matches_filters(r, context.filters)]
            if matched:
                breakdown[domain] = float(len(matched))
            points.extend(DataPoint(r.object_type, r.id, 1.0, r.timestamp, domain) for r in matched)
        return AggregationResult(
            kind=AggregationType.COUNT,
            value=float(len(points)),
            data_points=points,
            subject="records",
            period=self._period(context),
            breakdown=breakdown,
        )

    def aggregate(self, context: QueryContext) -> list[AggregationResult]:
        """Every aggregation the query asks for that the planned domains support."""
        results: list[AggregationResult] = []
        for kind in self.aggregation_types(context.original_query):
            if kind is AggregationType.SUM:
                result = self.calculate_sum(context)
            elif kind is AggregationType.AVERAGE:
                result = self.calculate_average(context)
            else:
                result = self.calculate_count(context)
            if result is not None:
                results.append(result)
        return results
