"""Life records and the read-only retriever interface over them.

The record store itself lives outside this package; the pipeline only ever
reads through a :class:`DomainDataRetriever`. Two implementations ship here:
an in-memory :class:`StaticRecordSource` and a JSON-file
:class:`JsonRecordSource` used by the CLI.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DOMAINS: tuple[str, ...] = (
    "finance_records",
    "meals",
    "journals",
    "health_metrics",
    "events",
    "education",
    "career",
    "tasks_habits",
    "relations",
    "media_logs",
    "travel_logs",
)

# Appended to every serialised record so that both English and Chinese
# queries land near it in embedding space.
_DOMAIN_KEYWORDS: dict[str, str] = {
    "meals": "food, meal, eating, 餐, 食物, 吃, 卡路里",
    "journals": "journal, diary, thoughts, mood, 日记, 心情, 情绪, 感想",
    "health_metrics": "health, fitness, metric, 健康, 身体, 指标",
    "events": "event, activity, 事件, 活动",
    "education": "education, school, study, learning, 教育, 学习, 学校",
    "career": "work, career, job, employment, 工作, 职业, 事业",
    "tasks_habits": "task, habit, routine, productivity, 任务, 习惯, 例行",
    "relations": "relationship, social, people, contact, 关系, 社交, 人际",
    "media_logs": "media, entertainment, 媒体, 娱乐",
    "travel_logs": "travel, trip, journey, 旅行, 出行",
}

_EXPENSE_KEYWORDS = "spending cost expense payment 支出 花费 消费"
_INCOME_KEYWORDS = "income revenue earning 收入 收益"


@dataclass(frozen=True)
class Record:
    """One structured life record.

    Attributes:
        id: Record ID, unique within its domain.
        object_type: Domain tag (one of :data:`DOMAINS`, or a custom tag).
        timestamp: When the recorded thing happened.
        data: Domain-specific fields.
        user_id: Owner, if the record store tracks one.
    """

    id: str
    object_type: str
    timestamp: datetime
    data: Mapping[str, Any] = field(default_factory=dict)
    user_id: str | None = None

    def to_searchable_text(self) -> str:
        lines = [
            f"DOMAIN: {self.object_type.upper()}",
            f"DATE: {self.timestamp.date().isoformat()}",
        ]
        serializer = _SERIALIZERS.get(self.object_type.lower(), _serialize_generic)
        lines.extend(serializer(self.data))
        if keywords := _DOMAIN_KEYWORDS.get(self.object_type.lower()):
            lines.append(f"KEYWORDS: {keywords}")
        return "\n".join(lines).strip()


# ---------------------------------------------------------------------------
# Per-domain serialisation
# ---------------------------------------------------------------------------


def _fields(data: Mapping[str, Any], *pairs: tuple[str, str]) -> list[str]:
    """Emit ``LABEL: value`` for each present, non-empty field."""
    lines = []
    for key, label in pairs:
        value = data.get(key)
        if value in (None, "", [], {}, 0, 0.0):
            continue
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(v) for v in value)
        lines.append(f"{label}: {value}")
    return lines


def _serialize_finance(data: Mapping[str, Any]) -> list[str]:
    kind = str(data.get("type") or "unknown")
    category = str(data.get("category") or "uncategorized")
    notes = str(data.get("notes") or "")
    lines = [
        f"TYPE: {kind.upper()}",
        f"AMOUNT: {data.get('amount', 0.0)} {data.get('currency') or 'USD'}",
        f"CATEGORY: {category}",
    ]
    if notes:
        lines.append(f"DESCRIPTION: {notes}")
    keywords = [_EXPENSE_KEYWORDS if kind == "expense" else _INCOME_KEYWORDS, category.lower()]
    if notes:
        keywords.append(notes.lower())
    lines.append(f"KEYWORDS: {' '.join(keywords)}")
    return lines


def _serialize_meal(data: Mapping[str, Any]) -> list[str]:
    return [f"MEAL: {data.get('name') or 'Unknown meal'}"] + _fields(
        data, ("items", "ITEMS"), ("calories", "CALORIES"), ("location", "LOCATION"), ("notes", "NOTES")
    )


def _serialize_journal(data: Mapping[str, Any]) -> list[str]:
    return _fields(data, ("content", "CONTENT"), ("mood", "MOOD_SCORE"), ("topics", "TOPICS"))


def _serialize_health(data: Mapping[str, Any]) -> list[str]:
    value = f"{data.get('value', 0.0)} {data.get('unit') or ''}".rstrip()
    return [f"METRIC: {data.get('metric_type') or 'unknown'}", f"VALUE: {value}"] + _fields(
        data, ("notes", "NOTES")
    )


def _serialize_event(data: Mapping[str, Any]) -> list[str]:
    return [f"TITLE: {data.get('title') or 'Untitled event'}"] + _fields(
        data, ("description", "DESCRIPTION"), ("location", "LOCATION"), ("tags", "TAGS")
    )


def _serialize_education(data: Mapping[str, Any]) -> list[str]:
    return _fields(
        data, ("school_name", "SCHOOL"), ("degree", "DEGREE"), ("major", "MAJOR"), ("notes", "NOTES")
    )


def _serialize_career(data: Mapping[str, Any]) -> list[str]:
    return _fields(
        data, ("company", "COMPANY"), ("role", "ROLE"), ("achievements", "ACHIEVEMENTS"), ("notes", "NOTES")
    )


def _serialize_task(data: Mapping[str, Any]) -> list[str]:
    return [
        f"TITLE: {data.get('title') or 'Untitled task'}",
        f"TYPE: {data.get('type') or 'task'}",
        f"STATUS: {data.get('status') or 'pending'}",
    ] + _fields(data, ("notes", "NOTES"))


def _serialize_relation(data: Mapping[str, Any]) -> list[str]:
    return _fields(
        data, ("person_name", "PERSON"), ("relation_type", "RELATION"), ("notes", "NOTES")
    )


def _serialize_media(data: Mapping[str, Any]) -> list[str]:
    return [f"TITLE: {data.get('title') or 'Untitled media'}"] + _fields(
        data, ("media_type", "TYPE"), ("progress", "PROGRESS"), ("rating", "RATING"), ("notes", "NOTES")
    )


def _serialize_travel(data: Mapping[str, Any]) -> list[str]:
    return _fields(data, ("place", "PLACE"), ("cost", "COST"), ("notes", "NOTES"))


def _serialize_generic(data: Mapping[str, Any]) -> list[str]:
    return [f"{k}: {v}" for k, v in data.items() if v is not None and str(v) != ""]


_SERIALIZERS: dict[str, Callable[[Mapping[str, Any]], list[str]]] = {
    "finance_records": _serialize_finance,
    "meals": _serialize_meal,
    "journals": _serialize_journal,
    "health_metrics": _serialize_health,
    "events": _serialize_event,
    "education": _serialize_education,
    "career": _serialize_career,
    "tasks_habits": _serialize_task,
    "relations": _serialize_relation,
    "media_logs": _serialize_media,
    "travel_logs": _serialize_travel,
}


# ---------------------------------------------------------------------------
# Retriever interface
# ---------------------------------------------------------------------------


@runtime_checkable
class DomainDataRetriever(Protocol):
    """Read-only access to life records, one domain at a time."""

    def get_records(
        self,
        domain: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Record]: ...


def count_records(retriever: DomainDataRetriever, domains: Iterable[str] = DOMAINS) -> dict[str, int]:
    """Return the number of records per domain.

    A domain whose retrieval fails is logged and counted as 0 so that one
    broken domain does not hide the others.
    """
    counts: dict[str, int] = {}
    for domain in domains:
        try:
            counts[domain] = len(retriever.get_records(domain))
        except Exception as exc:
            logger.warning("Could not count records in domain %s: %s", domain, exc)
            counts[domain] = 0
    return counts


def as_naive_utc(ts: datetime) -> datetime:
    """Convert an offset-aware datetime to naive UTC; naive values pass through."""
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def _in_range(ts: datetime, start: datetime | None, end: datetime | None) -> bool:
    ts = as_naive_utc(ts)
    if start is not None and ts < as_naive_utc(start):
        return False
    if end is not None and ts > as_naive_utc(end):
        return False
    return True


class StaticRecordSource:
    """In-memory retriever over a fixed list of records."""

    def __init__(self, records: Iterable[Record] = ()) -> None:
        self._records: list[Record] = list(records)

    def add(self, record: Record) -> None:
        self._records.append(record)

    def get_records(
        self,
        domain: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Record]:
        return [
            r
            for r in self._records
            if r.object_type == domain and _in_range(r.timestamp, start, end)
        ]


def _parse_timestamp(value: Any) -> datetime:
    """Parse an ISO 8601 timestamp. Offsets are converted to naive UTC."""
    if isinstance(value, datetime):
        return as_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return as_naive_utc(datetime.fromisoformat(text))


def record_from_dict(raw: Mapping[str, Any], domain: str | None = None) -> Record:
    """Build a Record from a JSON object.

    Expected keys: ``id``, ``object_type`` (or ``domain``), ``timestamp``
    (ISO 8601) and ``data``. *domain* supplies the type when the object sits
    under a domain key in the file.

    Raises:
        ValueError: If a required key is missing or the timestamp is invalid.
    """
    object_type = raw.get("object_type") or raw.get("domain") or domain
    if not raw.get("id") or not object_type or not raw.get("timestamp"):
        raise ValueError(f"Record needs id, object_type and timestamp: {dict(raw)!r}")
    return Record(
        id=str(raw["id"]),
        object_type=str(object_type),
        timestamp=_parse_timestamp(raw["timestamp"]),
        data=dict(raw.get("data") or {}),
        user_id=raw.get("user_id"),
    )


class JsonRecordSource:
    """Read-only retriever over a JSON export of life records.

    The file holds either a list of record objects or a mapping of domain to
    record list. It is read on first access (or by an explicit load()) and
    cached.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._by_domain: dict[str, list[Record]] | None = None

    def load(self) -> dict[str, list[Record]]:
        """Read and validate the file once; later calls return the cache.

        Raises:
            ValueError: If the file is not valid JSON or a record is malformed.
        """
        if self._by_domain is None:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            records: list[Record] = []
            if isinstance(raw, dict):
                for domain, items in raw.items():
                    records.extend(record_from_dict(item, domain) for item in items)
            elif isinstance(raw, list):
                records.extend(record_from_dict(item) for item in raw)
            else:
                raise ValueError(f"{self.path}: expected a JSON list or object of records")
            by_domain: dict[str, list[Record]] = {}
            for record in records:
                by_domain.setdefault(record.object_type, []).append(record)
            self._by_domain = by_domain
        return self._by_domain

    def get_records(
        self,
        domain: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Record]:
        return [r for r in self.load().get(domain, []) if _in_range(r.timestamp, start, end)]

    def find(self, record_id: str) -> Record | None:
        """Return the first record with *record_id* across all domains."""
        for records in self.load().values():
            for record in records:
                if record.id == record_id:
                    return record
        return None
