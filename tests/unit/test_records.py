"""Tests for records, searchable text and the record sources."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from lifebutler.records import (
    DOMAINS,
    JsonRecordSource,
    Record,
    StaticRecordSource,
    count_records,
    record_from_dict,
)


def test_eleven_domains():
    assert len(DOMAINS) == 11
    assert "finance_records" in DOMAINS and "travel_logs" in DOMAINS


# ------------------------------------------------------------------
# Searchable text
# ------------------------------------------------------------------

def test_finance_expense_text(sample_records):
    text = sample_records[0].to_searchable_text()
    lines = text.splitlines()
    assert lines[0] == "DOMAIN: FINANCE_RECORDS"
    assert lines[1] == "DATE: 2024-03-01"
    assert "TYPE: EXPENSE" in lines
    assert "AMOUNT: 4.5 USD" in lines
    assert "CATEGORY: coffee" in lines
    assert "DESCRIPTION: morning coffee" in lines
    assert lines[-1].startswith("KEYWORDS: spending cost expense payment")
    assert "支出" in lines[-1]


def test_finance_income_keywords():
    record = Record("f9", "finance_records", datetime(2024, 1, 31), {"type": "income", "amount": 3000, "category": "salary"})
    keywords = record.to_searchable_text().splitlines()[-1]
    assert keywords.startswith("KEYWORDS: income revenue earning")
    assert keywords.endswith("salary")


def test_meal_text_has_items_and_bilingual_keywords(sample_records):
    text = sample_records[2].to_searchable_text()
    assert "MEAL: Pizza night" in text
    assert "ITEMS: pizza, salad" in text
    assert "CALORIES: 900" in text
    assert text.splitlines()[-1] == "KEYWORDS: food, meal, eating, 餐, 食物, 吃, 卡路里"


def test_health_text(sample_records):
    text = sample_records[3].to_searchable_text()
    assert "METRIC: sleep" in text
    assert "VALUE: 6.5 hours" in text


def test_empty_fields_are_skipped():
    record = Record("j1", "journals", datetime(2024, 2, 1), {"content": "Good day", "mood": None, "topics": []})
    text = record.to_searchable_text()
    assert "CONTENT: Good day" in text
    assert "MOOD_SCORE" not in text
    assert "TOPICS" not in text


def test_unknown_domain_uses_key_value_lines():
    record = Record("x1", "pets", datetime(2024, 2, 1), {"name": "Rex", "species": "dog", "age": None})
    assert record.to_searchable_text().splitlines() == [
        "DOMAIN: PETS",
        "DATE: 2024-02-01",
        "name: Rex",
        "species: dog",
    ]


# ------------------------------------------------------------------
# Sources
# ------------------------------------------------------------------

def test_static_source_filters_domain_and_range(sample_records):
    source = StaticRecordSource(sample_records)
    assert [r.id for r in source.get_records("finance_records")] == ["f1", "f2"]
    ranged = source.get_records("finance_records", start=datetime(2024, 3, 2))
    assert [r.id for r in ranged] == ["f2"]
    assert source.get_records("travel_logs") == []


class _BrokenSource(StaticRecordSource):
    def get_records(self, domain, start=None, end=None):
        if domain == "meals":
            raise RuntimeError("record store offline")
        return super().get_records(domain, start, end)


def test_count_records_tolerates_failing_domain(sample_records, caplog):
    counts = count_records(_BrokenSource(sample_records))
    assert counts["finance_records"] == 2
    assert counts["meals"] == 0
    assert set(counts) == set(DOMAINS)
    assert "meals" in caplog.text


def test_record_from_dict_requires_keys():
    with pytest.raises(ValueError):
        record_from_dict({"id": "a1", "timestamp": "2024-01-01"})


def test_json_source_list_format(tmp_path):
    path = tmp_path / "records.json"
    path.write_text(
        json.dumps(
            [
                {"id": "f1", "object_type": "finance_records", "timestamp": "2024-03-01T08:30:00",
                 "data": {"type": "expense", "amount": 4.5, "category": "coffee"}},
                {"id": "m1", "domain": "meals", "timestamp": "2024-03-02", "data": {"name": "Soup"}},
            ]
        ),
        encoding="utf-8",
    )
    source = JsonRecordSource(path)
    assert [r.id for r in source.get_records("finance_records")] == ["f1"]
    assert source.find("m1").object_type == "meals"
    assert source.find("nope") is None


def test_json_source_domain_mapping_format(tmp_path):
    path = tmp_path / "records.json"
    path.write_text(
        json.dumps({"meals": [{"id": "m1", "timestamp": "2024-03-02T12:00:00", "data": {"name": "Soup"}}]}),
        encoding="utf-8",
    )
    record = JsonRecordSource(path).get_records("meals")[0]
    assert record.timestamp == datetime(2024, 3, 2, 12, 0)


def test_json_source_rejects_scalar(tmp_path):
    path = tmp_path / "records.json"
    path.write_text("42", encoding="utf-8")
    with pytest.raises(ValueError):
        JsonRecordSource(path).get_records("meals")


@pytest.mark.parametrize(
    "raw",
    ["2024-03-01T08:00:00+00:00", "2024-03-01T08:00:00Z", "2024-03-01T10:00:00+02:00"],
)
def test_offset_timestamps_become_naive_utc(raw):
    record = record_from_dict({"id": "j1", "object_type": "journals", "timestamp": raw})
    assert record.timestamp == datetime(2024, 3, 1, 8, 0)
    assert record.timestamp.tzinfo is None


def test_range_filter_accepts_offset_timestamps(tmp_path):
    path = tmp_path / "records.json"
    path.write_text(
        json.dumps({"journals": [{"id": "j1", "timestamp": "2024-03-01T08:00:00+00:00", "data": {}}]}),
        encoding="utf-8",
    )
    source = JsonRecordSource(path)
    assert [r.id for r in source.get_records("journals", datetime(2024, 3, 1), datetime(2024, 4, 1))] == ["j1"]
    assert source.get_records("journals", datetime(2024, 4, 1)) == []


def test_static_source_compares_aware_and_naive():
    aware = Record("j1", "journals", datetime(2024, 3, 1, 8, tzinfo=timezone(timedelta(hours=2))))
    source = StaticRecordSource([aware])
    assert source.get_records("journals", start=datetime(2024, 3, 1, 6), end=datetime(2024, 3, 1, 6)) == [aware]
    assert source.get_records("journals", start=datetime(2024, 3, 1, 7)) == []


def test_json_source_load_validates_eagerly(tmp_path):
    path = tmp_path / "records.json"
    path.write_text(json.dumps([{"id": "f1", "object_type": "journals", "timestamp": "not a date"}]), encoding="utf-8")
    with pytest.raises(ValueError):
        JsonRecordSource(path).load()


def test_json_source_load_reads_once(tmp_path):
    path = tmp_path / "records.json"
    path.write_text(json.dumps({"meals": [{"id": "m1", "timestamp": "2024-03-02", "data": {}}]}), encoding="utf-8")
    source = JsonRecordSource(path)
    assert set(source.load()) == {"meals"}
    path.unlink()
    assert [r.id for r in source.get_records("meals")] == ["m1"]
