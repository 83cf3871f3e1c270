"""Heuristic term lists, loaded from ``resources/terms.yaml``.

The planner, router, advice engine and safety checker never hard-code their
phrase sets; they receive a :class:`Terms` instance. ``load_terms()`` reads
the packaged file, or a replacement file named in config (``terms:``).

All YAML reads use yaml.safe_load().
"""

from __future__ import annotations

import functools
import re
from collections.abc import Iterable
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

_REQUIRED_SECTIONS = ("planner", "router", "advice", "safety")
_SAFETY_CATEGORIES = ("medical", "financial", "legal", "emergency")


class TermsError(ValueError):
    """Raised when a term file is missing a section or has the wrong shape."""


@dataclass(frozen=True)
class InsightPattern:
    type: str
    phrases: tuple[str, ...]
    confidence: float
    impact: str
    description: str
    suggested_action: str


@dataclass(frozen=True)
class FilterRule:
    match: tuple[str, ...]
    key: str
    value: str


@dataclass(frozen=True)
class Terms:
    """Immutable view of every phrase list the heuristics use."""

    planner_intents: tuple[tuple[str, tuple[str, ...]], ...]
    planner_domains: tuple[tuple[str, tuple[str, ...]], ...]
    time_phrases: tuple[tuple[str, str], ...]
    stop_words: frozenset[str]
    filters: tuple[FilterRule, ...]
    aggregations: tuple[tuple[str, tuple[str, ...]], ...]
    income_terms: tuple[str, ...]
    rule_keywords: tuple[tuple[str, tuple[tuple[str, float], ...]], ...]
    zh_to_en: tuple[tuple[str, str], ...]
    en_to_zh: tuple[tuple[str, str], ...]
    exemplars: tuple[tuple[str, tuple[str, ...]], ...]
    insight_patterns: tuple[InsightPattern, ...]
    advice_categories: tuple[tuple[str, tuple[str, ...]], ...]
    safety: tuple[tuple[str, tuple[str, ...]], ...]

    def safety_terms(self, category: str) -> tuple[str, ...]:
        return dict(self.safety).get(category, ())


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=4096)
def _pattern(term: str, whole_word: bool) -> re.Pattern[str]:
    escaped = re.escape(term.lower())
    if whole_word:
        return re.compile(rf"\b{escaped}(?:s|es)?\b")
    return re.compile(rf"\b{escaped}")


def contains_term(text: str, term: str, *, whole_word: bool = False) -> bool:
    """Return True if *term* occurs in *text* (case-insensitive).

    ASCII terms must start on a word boundary; with *whole_word* they must
    also end on one (an ``s``/``es`` plural suffix is allowed). Non-ASCII
    terms, e.g. Chinese phrases, match as plain substrings.
    """
    lowered = text.lower()
    if not term.isascii():
        return term in lowered
    return _pattern(term, whole_word).search(lowered) is not None


def matching_terms(text: str, terms: Iterable[str], *, whole_word: bool = False) -> list[str]:
    """Return the subset of *terms* present in *text*, in input order."""
    return [t for t in terms if contains_term(text, t, whole_word=whole_word)]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _str_tuple(value: Any, where: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise TermsError(f"{where} must be a list of strings")
    return tuple(str(v) for v in value)


def _named_lists(data: Any, where: str) -> tuple[tuple[str, tuple[str, ...]], ...]:
    if not isinstance(data, dict):
        raise TermsError(f"{where} must be a mapping")
    return tuple((str(k), _str_tuple(v, f"{where}.{k}")) for k, v in data.items())


def _terms_from_dict(data: dict[str, Any]) -> Terms:
    for section in _REQUIRED_SECTIONS:
        if not isinstance(data.get(section), dict):
            raise TermsError(f"Term file is missing the '{section}' section")

    planner = data["planner"]
    router = data["router"]
    advice = data["advice"]
    safety = data["safety"]

    missing = [c for c in _SAFETY_CATEGORIES if c not in safety]
    if missing:
        raise TermsError(f"safety section is missing: {', '.join(missing)}")

    rule_keywords = []
    for intent, pairs in (router.get("rule_keywords") or {}).items():
        try:
            weighted = tuple((str(k), float(w)) for k, w in pairs)
        except (TypeError, ValueError) as exc:
            raise TermsError(f"router.rule_keywords.{intent} must be [keyword, weight] pairs") from exc
        rule_keywords.append((str(intent), weighted))

    return Terms(
        planner_intents=_named_lists(planner.get("intents") or {}, "planner.intents"),
        planner_domains=_named_lists(planner.get("domains") or {}, "planner.domains"),
        time_phrases=tuple((str(p), str(k)) for p, k in planner.get("time_phrases") or []),
        stop_words=frozenset(_str_tuple(planner.get("stop_words") or [], "planner.stop_words")),
        filters=tuple(
            FilterRule(
                match=_str_tuple(f.get("match") or [], "planner.filters.match"),
                key=str(f["key"]),
                value=str(f["value"]),
            )
            for f in planner.get("filters") or []
        ),
        aggregations=_named_lists(planner.get("aggregations") or {}, "planner.aggregations"),
        income_terms=_str_tuple(planner.get("income_terms") or [], "planner.income_terms"),
        rule_keywords=tuple(rule_keywords),
        zh_to_en=tuple((str(k), str(v)) for k, v in (router.get("zh_to_en") or {}).items()),
        en_to_zh=tuple((str(k), str(v)) for k, v in (router.get("en_to_zh") or {}).items()),
        exemplars=_named_lists(router.get("exemplars") or {}, "router.exemplars"),
        insight_patterns=tuple(
            InsightPattern(
                type=str(p["type"]),
                phrases=_str_tuple(p.get("phrases") or [], "advice.insight_patterns.phrases"),
                confidence=float(p.get("confidence", 0.5)),
                impact=str(p.get("impact", "medium")),
                description=str(p.get("description", "")),
                suggested_action=str(p.get("suggested_action", "")),
            )
            for p in advice.get("insight_patterns") or []
        ),
        advice_categories=_named_lists(advice.get("categories") or {}, "advice.categories"),
        safety=_named_lists(safety, "safety"),
    )


def load_terms(path: Path | None = None) -> Terms:
    """Load term lists from *path*, or the packaged ``terms.yaml`` if None.

    Raises:
        TermsError: If the file is missing a required section.
        FileNotFoundError: If *path* does not exist.
    """
    if path is None:
        raw = resources.files("lifebutler").joinpath("resources/terms.yaml").read_text(
            encoding="utf-8"
        )
    else:
        raw = Path(path).read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise TermsError("Term file must contain a mapping at the top level")
    return _terms_from_dict(data)


@functools.lru_cache(maxsize=1)
def default_terms() -> Terms:
    """Packaged term lists, parsed once per process."""
    return load_terms()
