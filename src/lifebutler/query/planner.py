"""Rule-based query planner.

Turns a natural-language query into a QueryContext with plain term matching
against the phrase lists in ``terms.yaml``:

  intent       first matching phrase set in advice → analysis → comparison
               → summary order; default search
  domains      keyword → domain dictionary; no match selects every domain
  time range   fixed phrases, then an explicit year, then "past/last N days|weeks"
  keywords     lower-case, punctuation → space, drop short and stop words
  filters      meal type, takeout category, health metric
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime, timedelta

from lifebutler.query.context import QueryContext, QueryIntent, TimePeriod, TimeRange
from lifebutler.records import DOMAINS
from lifebutler.terms import Terms, contains_term, default_terms

_YEAR_RE = re.compile(r"\b((?:19|20)\d{2})\b")
_DAYS_RE = re.compile(r"\b(?:past|last) (\d+) days?\b")
_WEEKS_RE = re.compile(r"\b(?:past|last) (\d+) weeks?\b")
_PUNCT_RE = re.compile(r"[^\w\s]")

_MIN_KEYWORD_LEN = 3


class QueryPlanner:
    """Plan queries against a fixed set of term lists.

    Args:
        terms: Phrase lists; the packaged defaults if omitted.
        clock: Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        terms: Terms | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.terms = terms or default_terms()
        self.clock = clock

    def plan(self, query: str) -> QueryContext:
        return QueryContext(
            original_query=query,
            intent=self.classify_intent(query),
            target_domains=self.identify_domains(query),
            time_range=self.extract_time_range(query),
            keywords=self.extract_keywords(query),
            filters=self.extract_filters(query),
        )

    def classify_intent(self, query: str) -> QueryIntent:
        for intent, phrases in self.terms.planner_intents:
            if any(contains_term(query, p) for p in phrases):
                return QueryIntent(intent)
        return QueryIntent.SEARCH

    def identify_domains(self, query: str) -> frozenset[str]:
        domains = frozenset(
            domain
            for domain, keywords in self.terms.planner_domains
            if any(contains_term(query, k) for k in keywords)
        )
        return domains or frozenset(DOMAINS)

    def extract_time_range(self, query: str) -> TimeRange | None:
        now = self.clock()
        lowered = query.lower()

        for phrase, period in self.terms.time_phrases:
            if contains_term(lowered, phrase):
                return TimeRange.for_period(TimePeriod(period), now)

        if m := _YEAR_RE.search(lowered):
            year = int(m.group(1))
            return TimeRange.custom(datetime(year, 1, 1), datetime(year + 1, 1, 1))

        if m := _DAYS_RE.search(lowered):
            return TimeRange.custom(now - timedelta(days=int(m.group(1))), now)

        if m := _WEEKS_RE.search(lowered):
            return TimeRange.custom(now - timedelta(weeks=int(m.group(1))), now)

        return None

    def extract_keywords(self, query: str) -> tuple[str, ...]:
        words = _PUNCT_RE.sub(" ", query.lower()).split()
        return tuple(
            w
            for w in words
            if len(w) >= _MIN_KEYWORD_LEN and w not in self.terms.stop_words
        )

    def extract_filters(self, query: str) -> dict[str, str]:
        filters: dict[str, str] = {}
        for rule in self.terms.filters:
            if any(contains_term(query, m) for m in rule.match):
                filters[rule.key] = rule.value
        return filters
