"""LifeAssistant: the public entry point.

Order of work for one question: planner → router → RAG → advice. The router
decides the strategy:

  RETRIEVAL    ranked search results within the planned domains and time
               range; summary and comparison questions also get computed
               figures, and summaries a synthesised answer
  ADVICE       retrieved context turned into safety-checked advice
  PASSTHROUGH  the chat model answers directly

Every strategy runs the safety checker over the query and what is shown.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from lifebutler.advice.engine import DEGRADED_NOTICE, AdviceEngine, AdviceStyle
from lifebutler.advice.result import AdviceResult
from lifebutler.advice.safety import SafetyChecker, SafetyResult
from lifebutler.config import LifeButlerConfig
from lifebutler.db.connection import Database
from lifebutler.db.schema import initialize
from lifebutler.db.store import EmbeddingStore
from lifebutler.errors import ServiceUnavailableError
from lifebutler.query.aggregator import AggregationResult, DataAggregator
from lifebutler.query.context import QueryIntent
from lifebutler.query.planner import QueryPlanner
from lifebutler.rag.llm_client import ChatBackend, LiteLLMBackend
from lifebutler.rag.pipeline import IndexingStatus, RagConfig, RagPipeline, RebuildReport, SearchResult
from lifebutler.records import DomainDataRetriever, Record
from lifebutler.routing.classifiers import ModelClassifier, RuleBasedClassifier, SemanticClassifier
from lifebutler.routing.router import EnhancedRequestRouter, RouteDecision, RouteStrategy
from lifebutler.terms import default_terms, load_terms

logger = logging.getLogger(__name__)

_PASSTHROUGH_SYSTEM_PROMPT = (
    "You are LifeButler, a friendly personal assistant. Answer briefly. "
    "You have no access to the user's records in this conversation."
)
_PASSTHROUGH_UNAVAILABLE = (
    "I can only answer questions about your own records right now: "
    "the chat model is unavailable."
)
_FIGURE_INTENTS = (QueryIntent.SUMMARY, QueryIntent.COMPARISON)


@dataclass
class RetrievalAnswer:
    """Answer to a RETRIEVAL question.

    Attributes:
        query: The user's question.
        results: Ranked search results, best first.
        aggregations: Figures computed from the records (summary and
            comparison questions only).
        summary: Synthesised answer with citations (summary questions with
            results only).
        safety: Warnings triggered by the query and the shown content.
        degraded: True when the query could not be embedded, so ``results``
            is empty for that reason rather than for lack of matches.
        period: Time range the search was restricted to.
    """

    query: str
    results: list[SearchResult] = field(default_factory=list)
    aggregations: list[AggregationResult] = field(default_factory=list)
    summary: str | None = None
    safety: SafetyResult = field(default_factory=SafetyResult)
    degraded: bool = False
    period: str = "all time"

    @property
    def notices(self) -> list[str]:
        return [DEGRADED_NOTICE] if self.degraded else []

    @property
    def citations(self) -> list[str]:
        return list(dict.fromkeys(r.citation for r in self.results))

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "period": self.period,
            "results": [r.to_dict() for r in self.results],
            "aggregations": [a.to_dict() for a in self.aggregations],
            "summary": self.summary,
            "citations": self.citations,
            "safety_warnings": [w.value for w in self.safety.ordered_warnings],
            "disclaimers": self.safety.disclaimers,
            "degraded": self.degraded,
            "notices": self.notices,
        }


class LifeAssistant:
    """Answers questions about the user's records.

    Args:
        pipeline: RAG pipeline over the embedding store.
        router: Three-stage request router.
        advice_engine: Builds AdviceResult objects from retrieved context.
        safety: Safety checker; defaults to the advice engine's.
        chat: Chat backend for passthrough questions; defaults to the
            pipeline's.
        aggregator: Computes figures for summary and comparison questions;
            defaults to one over the pipeline's retriever.
    """

    def __init__(
        self,
        pipeline: RagPipeline,
        router: EnhancedRequestRouter,
        advice_engine: AdviceEngine,
        safety: SafetyChecker | None = None,
        chat: ChatBackend | None = None,
        aggregator: DataAggregator | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.router = router
        self.advice_engine = advice_engine
        self.safety = safety or advice_engine.safety
        self.chat = chat if chat is not None else pipeline.chat
        self.aggregator = aggregator or DataAggregator(pipeline.retriever, advice_engine.terms)
        self.default_style = AdviceStyle.BALANCED
        self._conn: sqlite3.Connection | None = None

    @classmethod
    def from_config(
        cls,
        config: LifeButlerConfig,
        db_path: Path | str,
        retriever: DomainDataRetriever,
    ) -> LifeAssistant:
        """Wire the LiteLLM backend, the embedding store and every component.

        The returned assistant owns the database connection; call close().
        """
        terms = load_terms(Path(config.terms)) if config.terms else default_terms()
        backend = LiteLLMBackend(
            embedding_model=config.embedding.model,
            generation_model=config.generation.model,
            max_tokens=config.generation.max_tokens,
            temperature=config.generation.temperature,
        )

        conn = Database(db_path).connect()
        initialize(conn)
        pipeline = RagPipeline(
            store=EmbeddingStore(conn),
            retriever=retriever,
            embedder=backend,
            chat=backend,
            config=RagConfig.from_config(config),
        )
        router = EnhancedRequestRouter(
            planner=QueryPlanner(terms),
            rules=RuleBasedClassifier(terms, threshold=config.routing.rule_threshold),
            semantic=SemanticClassifier(
                backend, terms, base_threshold=config.routing.semantic_base_threshold
            ),
            model=ModelClassifier(backend),
        )
        safety = SafetyChecker(terms)
        assistant = cls(
            pipeline,
            router,
            AdviceEngine(terms, safety),
            safety,
            chat=backend,
            aggregator=DataAggregator(retriever, terms),
        )
        assistant.default_style = AdviceStyle(config.advice.style)
        assistant._conn = conn
        return assistant

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> LifeAssistant:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    def route(self, query: str) -> RouteDecision:
        return self.router.route(query)

    def classify_and_answer(
        self, query: str, style: AdviceStyle | None = None
    ) -> AdviceResult | RetrievalAnswer:
        """Route *query* and answer it with the matching strategy.

        Returns:
            A RetrievalAnswer for RETRIEVAL, otherwise an AdviceResult.
        """
        decision = self.router.route(query)
        return self.answer_decision(decision, style)

    def answer_decision(
        self, decision: RouteDecision, style: AdviceStyle | None = None
    ) -> AdviceResult | RetrievalAnswer:
        query = decision.query_context.original_query
        domains = sorted(decision.query_context.target_domains)

        if decision.strategy is RouteStrategy.RETRIEVAL:
            return self._retrieve(decision)

        if decision.strategy is RouteStrategy.ADVICE:
            context = self.pipeline.build_context(query, domains, time_range=decision.query_context.time_range)
            return self.advice_engine.generate_advice(query, context, style or self.default_style)

        return self._passthrough(query)

    def _retrieve(self, decision: RouteDecision) -> RetrievalAnswer:
        planned = decision.query_context
        query = planned.original_query
        context = self.pipeline.build_context(
            query, sorted(planned.target_domains), time_range=planned.time_range
        )

        aggregations = self.aggregator.aggregate(planned) if decision.intent in _FIGURE_INTENTS else []
        summary = None
        if decision.intent is QueryIntent.SUMMARY and not context.is_empty:
            summary = self.pipeline.answer_from_context(context, [a.describe() for a in aggregations])

        shown = [r.text for r in context.results] + ([summary] if summary else [])
        safety = self.safety.check(query, "\n".join(shown))
        if safety.has_emergency_warning:
            logger.warning("Emergency terms detected in query or retrieved content")

        return RetrievalAnswer(
            query=query,
            results=context.results,
            aggregations=aggregations,
            summary=summary,
            safety=safety,
            degraded=context.degraded,
            period=planned.time_range.description if planned.time_range else "all time",
        )

    def _passthrough(self, query: str) -> AdviceResult:
        reply = ""
        if self.chat is not None and query.strip():
            messages = [
                {"role": "system", "content": _PASSTHROUGH_SYSTEM_PROMPT},
                {"role": "user", "content": query},
            ]
            try:
                reply = self.chat.chat(messages).strip()
            except ServiceUnavailableError as exc:
                logger.warning("Chat backend unavailable for passthrough: %s", exc)
        if not reply:
            return self.advice_engine.wrap_reply(query, _PASSTHROUGH_UNAVAILABLE, confidence=0.1)
        return self.advice_engine.wrap_reply(query, reply)

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def index_record(self, record: Record) -> int:
        return self.pipeline.index_record(record)

    def rebuild_index(self, on_progress: Callable[[int, int], None] | None = None) -> RebuildReport:
        report = self.pipeline.rebuild_embeddings(on_progress=on_progress)
        if report.wiped and self.router.semantic is not None:
            # New embedding model: exemplar vectors must be recomputed
            self.router.semantic.clear_cache()
        return report

    def get_indexing_status(self) -> IndexingStatus:
        return self.pipeline.get_indexing_status()
