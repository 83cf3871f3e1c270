"""Three-stage request router.

States: RULE_BASED → SEMANTIC_SIMILARITY → MODEL_CLASSIFICATION → RESOLVED

Cheap stages run first; the next stage only runs when the previous one is
not confident. The model stage always resolves: if the chat backend fails or
answers with garbage, the planner's rule-based intent is used.

Strategy per intent:
  search, summary, comparison  → RETRIEVAL
  advice, analysis             → ADVICE
  "chat" label or blank query  → PASSTHROUGH
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

from lifebutler.errors import MalformedClassificationError, ServiceUnavailableError
from lifebutler.query.context import QueryContext, QueryIntent
from lifebutler.query.planner import QueryPlanner
from lifebutler.routing.classifiers import (
    CHAT_LABEL,
    ModelClassifier,
    RuleBasedClassifier,
    SemanticClassifier,
)

logger = logging.getLogger(__name__)


class RoutingStage(str, enum.Enum):
    RULE_BASED = "rule_based"
    SEMANTIC_SIMILARITY = "semantic_similarity"
    MODEL_CLASSIFICATION = "model_classification"
    RESOLVED = "resolved"


class RouteStrategy(str, enum.Enum):
    RETRIEVAL = "retrieval"
    ADVICE = "advice"
    PASSTHROUGH = "passthrough"


_STRATEGY_BY_INTENT: dict[QueryIntent, RouteStrategy] = {
    QueryIntent.SEARCH: RouteStrategy.RETRIEVAL,
    QueryIntent.SUMMARY: RouteStrategy.RETRIEVAL,
    QueryIntent.COMPARISON: RouteStrategy.RETRIEVAL,
    QueryIntent.ADVICE: RouteStrategy.ADVICE,
    QueryIntent.ANALYSIS: RouteStrategy.ADVICE,
}


def strategy_for(intent: QueryIntent) -> RouteStrategy:
    return _STRATEGY_BY_INTENT[intent]


@dataclass(frozen=True)
class RouteDecision:
    """Where a query goes and how that was decided.

    Attributes:
        query_context: The planner's view of the query.
        intent: Resolved intent.
        strategy: Retrieval, advice or passthrough.
        stage: The stage that produced the decision.
        confidence: That stage's score for the intent, in [0, 1].
        scores: That stage's per-intent scores.
        trace: Stages visited, ending with RESOLVED.
        fallback: True when the model stage failed and the planner's
            intent was used.
    """

    query_context: QueryContext
    intent: QueryIntent
    strategy: RouteStrategy
    stage: RoutingStage
    confidence: float
    scores: dict[QueryIntent, float] = field(default_factory=dict, compare=False)
    trace: tuple[RoutingStage, ...] = ()
    fallback: bool = False


class EnhancedRequestRouter:
    """Route a query through the rule, semantic and model stages.

    Args:
        planner: Produces the QueryContext (and the fallback intent).
        rules: Stage 1 classifier.
        semantic: Stage 2 classifier; skipped if None.
        model: Stage 3 classifier; if None the planner intent is used.
    """

    def __init__(
        self,
        planner: QueryPlanner,
        rules: RuleBasedClassifier,
        semantic: SemanticClassifier | None = None,
        model: ModelClassifier | None = None,
    ) -> None:
        self.planner = planner
        self.rules = rules
        self.semantic = semantic
        self.model = model

    def route(self, query: str, context: QueryContext | None = None) -> RouteDecision:
        context = context or self.planner.plan(query)
        trace: list[RoutingStage] = [RoutingStage.RULE_BASED]

        if not query.strip():
            return self._resolve(
                context, context.intent, RoutingStage.RULE_BASED, 0.0, {}, trace,
                strategy=RouteStrategy.PASSTHROUGH,
            )

        # Stage 1
        rule = self.rules.classify(query)
        if rule.confident and rule.intent is not None:
            return self._resolve(context, rule.intent, RoutingStage.RULE_BASED, rule.confidence, rule.scores, trace)

        # Stage 2
        if self.semantic is not None:
            trace.append(RoutingStage.SEMANTIC_SIMILARITY)
            semantic = self.semantic.classify(query)
            if semantic is not None and semantic.confident and semantic.intent is not None:
                return self._resolve(
                    context, semantic.intent, RoutingStage.SEMANTIC_SIMILARITY,
                    semantic.confidence, semantic.scores, trace,
                )

        # Stage 3: always resolves
        trace.append(RoutingStage.MODEL_CLASSIFICATION)
        if self.model is None:
            return self._resolve(
                context, context.intent, RoutingStage.MODEL_CLASSIFICATION, 0.5,
                rule.scores, trace, fallback=True,
            )
        try:
            label = self.model.classify(query, context)
        except (MalformedClassificationError, ServiceUnavailableError) as exc:
            logger.warning("Model classification failed, using planner intent: %s", exc)
            return self._resolve(
                context, context.intent, RoutingStage.MODEL_CLASSIFICATION, 0.5,
                rule.scores, trace, fallback=True,
            )

        if label == CHAT_LABEL:
            return self._resolve(
                context, context.intent, RoutingStage.MODEL_CLASSIFICATION, 0.7, {}, trace,
                strategy=RouteStrategy.PASSTHROUGH,
            )
        intent = QueryIntent(label)
        return self._resolve(context, intent, RoutingStage.MODEL_CLASSIFICATION, 0.7, {intent: 0.7}, trace)

    def _resolve(
        self,
        context: QueryContext,
        intent: QueryIntent,
        stage: RoutingStage,
        confidence: float,
        scores: dict[QueryIntent, float],
        trace: list[RoutingStage],
        strategy: RouteStrategy | None = None,
        fallback: bool = False,
    ) -> RouteDecision:
        decision = RouteDecision(
            query_context=context,
            intent=intent,
            strategy=strategy or strategy_for(intent),
            stage=stage,
            confidence=confidence,
            scores=dict(scores),
            trace=tuple(trace) + (RoutingStage.RESOLVED,),
            fallback=fallback,
        )
        logger.debug(
            "Routed %r → %s/%s at %s (%.2f)",
            context.original_query,
            decision.intent.value,
            decision.strategy.value,
            decision.stage.value,
            decision.confidence,
        )
        return decision
