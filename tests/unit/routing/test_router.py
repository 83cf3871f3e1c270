"""Tests for the three-stage request router and its classifiers."""

from __future__ import annotations

import json

import pytest

from lifebutler.errors import MalformedClassificationError
from lifebutler.query.context import QueryIntent
from lifebutler.query.planner import QueryPlanner
from lifebutler.routing.classifiers import (
    ModelClassifier,
    RuleBasedClassifier,
    SemanticClassifier,
    dynamic_threshold,
    parse_label,
)
from lifebutler.routing.router import (
    EnhancedRequestRouter,
    RouteStrategy,
    RoutingStage,
    strategy_for,
)
from lifebutler.terms import default_terms


class ExemplarEmbedder:
    """Maps each exemplar to its intent's axis; queries listed in ``known`` get the same vector."""

    def __init__(self, known=None):
        terms = default_terms()
        self.axes = [intent for intent, _ in terms.exemplars]
        self.lookup = {text: intent for intent, texts in terms.exemplars for text in texts}
        self.lookup.update(known or {})
        self.fail = False
        self.calls = 0

    def embed(self, texts):
        self.calls += 1
        if self.fail:
            raise ConnectionError("down")
        out = []
        for text in texts:
            vec = [0.0] * (len(self.axes) + 1)
            intent = self.lookup.get(text)
            if intent is None:
                vec[-1] = 1.0
            else:
                vec[self.axes.index(intent)] = 1.0
            out.append(vec)
        return out


@pytest.fixture
def rules():
    return RuleBasedClassifier()


def _router(semantic=None, model=None):
    return EnhancedRequestRouter(QueryPlanner(), RuleBasedClassifier(), semantic=semantic, model=model)


# ------------------------------------------------------------------
# Stage 1: rules
# ------------------------------------------------------------------

def test_rules_confident_summary(rules):
    result = rules.classify("How much did I spend on groceries this month?")
    assert result.intent is QueryIntent.SUMMARY
    assert result.confident
    assert result.confidence == 1.0
    assert "how much" in result.matches


def test_rules_chinese_query(rules):
    assert rules.detect_language("这个月我花了多少钱") == "zh"
    result = rules.classify("这个月我花了多少钱")
    assert result.intent is QueryIntent.SUMMARY
    assert result.confident


def test_rules_query_variants(rules):
    assert rules.query_variants("coffee beans") == ["coffee beans"]
    variants = rules.query_variants("Why is my mood low")
    assert variants[0] == "why is my mood low"
    assert "为什么" in variants[1]


def test_rules_keyword_counted_once_across_variants(rules):
    # "spent" survives the translation of "why spent" but still counts once
    result = rules.classify("why spent")
    assert result.scores[QueryIntent.SUMMARY] == pytest.approx(0.4)
    assert result.scores[QueryIntent.ANALYSIS] == pytest.approx(1.0)


def test_rules_score_below_threshold_not_confident(rules):
    result = rules.classify("explain")
    assert result.intent is QueryIntent.ANALYSIS
    assert result.confidence == pytest.approx(0.4)
    assert not result.confident


def test_rules_two_intents_above_threshold_not_confident(rules):
    result = rules.classify("analyze why and recommend and suggest improvements to optimize")
    assert result.scores[QueryIntent.ANALYSIS] > 0.8
    assert result.scores[QueryIntent.ADVICE] > 0.8
    assert not result.confident


def test_rules_no_match(rules):
    result = rules.classify("hello there")
    assert result.intent is None
    assert result.scores == {}
    assert not result.confident


# ------------------------------------------------------------------
# Stage 2: semantic
# ------------------------------------------------------------------

@pytest.mark.parametrize("words,expected", [(5, 0.53), (1, 0.45), (20, 0.7), (0, 0.43)])
def test_dynamic_threshold(words, expected):
    assert dynamic_threshold(" ".join(["w"] * words)) == pytest.approx(max(0.4, expected))


def test_semantic_nearest_exemplar():
    embedder = ExemplarEmbedder(known={"Tips for eating healthier?": "advice"})
    semantic = SemanticClassifier(embedder)
    result = semantic.classify("Tips for eating healthier?")
    assert result.intent is QueryIntent.ADVICE
    assert result.confident
    assert result.confidence == pytest.approx(1.0)


def test_semantic_unknown_query_not_confident():
    result = SemanticClassifier(ExemplarEmbedder()).classify("random words here")
    assert result is not None
    assert not result.confident


def test_semantic_exemplars_cached():
    embedder = ExemplarEmbedder()
    semantic = SemanticClassifier(embedder)
    semantic.classify("one")
    semantic.classify("two")
    # one exemplar batch, then one call per query
    assert embedder.calls == 3


def test_semantic_failure_skips_stage():
    embedder = ExemplarEmbedder()
    embedder.fail = True
    assert SemanticClassifier(embedder).classify("anything") is None


def test_semantic_zero_vector_skips_stage():
    class ZeroEmbedder:
        def embed(self, texts):
            return [[0.0, 0.0] for _ in texts]

    assert SemanticClassifier(ZeroEmbedder()).classify("anything") is None


# ------------------------------------------------------------------
# Stage 3: model
# ------------------------------------------------------------------

@pytest.mark.parametrize(
    "raw,label",
    [
        ('{"intent": "summary"}', "summary"),
        ('```json\n{"intent": "Advice"}\n```', "advice"),
        ("comparison", "comparison"),
        ("The answer is: chat.", "chat"),
    ],
)
def test_parse_label(raw, label):
    assert parse_label(raw) == label


@pytest.mark.parametrize("raw", ['{"intent": "weather"}', "no idea", "search or summary", ""])
def test_parse_label_malformed(raw):
    with pytest.raises(MalformedClassificationError):
        parse_label(raw)


def test_model_classifier_prompt_includes_time_range(chat):
    chat.reply = json.dumps({"intent": "comparison"})
    planner = QueryPlanner()
    label = ModelClassifier(chat).classify("coffee then and now, last month", planner.plan("last month"))
    assert label == "comparison"
    assert "Time range: last month" in chat.messages[0][-1]["content"]


# ------------------------------------------------------------------
# Router
# ------------------------------------------------------------------

def test_strategy_mapping():
    assert strategy_for(QueryIntent.SEARCH) is RouteStrategy.RETRIEVAL
    assert strategy_for(QueryIntent.SUMMARY) is RouteStrategy.RETRIEVAL
    assert strategy_for(QueryIntent.COMPARISON) is RouteStrategy.RETRIEVAL
    assert strategy_for(QueryIntent.ADVICE) is RouteStrategy.ADVICE
    assert strategy_for(QueryIntent.ANALYSIS) is RouteStrategy.ADVICE


def test_route_resolves_at_rule_stage():
    decision = _router().route("How much did I spend on groceries this month?")
    assert decision.intent is QueryIntent.SUMMARY
    assert decision.strategy is RouteStrategy.RETRIEVAL
    assert decision.stage is RoutingStage.RULE_BASED
    assert decision.trace == (RoutingStage.RULE_BASED, RoutingStage.RESOLVED)
    assert decision.query_context.target_domains == frozenset({"finance_records", "meals"})


def test_route_resolves_at_semantic_stage(chat):
    query = "Tips for eating healthier?"
    decision = _router(SemanticClassifier(ExemplarEmbedder(known={query: "advice"})), ModelClassifier(chat)).route(query)
    assert decision.stage is RoutingStage.SEMANTIC_SIMILARITY
    assert decision.strategy is RouteStrategy.ADVICE
    assert chat.messages == []


def test_route_falls_through_to_model(chat):
    chat.reply = '{"intent": "analysis"}'
    decision = _router(SemanticClassifier(ExemplarEmbedder()), ModelClassifier(chat)).route("thoughts on my evenings")
    assert decision.stage is RoutingStage.MODEL_CLASSIFICATION
    assert decision.intent is QueryIntent.ANALYSIS
    assert decision.confidence == 0.7
    assert decision.trace == (
        RoutingStage.RULE_BASED,
        RoutingStage.SEMANTIC_SIMILARITY,
        RoutingStage.MODEL_CLASSIFICATION,
        RoutingStage.RESOLVED,
    )
    assert not decision.fallback


def test_route_malformed_model_answer_falls_back_to_planner(chat, caplog):
    chat.reply = "I think it's about feelings"
    decision = _router(model=ModelClassifier(chat)).route("evening mood pattern, explain")
    assert decision.fallback
    assert decision.intent is QueryIntent.ANALYSIS  # planner intent
    assert decision.confidence == 0.5
    assert "Model classification failed" in caplog.text


def test_route_unavailable_model_falls_back(chat):
    chat.fail = True
    decision = _router(model=ModelClassifier(chat)).route("evening thoughts")
    assert decision.fallback
    assert decision.intent is QueryIntent.SEARCH
    assert decision.strategy is RouteStrategy.RETRIEVAL


def test_route_without_model_uses_planner():
    decision = _router().route("evening thoughts")
    assert decision.fallback
    assert decision.stage is RoutingStage.MODEL_CLASSIFICATION


def test_route_chat_label_is_passthrough(chat):
    chat.reply = '{"intent": "chat"}'
    decision = _router(model=ModelClassifier(chat)).route("hello there")
    assert decision.strategy is RouteStrategy.PASSTHROUGH


def test_route_blank_query_is_passthrough(chat):
    decision = _router(model=ModelClassifier(chat)).route("   ")
    assert decision.strategy is RouteStrategy.PASSTHROUGH
    assert chat.messages == []
