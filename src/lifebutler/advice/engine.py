"""Advice engine: insights, action items and confidence from a RagContext.

Insights come from phrase matching over the retrieved chunks (patterns,
trends, opportunities; see ``advice.insight_patterns`` in terms.yaml). Each
insight's suggested action becomes an action item; items are ranked by
priority (urgent > high > medium > low, stable) and capped at five.

Confidence = 0.6 × mean result similarity + 0.4 × mean insight confidence,
clamped to [0, 1]; 0.1 when nothing was retrieved, with the insight mean
taken as 0.5 when there are no insights.

The style changes the tone of the advice text only: every style reports the
same insights, action items and sources.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from lifebutler.advice.result import ActionItem, ActionPriority, AdviceCategory, AdviceResult
from lifebutler.advice.safety import SafetyChecker
from lifebutler.rag.pipeline import RagContext
from lifebutler.terms import Terms, contains_term, default_terms

logger = logging.getLogger(__name__)

MAX_ACTION_ITEMS = 5
_MAX_LISTED_INSIGHTS = 3

NO_DATA_ADVICE = (
    "I don't have enough relevant information to provide specific advice for this query. "
    "Consider adding more data related to your question."
)
DEGRADED_NOTICE = (
    "ℹ️ Low confidence: the embedding service was unavailable, so your records "
    "could not be searched. Check that the embedding model is running and try again."
)


class AdviceStyle(str, enum.Enum):
    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"
    DATADRIVEN = "datadriven"
    CONCISE = "concise"

    @property
    def opener(self) -> str:
        return _STYLE_OPENERS[self]


_STYLE_OPENERS: dict[AdviceStyle, str] = {
    AdviceStyle.CONSERVATIVE: "I recommend taking a cautious, step-by-step approach:",
    AdviceStyle.AGGRESSIVE: "Here's a bold plan to maximize your results:",
    AdviceStyle.DATADRIVEN: "The data suggests the following evidence-based recommendations:",
    AdviceStyle.CONCISE: "Key recommendations:",
    AdviceStyle.BALANCED: "Here's a balanced approach based on your data:",
}


class InsightType(str, enum.Enum):
    PATTERN = "pattern"
    TREND = "trend"
    CORRELATION = "correlation"
    ANOMALY = "anomaly"
    OPPORTUNITY = "opportunity"
    RISK = "risk"


class InsightImpact(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_PRIORITY_BY_IMPACT: dict[InsightImpact | None, ActionPriority] = {
    InsightImpact.CRITICAL: ActionPriority.URGENT,
    InsightImpact.HIGH: ActionPriority.HIGH,
    InsightImpact.MEDIUM: ActionPriority.MEDIUM,
    InsightImpact.LOW: ActionPriority.LOW,
    None: ActionPriority.LOW,
}


@dataclass(frozen=True)
class ActionableInsight:
    type: InsightType
    description: str
    evidence: str
    confidence: float
    suggested_action: str | None = None
    impact: InsightImpact | None = None
    citation: str = ""


class AdviceEngine:
    def __init__(self, terms: Terms | None = None, safety: SafetyChecker | None = None) -> None:
        self.terms = terms or default_terms()
        self.safety = safety or SafetyChecker(self.terms)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def categorize_query(self, query: str) -> AdviceCategory:
        for category, terms in self.terms.advice_categories:
            if any(contains_term(query, t) for t in terms):
                return AdviceCategory(category)
        return AdviceCategory.GENERAL

    def extract_insights(self, context: RagContext) -> list[ActionableInsight]:
        """One insight per (chunk, pattern type) whose phrases occur in the chunk."""
        insights: list[ActionableInsight] = []
        for result in context.results:
            for pattern in self.terms.insight_patterns:
                if any(contains_term(result.text, p) for p in pattern.phrases):
                    insights.append(
                        ActionableInsight(
                            type=InsightType(pattern.type),
                            description=pattern.description,
                            evidence=result.text,
                            confidence=pattern.confidence,
                            suggested_action=pattern.suggested_action or None,
                            impact=InsightImpact(pattern.impact),
                            citation=result.citation,
                        )
                    )
        return insights

    @staticmethod
    def calculate_confidence(context: RagContext, insights: list[ActionableInsight]) -> float:
        if not context.results:
            return 0.1
        avg_similarity = context.average_similarity
        insight_confidence = (
            sum(i.confidence for i in insights) / len(insights) if insights else 0.5
        )
        return max(0.0, min(1.0, avg_similarity * 0.6 + insight_confidence * 0.4))

    # ------------------------------------------------------------------
    # Action items
    # ------------------------------------------------------------------

    @staticmethod
    def _timeframe_for(insight: ActionableInsight, style: AdviceStyle) -> str:
        if insight.type is InsightType.RISK:
            return "Immediate"
        if insight.type is InsightType.OPPORTUNITY:
            return "This week" if style is AdviceStyle.AGGRESSIVE else "This month"
        if insight.type is InsightType.PATTERN:
            return "Ongoing"
        return "Within 2 weeks"

    def generate_action_items(
        self, insights: list[ActionableInsight], style: AdviceStyle
    ) -> list[ActionItem]:
        items = [
            ActionItem(
                title=insight.suggested_action,
                description=insight.description,
                priority=_PRIORITY_BY_IMPACT[insight.impact],
                timeframe=self._timeframe_for(insight, style),
                category=insight.type.value,
            )
            for insight in insights
            if insight.suggested_action
        ]
        # sorted() is stable: equal priorities keep insight order
        items = sorted(items, key=lambda item: item.priority, reverse=True)
        return items[:MAX_ACTION_ITEMS]

    @staticmethod
    def overall_timeframe(items: list[ActionItem]) -> str | None:
        if not items:
            return None
        if any(i.priority is ActionPriority.URGENT for i in items):
            return "Immediate action required"
        if any(i.priority is ActionPriority.HIGH for i in items):
            return "Within 1 week"
        return "Within 2-4 weeks"

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    @staticmethod
    def _advice_text(
        context: RagContext,
        insights: list[ActionableInsight],
        items: list[ActionItem],
        style: AdviceStyle,
    ) -> str:
        if context.is_empty:
            return NO_DATA_ADVICE

        lines = ["Based on your personal data, here's my analysis:", ""]
        if insights:
            lines += [f"• {i.description}" for i in insights[:_MAX_LISTED_INSIGHTS]]
            lines.append("")
        lines.append(style.opener)
        if items:
            for item in items:
                if style is AdviceStyle.CONCISE:
                    lines.append(f"- {item.title}")
                else:
                    lines.append(f"- {item.title} ({item.timeframe.lower()})")
        else:
            sources = ", ".join(context.citations[:_MAX_LISTED_INSIGHTS])
            lines.append(f"- Review the most relevant records ({sources}) before deciding on changes.")
        return "\n".join(lines)

    @staticmethod
    def _reasoning(insights: list[ActionableInsight]) -> str:
        if not insights:
            return ""
        lines = ["This advice is based on the following analysis of your data:", ""]
        for insight in insights[:_MAX_LISTED_INSIGHTS]:
            lines.append(f"**{insight.type.value.upper()}**: {insight.description}")
            lines.append(f"Evidence: {insight.evidence} [{insight.citation}]")
            lines.append(f"Confidence: {insight.confidence * 100:.0f}%")
            lines.append("")
        return "\n".join(lines).strip()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_advice(
        self,
        query: str,
        context: RagContext,
        style: AdviceStyle = AdviceStyle.BALANCED,
    ) -> AdviceResult:
        """Build safety-checked advice for *query* from *context*."""
        safety = self.safety.check(query, context.format_for_prompt())
        insights = self.extract_insights(context)
        items = self.generate_action_items(insights, style)

        notices = [DEGRADED_NOTICE] if context.degraded else []
        if safety.has_emergency_warning:
            logger.warning("Emergency terms detected in query or retrieved content")

        return AdviceResult(
            query=query,
            advice=self._advice_text(context, insights, items, style),
            reasoning=self._reasoning(insights),
            citations=context.citations,
            action_items=items,
            safety=safety,
            confidence=self.calculate_confidence(context, insights),
            timeframe=self.overall_timeframe(items),
            category=self.categorize_query(query),
            notices=notices,
        )

    def wrap_reply(self, query: str, reply: str, confidence: float = 0.5) -> AdviceResult:
        """Wrap a free-form chat reply as an AdviceResult, with safety still applied."""
        return AdviceResult(
            query=query,
            advice=reply,
            safety=self.safety.check(query, reply),
            confidence=confidence,
            category=self.categorize_query(query),
        )
