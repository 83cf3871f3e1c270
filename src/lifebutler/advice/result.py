"""Advice output: the result object, its action items and categories."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from lifebutler.advice.safety import SafetyResult


class ActionPriority(enum.IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    URGENT = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class AdviceCategory(str, enum.Enum):
    HEALTH = "health"
    FINANCE = "finance"
    PRODUCTIVITY = "productivity"
    RELATIONSHIPS = "relationships"
    LEARNING = "learning"
    LIFESTYLE = "lifestyle"
    GENERAL = "general"

    @property
    def display_name(self) -> str:
        return _CATEGORY_NAMES[self]


_CATEGORY_NAMES: dict[AdviceCategory, str] = {
    AdviceCategory.HEALTH: "Health & Wellness",
    AdviceCategory.FINANCE: "Financial",
    AdviceCategory.PRODUCTIVITY: "Productivity",
    AdviceCategory.RELATIONSHIPS: "Relationships",
    AdviceCategory.LEARNING: "Learning & Growth",
    AdviceCategory.LIFESTYLE: "Lifestyle",
    AdviceCategory.GENERAL: "General",
}


@dataclass(frozen=True)
class ActionItem:
    title: str
    description: str = ""
    priority: ActionPriority = ActionPriority.LOW
    timeframe: str | None = None
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "priority": self.priority.label,
            "timeframe": self.timeframe,
            "category": self.category,
        }


@dataclass
class AdviceResult:
    """Grounded, safety-checked advice for one query.

    Attributes:
        query: The user's question.
        advice: Main advice text.
        reasoning: Insight-by-insight analysis (may be empty).
        citations: ``object_type(object_id)`` sources, in retrieval order.
        action_items: At most five, highest priority first.
        safety: Warnings triggered by the query and retrieved content.
        confidence: 0.0 to 1.0.
        timeframe: Overall timeframe derived from the action items.
        category: Topic of the query.
        notices: Extra user-facing notices (e.g. degraded retrieval).
    """

    query: str
    advice: str
    reasoning: str = ""
    citations: list[str] = field(default_factory=list)
    action_items: list[ActionItem] = field(default_factory=list)
    safety: SafetyResult = field(default_factory=SafetyResult)
    confidence: float = 0.0
    timeframe: str | None = None
    category: AdviceCategory = AdviceCategory.GENERAL
    notices: list[str] = field(default_factory=list)

    def format_response(self) -> str:
        """Render as markdown. Safety disclaimers are always included."""
        lines = ["## Advice", self.advice, ""]

        if self.reasoning:
            lines += ["## Analysis", self.reasoning, ""]

        if self.action_items:
            lines.append("## Action Plan")
            for i, item in enumerate(self.action_items, 1):
                lines.append(f"{i}. {item.title}")
                if item.description:
                    lines.append(f"   {item.description}")
                if item.timeframe:
                    lines.append(f"   ⏱️ {item.timeframe}")
                lines.append(f"   🎯 Priority: {item.priority.label}")
                lines.append("")
            if self.timeframe:
                lines += [f"Overall timeframe: {self.timeframe}", ""]

        if self.citations:
            lines.append("## Sources")
            lines += [f"• {c}" for c in self.citations]
            lines.append("")

        if self.safety.has_any_warning or self.notices:
            lines.append("## Important Notices")
            for warning in self.safety.ordered_warnings:
                lines += [f"{warning.disclaimer} [{warning.action_label}]", ""]
            for notice in self.notices:
                lines += [notice, ""]

        lines += ["---", f"*{self.category.display_name} · Confidence: {self.confidence * 100:.0f}%*"]
        return "\n".join(lines) + "\n"

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "advice": self.advice,
            "reasoning": self.reasoning,
            "citations": list(self.citations),
            "action_items": [item.to_dict() for item in self.action_items],
            "safety_warnings": [w.value for w in self.safety.ordered_warnings],
            "confidence": self.confidence,
            "timeframe": self.timeframe,
            "category": self.category.value,
            "notices": list(self.notices),
        }
