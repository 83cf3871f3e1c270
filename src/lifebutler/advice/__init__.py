"""Advice generation and safety gating."""

from lifebutler.advice.engine import (
    ActionableInsight,
    AdviceEngine,
    AdviceStyle,
    InsightImpact,
    InsightType,
)
from lifebutler.advice.result import ActionItem, ActionPriority, AdviceCategory, AdviceResult
from lifebutler.advice.safety import SafetyChecker, SafetyResult, SafetyWarning

__all__ = [
    "ActionItem",
    "ActionPriority",
    "ActionableInsight",
    "AdviceCategory",
    "AdviceEngine",
    "AdviceResult",
    "AdviceStyle",
    "InsightImpact",
    "InsightType",
    "SafetyChecker",
    "SafetyResult",
    "SafetyWarning",
]
