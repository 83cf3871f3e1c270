"""Safety gate for generated advice.

Scans the query and the retrieved content for medical, financial, legal and
emergency terms and attaches the matching disclaimers. The term sets are
disjoint and matched on whole words.

This is a keyword heuristic: it can miss things. The absence of a warning
is not a guarantee that the content is safe.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from lifebutler.terms import Terms, default_terms, matching_terms


class SafetyWarning(str, enum.Enum):
    MEDICAL = "medical"
    FINANCIAL = "financial"
    LEGAL = "legal"
    EMERGENCY = "emergency"

    @property
    def disclaimer(self) -> str:
        return _DISCLAIMERS[self]

    @property
    def action_label(self) -> str:
        return _ACTION_LABELS[self]


_DISCLAIMERS: dict[SafetyWarning, str] = {
    SafetyWarning.MEDICAL: (
        "⚠️ Medical Disclaimer: This advice is not professional medical advice. "
        "Always consult with a qualified healthcare provider for medical concerns."
    ),
    SafetyWarning.FINANCIAL: (
        "⚠️ Financial Disclaimer: This is not professional financial advice. "
        "Consider consulting with a qualified financial advisor for important financial decisions."
    ),
    SafetyWarning.LEGAL: (
        "⚠️ Legal Disclaimer: This is not legal advice. "
        "Consult with a qualified attorney for legal matters."
    ),
    SafetyWarning.EMERGENCY: (
        "🚨 Emergency Notice: If you are in crisis or having thoughts of self-harm, "
        "please contact emergency services or a crisis helpline immediately."
    ),
}

_ACTION_LABELS: dict[SafetyWarning, str] = {
    SafetyWarning.MEDICAL: "Find Healthcare Provider",
    SafetyWarning.FINANCIAL: "Find Financial Advisor",
    SafetyWarning.LEGAL: "Find Legal Counsel",
    SafetyWarning.EMERGENCY: "Get Emergency Help",
}

# Detection order; ordered_warnings moves EMERGENCY to the front.
_CHECK_ORDER = (
    SafetyWarning.MEDICAL,
    SafetyWarning.FINANCIAL,
    SafetyWarning.LEGAL,
    SafetyWarning.EMERGENCY,
)


@dataclass(frozen=True)
class SafetyResult:
    warnings: tuple[SafetyWarning, ...] = ()
    matched_terms: tuple[str, ...] = ()

    @property
    def has_any_warning(self) -> bool:
        return bool(self.warnings)

    @property
    def has_medical_warning(self) -> bool:
        return SafetyWarning.MEDICAL in self.warnings

    @property
    def has_financial_warning(self) -> bool:
        return SafetyWarning.FINANCIAL in self.warnings

    @property
    def has_legal_warning(self) -> bool:
        return SafetyWarning.LEGAL in self.warnings

    @property
    def has_emergency_warning(self) -> bool:
        return SafetyWarning.EMERGENCY in self.warnings

    @property
    def ordered_warnings(self) -> list[SafetyWarning]:
        """Warnings for display: emergency first, the rest in detection order."""
        return sorted(self.warnings, key=lambda w: w is not SafetyWarning.EMERGENCY)

    @property
    def disclaimers(self) -> list[str]:
        return [w.disclaimer for w in self.ordered_warnings]


class SafetyChecker:
    def __init__(self, terms: Terms | None = None) -> None:
        self.terms = terms or default_terms()

    def check(self, query: str, content: str = "") -> SafetyResult:
        """Return the warnings triggered by *query* together with *content*."""
        combined = f"{query}\n{content}"
        warnings: list[SafetyWarning] = []
        matched: list[str] = []
        for warning in _CHECK_ORDER:
            hits = matching_terms(combined, self.terms.safety_terms(warning.value), whole_word=True)
            if hits:
                warnings.append(warning)
                matched.extend(hits)
        return SafetyResult(warnings=tuple(warnings), matched_terms=tuple(matched))
