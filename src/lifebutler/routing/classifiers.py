"""The three intent classifiers behind the request router.

Stage 1  RuleBasedClassifier   weighted multilingual keywords, no I/O
Stage 2  SemanticClassifier    nearest exemplar query by embedding similarity
Stage 3  ModelClassifier       single-label answer from the chat model
"""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass, field

from lifebutler.errors import MalformedClassificationError
from lifebutler.query.context import QueryContext, QueryIntent
from lifebutler.rag.llm_client import ChatBackend, EmbeddingBackend
from lifebutler.terms import Terms, contains_term, default_terms
from lifebutler.vectors import cosine_similarity, is_zero

logger = logging.getLogger(__name__)

CHAT_LABEL = "chat"
MODEL_LABELS: tuple[str, ...] = tuple(i.value for i in QueryIntent) + (CHAT_LABEL,)

_HAN_RE = re.compile(r"[\u4e00-\u9fff]")
_JSON_OBJECT_RE = re.compile(r"\{.*?\}", re.DOTALL)
_WORD_RE = re.compile(r"[a-z]+")


@dataclass(frozen=True)
class ClassificationResult:
    """Per-intent scores from one stage, and whether the stage is sure.

    ``intent`` is the best-scoring intent (None if nothing scored).
    """

    intent: QueryIntent | None
    confidence: float
    scores: dict[QueryIntent, float] = field(default_factory=dict)
    confident: bool = False
    matches: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Stage 1
# ---------------------------------------------------------------------------


class RuleBasedClassifier:
    """Weighted keyword matching over the query and a translated variant.

    Score per intent is ``min(sum(weights) / 5, 1)``; each keyword counts
    once. The result is confident when the top score exceeds *threshold* and
    no other intent exceeds it too.
    """

    def __init__(self, terms: Terms | None = None, threshold: float = 0.8) -> None:
        self.terms = terms or default_terms()
        self.threshold = threshold

    @staticmethod
    def detect_language(query: str) -> str:
        return "zh" if _HAN_RE.search(query) else "en"

    def query_variants(self, query: str) -> list[str]:
        """The lower-cased query plus a dictionary translation into the other language."""
        lowered = query.lower()
        table = self.terms.zh_to_en if self.detect_language(query) == "zh" else self.terms.en_to_zh
        translated = lowered
        for source, target in table:
            translated = translated.replace(source, f" {target} ")
        return [lowered] if translated == lowered else [lowered, translated]

    def classify(self, query: str) -> ClassificationResult:
        variants = self.query_variants(query)
        scores: dict[QueryIntent, float] = {}
        matches: list[str] = []
        for intent, weighted in self.terms.rule_keywords:
            total = 0.0
            for keyword, weight in weighted:
                if any(contains_term(v, keyword) for v in variants):
                    total += weight
                    matches.append(keyword)
            if total > 0:
                scores[QueryIntent(intent)] = min(total / 5.0, 1.0)

        if not scores:
            return ClassificationResult(intent=None, confidence=0.0)

        best = max(scores, key=scores.__getitem__)
        above = [i for i, s in scores.items() if s > self.threshold]
        confident = above == [best]
        logger.debug("Rule scores for %r: %s (confident=%s)", query, scores, confident)
        return ClassificationResult(
            intent=best,
            confidence=scores[best],
            scores=scores,
            confident=confident,
            matches=tuple(matches),
        )


# ---------------------------------------------------------------------------
# Stage 2
# ---------------------------------------------------------------------------


def dynamic_threshold(query: str, base: float = 0.53) -> float:
    """Similarity threshold adjusted for query length, clamped to [0.4, 0.7]."""
    words = len(query.split())
    return max(0.4, min(0.7, base + (words - 5) * 0.02))


class SemanticClassifier:
    """Nearest-exemplar intent by embedding similarity.

    Exemplar vectors are embedded once and cached. If an embedding fails or
    comes back as a zero vector the stage returns None and the router moves
    on.
    """

    def __init__(
        self,
        embedder: EmbeddingBackend,
        terms: Terms | None = None,
        base_threshold: float = 0.53,
    ) -> None:
        self.embedder = embedder
        self.terms = terms or default_terms()
        self.base_threshold = base_threshold
        self._exemplars: list[tuple[QueryIntent, str, list[float]]] | None = None
        self._lock = threading.Lock()

    def _exemplar_vectors(self) -> list[tuple[QueryIntent, str, list[float]]] | None:
        with self._lock:
            if self._exemplars is None:
                pairs = [(QueryIntent(i), text) for i, texts in self.terms.exemplars for text in texts]
                try:
                    vectors = self.embedder.embed([text for _, text in pairs])
                except Exception as exc:
                    logger.warning("Could not embed router exemplars: %s", exc)
                    return None
                if len(vectors) != len(pairs) or any(is_zero(v) for v in vectors):
                    logger.warning("Router exemplar embeddings unusable, semantic stage skipped")
                    return None
                self._exemplars = [(i, t, list(v)) for (i, t), v in zip(pairs, vectors)]
            return self._exemplars

    def clear_cache(self) -> None:
        with self._lock:
            self._exemplars = None

    def classify(self, query: str) -> ClassificationResult | None:
        """Return the nearest exemplar's intent, or None if the stage cannot run."""
        exemplars = self._exemplar_vectors()
        if not exemplars:
            return None
        try:
            vectors = self.embedder.embed([query])
        except Exception as exc:
            logger.warning("Could not embed query for semantic routing: %s", exc)
            return None
        if len(vectors) != 1 or not vectors[0] or is_zero(vectors[0]):
            return None
        query_vector = vectors[0]
        if len(query_vector) != len(exemplars[0][2]):
            # Model changed since the exemplars were cached
            self.clear_cache()
            return None

        scores: dict[QueryIntent, float] = {}
        for intent, _, vector in exemplars:
            sim = cosine_similarity(query_vector, vector)
            if sim > scores.get(intent, -1.0):
                scores[intent] = sim

        best = max(scores, key=scores.__getitem__)
        threshold = dynamic_threshold(query, self.base_threshold)
        logger.debug("Semantic scores for %r: %s (threshold %.3f)", query, scores, threshold)
        return ClassificationResult(
            intent=best,
            confidence=scores[best],
            scores=scores,
            confident=scores[best] >= threshold,
        )


# ---------------------------------------------------------------------------
# Stage 3
# ---------------------------------------------------------------------------

_CLASSIFY_SYSTEM_PROMPT = (
    "You classify questions a user asks about their own life records "
    "(finances, meals, health, journals, events, work, habits, relationships, "
    "media, travel).\n"
    "Labels:\n"
    "  search      find or list specific records\n"
    "  summary     totals, averages, counts or an overview\n"
    "  comparison  compare periods or categories\n"
    "  analysis    explain patterns, trends or causes\n"
    "  advice      recommendations or a plan of action\n"
    "  chat        small talk or anything not about the user's data\n"
    'Reply with JSON only, for example {"intent": "summary"}.'
)


def parse_label(raw: str) -> str:
    """Extract a label from the model's answer.

    Accepts a JSON object with an ``intent`` key (optionally wrapped in a code
    fence) or a bare label.

    Raises:
        MalformedClassificationError: If no known label can be found.
    """
    text = raw.strip()
    if m := _JSON_OBJECT_RE.search(text):
        try:
            data = json.loads(m.group(0))
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            label = str(data.get("intent", "")).strip().lower()
            if label in MODEL_LABELS:
                return label
            raise MalformedClassificationError(raw)

    # A bare answer must name exactly one label
    labels = {w for w in _WORD_RE.findall(text.lower()) if w in MODEL_LABELS}
    if len(labels) == 1:
        return labels.pop()
    raise MalformedClassificationError(raw)


class ModelClassifier:
    """Ask the chat model for a single label. Fallback of last resort."""

    def __init__(self, chat: ChatBackend) -> None:
        self.chat = chat

    def classify(self, query: str, context: QueryContext | None = None) -> str:
        """Return one of MODEL_LABELS.

        Raises:
            ServiceUnavailableError: If the chat backend fails.
            MalformedClassificationError: If the answer has no known label.
        """
        user = f"Question: {query}"
        if context is not None and context.time_range is not None:
            user += f"\nTime range: {context.time_range.description}"
        messages = [
            {"role": "system", "content": _CLASSIFY_SYSTEM_PROMPT},
            {"role": "user", "content": user},
        ]
        return parse_label(self.chat.chat(messages))
