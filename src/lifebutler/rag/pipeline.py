"""RAG pipeline: index records, track coverage, search, and assemble context.

Indexing:
  record → searchable text → chunks → embeddings (batched) → store
  Each record's chunk set is replaced atomically, so re-indexing is
  idempotent and an abandoned rebuild never leaves a half-written record.

Search:
  query → one embedding → brute-force cosine over stored vectors
  → drop degraded rows and rows outside the time range → filter by min_similarity
  → sort by similarity desc, then created_at desc → top k

Embedding failures degrade to zero vectors (flagged ``degraded``) instead of
raising; degraded rows are never returned by search.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from lifebutler.config import LifeButlerConfig
from lifebutler.db.models import Embedding
from lifebutler.db.store import EmbeddingStore
from lifebutler.errors import DimensionMismatchError
from lifebutler.rag.chunker import (
    DEFAULT_MAX_CHUNK_CHARS,
    DEFAULT_OVERLAP_CHARS,
    ChunkProcessor,
)
from lifebutler.query.context import TimeRange
from lifebutler.rag.llm_client import ChatBackend, EmbeddingBackend
from lifebutler.records import DOMAINS, DomainDataRetriever, Record, as_naive_utc, count_records
from lifebutler.vectors import cosine_similarity

logger = logging.getLogger(__name__)

_MAX_ANSWER_PASSAGES = 5

_ANSWER_SYSTEM_PROMPT = (
    "You are a helpful personal assistant. Answer the user's question using only "
    "the personal data provided. Cite the records you use in the form "
    "object_type(object_id). Use any calculated figures exactly as given. "
    "If the data does not answer the question, say so."
)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class RagConfig:
    """Configuration for the RAG pipeline.

    Attributes:
        embedding_model: Model name recorded on each stored embedding.
        fallback_dimensions: Zero-vector length used when embedding fails
            and the store is still empty.
        batch_size: Chunks per embedding call.
        top_k: Default number of search results.
        min_similarity: Default cosine similarity cut-off.
        max_chunk_chars: Chunk window in characters.
        overlap_chars: Overlap between consecutive chunks in characters.
    """

    embedding_model: str = ""
    fallback_dimensions: int = 768
    batch_size: int = 5
    top_k: int = 10
    min_similarity: float = 0.1
    max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS
    overlap_chars: int = DEFAULT_OVERLAP_CHARS

    @classmethod
    def from_config(cls, cfg: LifeButlerConfig) -> RagConfig:
        return cls(
            embedding_model=cfg.embedding.model,
            fallback_dimensions=cfg.embedding.dimensions,
            batch_size=cfg.embedding.batch_size,
            top_k=cfg.retrieval.top_k,
            min_similarity=cfg.retrieval.min_similarity,
            max_chunk_chars=cfg.chunking.max_chunk_chars,
            overlap_chars=cfg.chunking.overlap_chars,
        )


@dataclass(frozen=True)
class SearchResult:
    """One retrieved chunk with its similarity to the query."""

    object_type: str
    object_id: str
    text: str
    similarity: float
    chunk_index: int = 0
    created_at: str = ""

    @property
    def citation(self) -> str:
        return f"{self.object_type}({self.object_id})"

    def to_dict(self) -> dict:
        return {
            "object_type": self.object_type,
            "object_id": self.object_id,
            "text": self.text,
            "similarity": self.similarity,
            "chunk_index": self.chunk_index,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class RebuildProgress:
    """Emitted after each record of a rebuild. ``current`` runs 1..total."""

    current: int
    total: int
    record_id: str
    object_type: str


@dataclass
class RebuildReport:
    """Outcome of one rebuild_embeddings() call.

    ``started`` is False when the call was coalesced into a rebuild that was
    already running.
    """

    started: bool = True
    total: int = 0
    indexed: int = 0
    failed: int = 0
    degraded: int = 0
    pruned: int = 0
    wiped: bool = False
    completed: bool = False


@dataclass(frozen=True)
class DomainCoverage:
    indexed: int
    total: int

    @property
    def coverage(self) -> float:
        if self.total == 0:
            return 1.0
        return min(self.indexed, self.total) / self.total


@dataclass(frozen=True)
class IndexingStatus:
    """Per-domain and overall share of records that have embeddings.

    An empty corpus counts as fully indexed (coverage 1.0).
    """

    domains: dict[str, DomainCoverage]
    total_embeddings: int = 0
    is_rebuilding: bool = False

    @property
    def total_records(self) -> int:
        return sum(d.total for d in self.domains.values())

    @property
    def indexed_records(self) -> int:
        return sum(min(d.indexed, d.total) for d in self.domains.values())

    @property
    def overall_coverage(self) -> float:
        total = self.total_records
        if total == 0:
            return 1.0
        return self.indexed_records / total


@dataclass
class RagContext:
    """Retrieved passages for one query, ready to hand to a model.

    ``degraded`` is True when the query embedding fell back to a zero vector,
    in which case ``results`` is empty and callers should warn the user.
    """

    query: str
    results: list[SearchResult] = field(default_factory=list)
    target_domains: tuple[str, ...] = ()
    degraded: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.results

    @property
    def citations(self) -> list[str]:
        """Unique citations in retrieval order."""
        return list(dict.fromkeys(r.citation for r in self.results))

    @property
    def average_similarity(self) -> float:
        if not self.results:
            return 0.0
        return sum(r.similarity for r in self.results) / len(self.results)

    def format_for_prompt(self) -> str:
        if not self.results:
            return "No relevant information was found in the user's data."
        lines = ["## Relevant Information", ""]
        for i, r in enumerate(self.results, 1):
            lines.append(f"{i}. [{r.citation}] {r.text}")
            lines.append(f"   (Relevance: {r.similarity * 100:.1f}%)")
            lines.append("")
        return "\n".join(lines).rstrip() + "\n"


# ---------------------------------------------------------------------------
# Single-flight guard
# ---------------------------------------------------------------------------


class IndexingGuard:
    """Process-wide "indexing in progress" flag.

    ``acquire()`` never blocks: it returns False while another rebuild holds
    the guard. Share one instance between pipelines that write to the same
    store.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class RagPipeline:
    """Indexing and retrieval over an EmbeddingStore.

    Args:
        store: Embedding store (written only by the indexing path).
        retriever: Read-only access to the life records.
        embedder: Embedding backend.
        chat: Optional chat backend used by answer().
        config: Pipeline settings.
        guard: Single-flight guard; a fresh one is created if omitted.
    """

    def __init__(
        self,
        store: EmbeddingStore,
        retriever: DomainDataRetriever,
        embedder: EmbeddingBackend,
        chat: ChatBackend | None = None,
        config: RagConfig | None = None,
        guard: IndexingGuard | None = None,
    ) -> None:
        self.store = store
        self.retriever = retriever
        self.embedder = embedder
        self.chat = chat
        self.config = config or RagConfig()
        self.guard = guard or IndexingGuard()
        self.chunker = ChunkProcessor(self.config.max_chunk_chars, self.config.overlap_chars)
        self.last_rebuild: RebuildReport | None = None
        self._last_dimension: int | None = None

    # ------------------------------------------------------------------
    # Embedding with zero-vector fallback
    # ------------------------------------------------------------------

    def _fallback_dimension(self) -> int:
        return self.store.dimension() or self._last_dimension or self.config.fallback_dimensions

    def _embed_batch(self, texts: Sequence[str]) -> list[list[float]] | None:
        try:
            vectors = self.embedder.embed(texts)
        except Exception as exc:
            logger.warning("Embedding failed, using zero-vector fallback: %s", exc)
            return None
        if len(vectors) != len(texts) or not all(vectors):
            logger.warning(
                "Embedding backend returned %d vectors for %d texts, using zero-vector fallback",
                len(vectors),
                len(texts),
            )
            return None
        self._last_dimension = len(vectors[0])
        return [list(v) for v in vectors]

    def _embed_texts(self, texts: Sequence[str]) -> list[tuple[list[float], bool]]:
        """Embed *texts* in batches. Returns ``(vector, degraded)`` per text."""
        results: list[tuple[list[float], bool] | None] = []
        size = self.config.batch_size
        for start in range(0, len(texts), size):
            batch = self._embed_batch(texts[start : start + size])
            if batch is None:
                results.extend([None] * len(texts[start : start + size]))
            else:
                results.extend((v, False) for v in batch)

        # Fill failed slots once the real dimension (if any) is known
        dim = next((len(r[0]) for r in results if r is not None), None) or self._fallback_dimension()
        return [r if r is not None else ([0.0] * dim, True) for r in results]

    def _embed_query(self, query: str) -> list[float] | None:
        batch = self._embed_batch([query])
        return batch[0] if batch else None

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def index_record(self, record: Record) -> int:
        """Chunk, embed and store *record*, replacing any earlier embeddings.

        Returns:
            Number of chunks stored (0 for a record without searchable text).

        Raises:
            DimensionMismatchError: If the active model's vectors do not match
                the store. Run rebuild_embeddings() after switching models.
        """
        stored, _ = self._index(record)
        return stored

    def _index(self, record: Record) -> tuple[int, bool]:
        text = record.to_searchable_text()
        chunks = self.chunker.chunk(record.object_type, record.id, text)
        if not chunks:
            self.store.delete_object(record.object_type, record.id)
            return 0, False

        embedded = self._embed_texts([c.text for c in chunks])
        created_at = as_naive_utc(record.timestamp).isoformat()
        embeddings = [
            Embedding(
                object_type=record.object_type,
                object_id=record.id,
                chunk_index=chunk.chunk_index,
                chunk_text=chunk.text,
                vector=vector,
                degraded=degraded,
                created_at=created_at,
                model=self.config.embedding_model,
            )
            for chunk, (vector, degraded) in zip(chunks, embedded)
        ]
        stored = self.store.replace_object(record.object_type, record.id, embeddings)
        return stored, any(e.degraded for e in embeddings)

    def _collect_records(self, domains: Iterable[str]) -> list[Record]:
        records: list[Record] = []
        for domain in domains:
            try:
                records.extend(self.retriever.get_records(domain))
            except Exception as exc:
                logger.warning("Skipping domain %s, records could not be read: %s", domain, exc)
        return records

    def iter_rebuild(self, domains: Sequence[str] | None = None) -> Iterator[RebuildProgress]:
        """Re-index every record in *domains* (default: all), yielding progress.

        Single-flight: if a rebuild is already running, the generator ends
        without yielding. Closing the generator early releases the guard;
        records already indexed stay valid. ``last_rebuild`` holds the report
        of the most recent rebuild that actually ran.
        """
        report = RebuildReport()
        yield from self._rebuild(tuple(domains or DOMAINS), report)

    def _rebuild(self, domains: tuple[str, ...], report: RebuildReport) -> Iterator[RebuildProgress]:
        if not self.guard.acquire():
            logger.info("Rebuild already in progress, request coalesced")
            report.started = False
            return

        self.last_rebuild = report
        try:
            records = self._collect_records(domains)
            report.total = len(records)
            logger.info("Rebuilding embeddings for %d records", report.total)

            done: list[Record] = []
            for i, record in enumerate(records, 1):
                self._rebuild_one(record, done, report)
                done.append(record)
                yield RebuildProgress(
                    current=i, total=report.total, record_id=record.id, object_type=record.object_type
                )

            report.pruned = self._prune(domains, records)
            report.completed = True
            logger.info(
                "Rebuild finished: %d indexed, %d failed, %d degraded, %d pruned",
                report.indexed,
                report.failed,
                report.degraded,
                report.pruned,
            )
        finally:
            self.guard.release()

    def _rebuild_one(self, record: Record, done: list[Record], report: RebuildReport) -> None:
        try:
            _, degraded = self._index(record)
        except DimensionMismatchError as exc:
            if report.wiped:
                logger.error("Failed to index %s(%s): %s", record.object_type, record.id, exc)
                report.failed += 1
                return
            # The active model changed: wipe once, then redo what this run already wrote
            logger.warning("%s Wiping the store and re-indexing.", exc)
            self.store.delete_all()
            report.wiped = True
            self._rebuild_one(record, [], report)
            for earlier in done:
                try:
                    self._index(earlier)
                except DimensionMismatchError as exc2:
                    logger.error("Failed to re-index %s(%s): %s", earlier.object_type, earlier.id, exc2)
            return
        except Exception as exc:
            logger.error("Failed to index %s(%s): %s", record.object_type, record.id, exc)
            report.failed += 1
            return
        report.indexed += 1
        if degraded:
            report.degraded += 1

    def _prune(self, domains: tuple[str, ...], records: list[Record]) -> int:
        """Delete embeddings of objects that no longer exist in *domains*."""
        live: dict[str, set[str]] = {}
        for record in records:
            live.setdefault(record.object_type, set()).add(record.id)
        pruned = 0
        for domain in domains:
            for object_id in self.store.object_ids(domain) - live.get(domain, set()):
                self.store.delete_object(domain, object_id)
                pruned += 1
        return pruned

    def rebuild_embeddings(
        self,
        on_progress: Callable[[int, int], None] | None = None,
        domains: Sequence[str] | None = None,
    ) -> RebuildReport:
        """Run a full rebuild to completion.

        Args:
            on_progress: Called with ``(current, total)`` after each record.
            domains: Domains to rebuild (default: all).

        Returns:
            The rebuild report; ``started`` is False if another rebuild was
            already running.
        """
        report = RebuildReport()
        for event in self._rebuild(tuple(domains or DOMAINS), report):
            if on_progress is not None:
                on_progress(event.current, event.total)
        return report

    def rebuild_in_background(
        self, on_progress: Callable[[int, int], None] | None = None
    ) -> threading.Thread | None:
        """Start rebuild_embeddings() on a daemon thread.

        Returns None without starting a thread if a rebuild is already running.
        """
        if self.guard.is_running:
            logger.info("Rebuild already in progress, background request ignored")
            return None
        thread = threading.Thread(
            target=self.rebuild_embeddings,
            kwargs={"on_progress": on_progress},
            name="lifebutler-rebuild",
            daemon=True,
        )
        thread.start()
        return thread

    def get_indexing_status(self, domains: Sequence[str] | None = None) -> IndexingStatus:
        """Compare record counts with indexed objects, per domain."""
        domains = tuple(domains or DOMAINS)
        totals = count_records(self.retriever, domains)
        indexed = self.store.count_objects_by_type()
        rows = self.store.count_by_type()
        return IndexingStatus(
            domains={d: DomainCoverage(indexed=indexed.get(d, 0), total=totals[d]) for d in domains},
            total_embeddings=sum(rows.get(d, 0) for d in domains),
            is_rebuilding=self.guard.is_running,
        )

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------


    def _rank(
        self,
        query_vector: list[float],
        k: int,
        min_similarity: float,
        object_types: Sequence[str] | None,
        time_range: TimeRange | None = None,
    ) -> list[SearchResult]:
        if object_types:
            candidates = [e for t in dict.fromkeys(object_types) for e in self.store.get_all(t)]
        else:
            candidates = self.store.get_all()

        results: list[SearchResult] = []
        for e in candidates:
            if e.degraded:
                continue
            if time_range is not None and not _created_within(e.created_at, time_range):
                continue
            if e.dimensions != len(query_vector):
                raise DimensionMismatchError(e.dimensions, len(query_vector))
            sim = cosine_similarity(query_vector, e.vector)
            if sim >= min_similarity:
                results.append(
                    SearchResult(
                        object_type=e.object_type,
                        object_id=e.object_id,
                        text=e.chunk_text,
                        similarity=sim,
                        chunk_index=e.chunk_index,
                        created_at=e.created_at or "",
                    )
                )
        results.sort(key=lambda r: (r.similarity, r.created_at), reverse=True)
        return results[:k]

    def _search(
        self,
        query: str,
        k: int | None,
        min_similarity: float | None,
        object_types: Sequence[str] | None,
        time_range: TimeRange | None = None,
    ) -> tuple[list[SearchResult], bool]:
        k = self.config.top_k if k is None else k
        min_similarity = self.config.min_similarity if min_similarity is None else min_similarity
        if k < 1 or not query.strip():
            return [], False

        query_vector = self._embed_query(query)
        if query_vector is None:
            return [], True
        try:
            return self._rank(query_vector, k, min_similarity, object_types, time_range), False
        except DimensionMismatchError as exc:
            logger.warning("%s Search skipped.", exc)
            return [], True

    def search(
        self,
        query: str,
        k: int | None = None,
        min_similarity: float | None = None,
        object_types: Sequence[str] | None = None,
        time_range: TimeRange | None = None,
    ) -> list[SearchResult]:
        """Return the *k* stored chunks most similar to *query*, best first.

        Returns ``[]`` when the query cannot be embedded. Use build_context()
        to tell that case apart from "nothing matched".
        """
        results, _ = self._search(query, k, min_similarity, object_types, time_range)
        return results

    def build_context(
        self,
        query: str,
        target_domains: Sequence[str] = (),
        k: int | None = None,
        time_range: TimeRange | None = None,
    ) -> RagContext:
        """Search within *target_domains* (all if empty) and *time_range* and wrap the results."""
        results, degraded = self._search(query, k, None, target_domains or None, time_range)
        return RagContext(
            query=query,
            results=results,
            target_domains=tuple(target_domains),
            degraded=degraded,
        )

    def answer(
        self,
        query: str,
        target_domains: Sequence[str] = (),
        k: int | None = None,
        time_range: TimeRange | None = None,
    ) -> str:
        """Answer *query* from retrieved records."""
        return self.answer_from_context(self.build_context(query, target_domains, k, time_range))

    def answer_from_context(self, context: RagContext, facts: Sequence[str] = ()) -> str:
        """Synthesise an answer from *context*, citing the records used.

        *facts* are figures computed elsewhere (totals, counts) that the
        answer must use as given. Without results the reply says so
        explicitly. Without a working chat backend the top passages are
        listed verbatim.
        """
        query = context.query
        if context.is_empty:
            return (
                f'I couldn\'t find relevant information in your data to answer: "{query}". '
                "You may need to add more data or try a different question."
            )

        if self.chat is not None:
            prompt = f"Question: {query}\n\n"
            if facts:
                prompt += "## Calculated Figures\n" + "\n".join(f"- {f}" for f in facts) + "\n\n"
            messages = [
                {"role": "system", "content": _ANSWER_SYSTEM_PROMPT},
                {"role": "user", "content": prompt + context.format_for_prompt()},
            ]
            try:
                reply = self.chat.chat(messages).strip()
                if reply:
                    return reply
                logger.warning("Chat backend returned an empty answer, listing passages instead")
            except Exception as exc:
                logger.warning("Chat backend unavailable, listing passages instead: %s", exc)
        return _simple_answer(query, context.results, facts)


def _created_within(created_at: str | None, time_range: TimeRange) -> bool:
    if not created_at:
        return False
    try:
        ts = datetime.fromisoformat(created_at)
    except ValueError:
        return False
    return time_range.contains(as_naive_utc(ts))


def _simple_answer(query: str, results: list[SearchResult], facts: Sequence[str] = ()) -> str:
    lines = [f'Based on your data, here\'s what I found regarding "{query}":', ""]
    if facts:
        lines += list(facts) + [""]
    for i, r in enumerate(results[:_MAX_ANSWER_PASSAGES], 1):
        lines.append(f"{i}. {r.text} [{r.citation}]")
    if len(results) > _MAX_ANSWER_PASSAGES:
        lines.append("")
        lines.append(
            f"...and {len(results) - _MAX_ANSWER_PASSAGES} more related entries in your data."
        )
    return "\n".join(lines)
