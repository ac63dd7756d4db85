"""
Memory indexer.

Converts community posts and comments into summarized, embedded memory
records. Two modes:

- incremental (`process_new`): only items newer than the per-kind
  watermark, in small ascending batches; used by the scheduler.
- full (`process_all`): the most recent N items of each kind regardless
  of the watermark, upserted idempotently; used for backfill and repair.

Per-item failures never abort a batch. A failed summary is replaced by a
dated excerpt of the content and a failed embedding by `Unembedded`.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .content.store import ContentStore, SourceItem
from .errors import DataIntegrityWarning, EmbeddingError, SummarizationError
from .memory.embeddings import EmbeddingProvider
from .memory.storage import MemoryStorage
from .memory.types import (
    Embedded,
    IndexRunSummary,
    KindSummary,
    MemoryRecord,
    SourceKind,
    Unembedded,
    utc_now,
)
from .summarizer import ContentSummarizer, fallback_summary


logger = logging.getLogger(__name__)


DEFAULT_BATCH_SIZE = 50
DEFAULT_FULL_LIMIT = 500

# Content shorter than this is not worth indexing
DEFAULT_MIN_LENGTHS = {
    SourceKind.POST: 20,
    SourceKind.COMMENT: 15,
}


class ItemOutcome(str, Enum):
    """What happened to one candidate item."""
    STORED = "stored"
    FALLBACK = "fallback"
    DUPLICATE = "duplicate"
    TOO_SHORT = "too_short"
    ERROR = "error"


@dataclass
class ItemResult:
    item: SourceItem
    outcome: ItemOutcome
    record_id: Optional[str] = None

    @property
    def resolved(self) -> bool:
        """Whether the item needs no further incremental processing."""
        return self.outcome != ItemOutcome.ERROR


def _skip_warning(item: SourceItem, outcome: ItemOutcome, detail: str):
    logger.warning(
        f"Skipping {item.kind.value} {item.id}: {detail}",
        extra={"attributes": {
            "warning": DataIntegrityWarning.__name__,
            "kind": item.kind.value,
            "source_id": item.id,
            "reason": outcome.value,
        }},
    )


class MemoryIndexer:
    """
    Builds memory records from the content store.

    Example:
        >>> indexer = MemoryIndexer(content_store, storage, summarizer, embedder)
        >>> summary = indexer.process_new(SourceKind.POST)
        >>> summary.processed
        2
    """

    def __init__(
        self,
        content_store: ContentStore,
        storage: MemoryStorage,
        summarizer: ContentSummarizer,
        embedder: EmbeddingProvider,
        batch_size: int = DEFAULT_BATCH_SIZE,
        full_limit: int = DEFAULT_FULL_LIMIT,
        min_lengths: Optional[Dict[SourceKind, int]] = None,
        max_workers: int = 1,
    ):
        """
        Initialize the indexer.

        Args:
            content_store: Source of posts and comments
            storage: Memory record storage
            summarizer: Produces processed content
            embedder: Produces record embeddings
            batch_size: Items per incremental run
            full_limit: Items per kind in full reprocessing
            min_lengths: Minimum content length per kind
            max_workers: Items processed concurrently within a batch
        """
        self.content_store = content_store
        self.storage = storage
        self.summarizer = summarizer
        self.embedder = embedder
        self.batch_size = batch_size
        self.full_limit = full_limit
        self.min_lengths = dict(DEFAULT_MIN_LENGTHS)
        if min_lengths:
            self.min_lengths.update({SourceKind(k): v for k, v in min_lengths.items()})
        self.max_workers = max(1, max_workers)

    # ========== Modes ==========

    def process_new(self, kind: SourceKind) -> KindSummary:
        """
        Index items of one kind created after the current watermark.

        Args:
            kind: Source kind to process

        Returns:
            Counters for the batch and the watermark after the run
        """
        kind = SourceKind(kind)
        watermark = self.storage.get_watermark(kind)
        candidates = self.content_store.find_since(kind, watermark, self.batch_size)
        logger.info(f"Found {len(candidates)} new {kind.value}s to process (watermark={watermark})")

        results = self._run(candidates, skip_existing=True)
        summary = self._summarize(kind, results)

        resolved = [r.item.created_at for r in results if r.resolved]
        if resolved:
            self.storage.advance_resolved_watermark(kind, max(resolved))
        summary.watermark = self.storage.get_watermark(kind)
        return summary

    def process_new_all(self) -> IndexRunSummary:
        """Run incremental indexing for posts, then comments."""
        run = IndexRunSummary(memory_before=self.storage.count())
        for kind in SourceKind:
            run.kinds[kind] = self.process_new(kind)
        run.memory_after = self.storage.count()
        return run

    def process_all(self, limit: Optional[int] = None) -> IndexRunSummary:
        """
        Reprocess the most recent items of every kind.

        Existing records are refreshed in place; the incremental
        watermark is left as is.

        Args:
            limit: Items per kind, defaults to `full_limit`

        Returns:
            Per-kind counters and memory counts before and after
        """
        limit = limit or self.full_limit
        run = IndexRunSummary(memory_before=self.storage.count())
        logger.info(f"Starting complete content processing (limit={limit} per kind)")

        for kind in SourceKind:
            items = self.content_store.find_recent(kind, limit)
            logger.info(f"Processing {len(items)} {kind.value}s...")
            results = self._run(items, skip_existing=False)
            summary = self._summarize(kind, results)
            summary.watermark = self.storage.get_watermark(kind)
            run.kinds[kind] = summary

        run.memory_after = self.storage.count()
        logger.info(
            f"Content processing complete: {run.memory_before} -> {run.memory_after} memory records"
        )
        return run

    def cleanup_orphans(self, kinds: Optional[Iterable[SourceKind]] = None) -> int:
        """
        Delete records whose source item no longer exists.

        Returns:
            Number of records deleted
        """
        deleted = 0
        for kind in (kinds or list(SourceKind)):
            records = self.storage.list_records(source_kind=kind)
            present = self.content_store.existing_ids(kind, [r.source_id for r in records])
            for record in records:
                if record.source_id not in present and self.storage.delete(record.id):
                    deleted += 1
        if deleted:
            logger.info(f"Removed {deleted} orphaned memory records")
        return deleted

    # ========== Item processing ==========

    def _run(self, items: List[SourceItem], skip_existing: bool) -> List[ItemResult]:
        """Process items, concurrently when max_workers > 1; keeps input order."""
        if self.max_workers == 1 or len(items) <= 1:
            return [self._safe_index(item, skip_existing) for item in items]

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(lambda item: self._safe_index(item, skip_existing), items))

    def _safe_index(self, item: SourceItem, skip_existing: bool) -> ItemResult:
        try:
            return self.index_item(item, skip_existing=skip_existing)
        except Exception:
            logger.exception(f"Error processing {item.kind.value} {item.id}")
            return ItemResult(item, ItemOutcome.ERROR)

    def index_item(self, item: SourceItem, skip_existing: bool = True) -> ItemResult:
        """
        Build and store the memory record for a single item.

        Args:
            item: The post or comment
            skip_existing: Leave items that already have a record untouched

        Returns:
            The outcome for the item
        """
        content = item.content or ""
        if len(content.strip()) < self.min_lengths[item.kind]:
            _skip_warning(item, ItemOutcome.TOO_SHORT, "content too short")
            return ItemResult(item, ItemOutcome.TOO_SHORT)

        if skip_existing and self.storage.exists(item.kind, item.id):
            _skip_warning(item, ItemOutcome.DUPLICATE, "already indexed")
            return ItemResult(item, ItemOutcome.DUPLICATE)

        record, degraded = self.build_record(item)
        self.storage.upsert(record)
        logger.debug(f"Processed {item.kind.value} {item.id}")
        return ItemResult(
            item,
            ItemOutcome.FALLBACK if degraded else ItemOutcome.STORED,
            record.id,
        )

    def build_record(self, item: SourceItem) -> tuple[MemoryRecord, bool]:
        """
        Summarize and embed an item.

        Returns:
            The record and whether any fallback was used
        """
        degraded = False
        start = time.perf_counter()

        try:
            processed = self.summarizer.summarize(item.content)
        except SummarizationError as e:
            logger.warning(f"Summarization failed for {item.kind.value} {item.id}, using fallback: {e}")
            processed = fallback_summary(item.kind, item.content, item.created_at)
            degraded = True

        try:
            embedding = Embedded(self.embedder.embed(processed))
        except EmbeddingError as e:
            logger.warning(f"Embedding failed for {item.kind.value} {item.id}: {e}")
            embedding = Unembedded(reason=str(e))
            degraded = True

        logger.debug(
            f"Built record for {item.kind.value} {item.id} in "
            f"{(time.perf_counter() - start) * 1000:.1f}ms"
        )

        return MemoryRecord(
            source_kind=item.kind,
            source_id=item.id,
            processed_content=processed,
            original_content=item.content,
            location=item.resolved_location,
            original_created_at=item.created_at,
            embedding=embedding,
            last_updated=utc_now(),
        ), degraded

    def _summarize(self, kind: SourceKind, results: List[ItemResult]) -> KindSummary:
        summary = KindSummary(kind=kind)
        for result in results:
            if result.outcome in (ItemOutcome.STORED, ItemOutcome.FALLBACK):
                summary.processed += 1
                if result.outcome == ItemOutcome.FALLBACK:
                    summary.fallbacks += 1
            elif result.outcome == ItemOutcome.ERROR:
                summary.errors += 1
            else:
                summary.skipped += 1
        logger.info(
            f"{kind.value}s: processed={summary.processed} fallbacks={summary.fallbacks} "
            f"skipped={summary.skipped} errors={summary.errors}",
            extra={"attributes": {"kind": kind.value, "errors": summary.errors}},
        )
        return summary
