from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable

from scriptbreakdown.application.services.scene_merge_service import SceneMerger
from scriptbreakdown.core.config import BreakdownSettings
from scriptbreakdown.core.time import now_utc_iso
from scriptbreakdown.domain.models.breakdown import BreakdownResult, ChunkExtraction, ScriptChunk
from scriptbreakdown.infrastructure.llm.chat_client import ChatClient
from scriptbreakdown.infrastructure.llm.scene_extraction_adapter import SceneExtractionAdapter
from scriptbreakdown.infrastructure.script.chunking import ScriptChunker, normalize_script_text

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[dict[str, object]], None]


class BreakdownPipeline:
    """Chunk a script, extract scenes per chunk and merge them into one breakdown."""

    def __init__(
        self,
        *,
        chunker: ScriptChunker,
        adapter: SceneExtractionAdapter,
        merger: SceneMerger | None = None,
        concurrency: int = 1,
    ) -> None:
        self.chunker = chunker
        self.adapter = adapter
        self.merger = merger or SceneMerger()
        self.concurrency = max(1, int(concurrency))

    @classmethod
    def from_settings(cls, settings: BreakdownSettings, client: ChatClient) -> BreakdownPipeline:
        return cls(
            chunker=ScriptChunker(
                min_chars=settings.min_chars_per_chunk,
                max_chars=settings.max_chars_per_chunk,
                chars_per_page=settings.chars_per_page,
            ),
            adapter=SceneExtractionAdapter(
                client,
                max_tokens=settings.llm_max_tokens,
                temperature=settings.llm_temperature,
            ),
            concurrency=settings.extraction_concurrency,
        )

    def run(
        self,
        text: str,
        *,
        page_count: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> BreakdownResult:
        emit_lock = threading.Lock()

        def emit(payload: dict[str, object]) -> None:
            if progress_callback is None:
                return
            enriched = dict(payload)
            enriched.setdefault("emitted_at", now_utc_iso())
            with emit_lock:
                progress_callback(enriched)

        chunks = self.chunker.chunk(text, page_count=page_count)
        total_pages = self.chunker.estimate_total_pages(normalize_script_text(text), page_count=page_count)
        logger.info("Split script into %s chunks (~%s pages)", len(chunks), total_pages)
        emit(
            {
                "stage": "chunk",
                "chunks_total": len(chunks),
                "chunks_processed": 0,
                "chunks_failed": 0,
                "detail": f"Split script into {len(chunks)} section(s).",
            }
        )

        extractions = self._extract_all(chunks, emit)
        failed = sum(1 for item in extractions if not item.ok)
        if failed:
            logger.warning("%s of %s chunks failed extraction", failed, len(chunks))

        emit(
            {
                "stage": "merge",
                "chunks_total": len(chunks),
                "chunks_processed": len(chunks),
                "chunks_failed": failed,
                "detail": "Merging scenes.",
            }
        )
        scenes = self.merger.merge(extractions)
        return BreakdownResult(scenes=scenes, total_pages=total_pages, total_scenes=len(scenes))

    def _extract_all(
        self,
        chunks: list[ScriptChunk],
        emit: ProgressCallback,
    ) -> list[ChunkExtraction]:
        total = len(chunks)
        results: dict[int, ChunkExtraction] = {}
        failed = 0

        def record(extraction: ChunkExtraction) -> None:
            nonlocal failed
            results[extraction.chunk.index] = extraction
            if not extraction.ok:
                failed += 1
            emit(
                {
                    "stage": "extract",
                    "chunks_total": total,
                    "chunks_processed": len(results),
                    "chunks_failed": failed,
                    "detail": f"Extracted section {len(results)} of {total}.",
                }
            )

        if self.concurrency == 1 or total == 1:
            for chunk in chunks:
                record(self.adapter.extract(chunk, total))
        else:
            with ThreadPoolExecutor(max_workers=min(self.concurrency, total)) as executor:
                pending = {executor.submit(self.adapter.extract, chunk, total) for chunk in chunks}
                while pending:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        record(future.result())

        return [results[chunk.index] for chunk in chunks]
