from __future__ import annotations

import logging

from scriptbreakdown.core.config import DEFAULT_LLM_MAX_TOKENS, DEFAULT_LLM_TEMPERATURE
from scriptbreakdown.domain.models.breakdown import ChunkExtraction, SceneCandidate, ScriptChunk
from scriptbreakdown.infrastructure.llm.chat_client import ChatClient
from scriptbreakdown.infrastructure.llm.json_payload import parse_json_payload, scene_items_from_payload

logger = logging.getLogger(__name__)

SCENE_EXTRACTION_PROMPT = """You are a professional script supervisor analyzing a film/TV script. Extract all scenes from the provided script text.

For each scene, extract:
- scene_number: The scene number as written (e.g., "1", "2A", "45")
- int_ext: Either "INT" for interior or "EXT" for exterior
- set_name: The location/set name from the slugline (e.g., "JOHN'S APARTMENT - LIVING ROOM")
- time_of_day: One of: DAY, NIGHT, DAWN, DUSK, MORNING, AFTERNOON, EVENING, CONTINUOUS
- page_length_eighths: The scene length in 1/8ths of a page (1-8 for each full page)
- synopsis: A brief 1-2 sentence description of what happens in the scene
- characters: Array of character names who appear in the scene (speaking roles only)
- script_page_start: The starting page number
- script_page_end: The ending page number

Return a JSON object with this structure:
{
  "scenes": [
    {
      "scene_number": "1",
      "int_ext": "INT",
      "set_name": "JOHN'S APARTMENT - LIVING ROOM",
      "time_of_day": "DAY",
      "page_length_eighths": 4,
      "synopsis": "John wakes up and discovers the mysterious letter.",
      "characters": ["JOHN", "MARY"],
      "script_page_start": 1,
      "script_page_end": 1
    }
  ],
  "total_pages": 95,
  "total_scenes": 42
}

Important:
- Scene numbers should match exactly as written in the script
- Include all scenes, even very short ones
- For page_length_eighths, estimate based on the text length (8 eighths = 1 full page)
- Only include characters who have dialogue or are specifically mentioned in action
- Return ONLY valid JSON, no other text"""


def build_chunk_prompt(chunk: ScriptChunk, total_chunks: int) -> str:
    return (
        f"Section {chunk.ordinal} of {total_chunks} "
        f"(estimated pages {chunk.page_start}-{chunk.page_end}).\n\n{chunk.text}"
    )


class SceneExtractionAdapter:
    """Send one chunk to the extraction model and parse its scene candidates.

    ``extract`` never raises: transport, parse and validation failures are
    logged and reported on the returned ``ChunkExtraction`` with no candidates.
    """

    def __init__(
        self,
        client: ChatClient,
        *,
        max_tokens: int = DEFAULT_LLM_MAX_TOKENS,
        temperature: float = DEFAULT_LLM_TEMPERATURE,
    ) -> None:
        self.client = client
        self.max_tokens = max_tokens
        self.temperature = temperature

    def extract(self, chunk: ScriptChunk, total_chunks: int) -> ChunkExtraction:
        messages = [
            {"role": "system", "content": SCENE_EXTRACTION_PROMPT},
            {"role": "user", "content": build_chunk_prompt(chunk, total_chunks)},
        ]
        try:
            raw = self.client.complete(
                messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as exc:
            logger.warning("Chunk %s/%s extraction request failed: %s", chunk.ordinal, total_chunks, exc)
            return ChunkExtraction(chunk=chunk, error=str(exc) or exc.__class__.__name__)

        items, error = scene_items_from_payload(parse_json_payload(raw))
        if error is not None:
            logger.warning("Chunk %s/%s returned an unusable response: %s", chunk.ordinal, total_chunks, error)
            return ChunkExtraction(chunk=chunk, error=error)

        candidates = [SceneCandidate.from_raw(item) for item in items]
        logger.debug("Chunk %s/%s yielded %s scene candidates", chunk.ordinal, total_chunks, len(candidates))
        return ChunkExtraction(chunk=chunk, candidates=candidates)
