"""
Remote knowledge base and instruction synchronization.

Both documents are fetched over HTTP with conditional requests
(If-None-Match / If-Modified-Since). A 304 leaves the current state
untouched. A new knowledge body is validated, chunked and embedded before
it goes live; snapshot, chunks and vector index are then published together
so no request ever retrieves against a mixed generation.
"""
import hashlib
import json
import logging
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kartbot.errors import NotReadyError, SourceSyncError
from kartbot.models.knowledge import Chunk, KnowledgeSnapshot
from kartbot.rag.chunker import extract_chunks
from kartbot.rag.vector_index import VectorIndex

logger = logging.getLogger(__name__)

FETCH_MAX_ATTEMPTS = 3

REQUIRED_SECTIONS = ("site", "opening", "venues", "equipment", "sessions", "fast_answers")

DEFAULT_SYSTEM_PROMPT = """
You are the Karting Central website assistant.
- Always use UK English and GBP (£).
- Handle greetings and small talk naturally.
- Use provided context for facts/links; if none is relevant, answer generally but never invent specific prices/hours/policies.
- Be concise and friendly. Start with the direct answer, then 1–2 helpful bullets if needed.
- Add a clear CTA with the correct path (Book Experience, Customer Dashboard, Safety, Events) only when relevant.
- If a user mentions tickets or tracking codes, point to the Customer Dashboard link.
"""


class LoadResult(str, Enum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"


def validate_payload(data: Any) -> None:
    """Reject a knowledge document that is missing required sections.

    Raises:
        SourceSyncError: Describing every problem found.
    """
    if not isinstance(data, dict):
        raise SourceSyncError("KB payload is not a JSON object")

    problems = [f"missing section '{name}'" for name in REQUIRED_SECTIONS if name not in data]
    for name in ("site", "opening", "equipment", "sessions"):
        if name in data and not isinstance(data[name], dict):
            problems.append(f"section '{name}' must be an object")
    if not isinstance(data.get("fast_answers", []), list):
        problems.append("fast_answers must be a list")

    urls = (data.get("site") or {}).get("urls") if isinstance(data.get("site"), dict) else None
    if not isinstance(urls, dict) or not urls.get("home"):
        problems.append("site.urls.home is required")

    venues = data.get("venues")
    if "venues" in data:
        if not isinstance(venues, list) or not venues:
            problems.append("venues must be a non-empty list")
        elif not all(isinstance(v, dict) and v.get("id") and v.get("name") for v in venues):
            problems.append("every venue needs an id and a name")

    for hint in data.get("fast_answers") or []:
        if not isinstance(hint, dict) or not hint.get("intent") or not hint.get("answer"):
            problems.append("every fast answer needs an intent and an answer")
            break
        if not isinstance(hint.get("keywords"), list):
            problems.append(f"fast answer '{hint.get('intent')}' has no keyword list")
            break

    if problems:
        raise SourceSyncError("Invalid KB payload: " + "; ".join(problems))


class ConditionalSource:
    """A remote document fetched with HTTP conditional requests.

    Remembers the ETag / Last-Modified of the last *committed* fetch and
    sends them as preconditions unless the fetch is forced.
    """

    def __init__(self, url: Optional[str], client: httpx.AsyncClient, label: str):
        self.url = url
        self.client = client
        self.label = label
        self.etag: Optional[str] = None
        self.last_modified: Optional[str] = None

    def _headers(self, force: bool) -> Dict[str, str]:
        headers = {"Cache-Control": "no-cache", "Pragma": "no-cache"}
        if not force:
            if self.etag:
                headers["If-None-Match"] = self.etag
            if self.last_modified:
                headers["If-Modified-Since"] = self.last_modified
        return headers

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(FETCH_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=0.5, max=4),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _get(self, headers: Dict[str, str]) -> httpx.Response:
        return await self.client.get(self.url, headers=headers)

    async def fetch(self, force: bool = False) -> Optional[httpx.Response]:
        """Fetch the document.

        Returns:
            The response for a new body, or None when the source replied 304.

        Raises:
            SourceSyncError: On transport failure or an unexpected status.
        """
        try:
            response = await self._get(self._headers(force))
        except httpx.HTTPError as e:
            raise SourceSyncError(f"{self.label} fetch failed: {e}") from e

        if response.status_code == 304:
            return None
        if not response.is_success:
            raise SourceSyncError(f"{self.label} fetch failed: {response.status_code}")
        return response

    def commit(self, response: httpx.Response) -> None:
        self.etag = response.headers.get("etag") or self.etag
        self.last_modified = response.headers.get("last-modified") or self.last_modified


class KnowledgeStore:
    """Holds the live knowledge snapshot and keeps the vector index in step with it."""

    def __init__(self, url: Optional[str], client: httpx.AsyncClient, index: VectorIndex):
        self.index = index
        self._source = ConditionalSource(url, client, "KB")
        self._snapshot: Optional[KnowledgeSnapshot] = None
        self._chunks: Tuple[Chunk, ...] = ()

    @property
    def snapshot(self) -> Optional[KnowledgeSnapshot]:
        return self._snapshot

    @property
    def chunks(self) -> Tuple[Chunk, ...]:
        return self._chunks

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

    def require_snapshot(self) -> KnowledgeSnapshot:
        snapshot = self._snapshot
        if snapshot is None:
            raise NotReadyError("KB not loaded yet")
        return snapshot

    async def load(self, force: bool = False) -> LoadResult:
        """Fetch the knowledge base and, if it changed, rebuild the index.

        Args:
            force: Skip the conditional-request preconditions.

        Returns:
            LoadResult.CHANGED if a new snapshot went live, UNCHANGED on 304.

        Raises:
            SourceSyncError: Fetch, parse or validation failure. The previous
                snapshot keeps serving.
            ProviderError: Embedding the new chunks failed. The previous
                snapshot keeps serving.
        """
        if not self._source.url:
            raise SourceSyncError("KB_URL not set")

        response = await self._source.fetch(force)
        if response is None:
            logger.info(f"[KB] Not modified ({self._source.etag or 'no-etag'})")
            return LoadResult.UNCHANGED

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SourceSyncError(f"KB payload is not valid JSON: {e}") from e
        validate_payload(data)

        snapshot = KnowledgeSnapshot(
            data=data,
            etag=response.headers.get("etag"),
            last_modified=response.headers.get("last-modified"),
        )
        chunks = extract_chunks(snapshot)
        entries = await self.index.build(chunks)

        # Publish snapshot, chunks and index together, with no await in between.
        self.index.publish(entries)
        self._snapshot = snapshot
        self._chunks = tuple(chunks)
        self._source.commit(response)

        logger.info(f"[KB] Loaded ({self._source.etag or 'no-etag'}), {len(entries)} chunks embedded")
        return LoadResult.CHANGED

    def status(self) -> Dict[str, Any]:
        return {"loaded": self.loaded, "chunkCount": len(self.index)}

    def debug_info(self) -> Dict[str, Any]:
        return {
            "KB_URL": self._source.url,
            "kbLoaded": self.loaded,
            "kbChunks": len(self.index),
            "kbEtag": self._source.etag,
            "kbLastModified": self._source.last_modified,
        }


def short_hash(text: str = "") -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:10]


class InstructionStore:
    """External Markdown system instructions with a built-in fallback."""

    def __init__(self, url: Optional[str], client: httpx.AsyncClient):
        self._source = ConditionalSource(url, client, "Prompt")
        self._text: Optional[str] = None

    @property
    def has_prompt(self) -> bool:
        return bool(self._text and self._text.strip())

    def system_prompt(self) -> str:
        if self.has_prompt:
            return self._text
        return DEFAULT_SYSTEM_PROMPT

    async def load(self, force: bool = False) -> LoadResult:
        if not self._source.url:
            return LoadResult.UNCHANGED

        response = await self._source.fetch(force)
        if response is None:
            return LoadResult.UNCHANGED

        self._text = response.text
        self._source.commit(response)
        logger.info(f"[PROMPT] Loaded from {self._source.url} ({short_hash(self._text)})")
        return LoadResult.CHANGED

    def status(self) -> Dict[str, Any]:
        return {"hasPrompt": self.has_prompt}

    def debug_info(self) -> Dict[str, Any]:
        return {
            "PROMPT_URL": self._source.url,
            "promptHash": short_hash(self._text or ""),
            "promptPreview": (self._text or "")[:220],
            "promptEtag": self._source.etag,
            "promptLastMod": self._source.last_modified,
        }
