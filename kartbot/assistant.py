"""
AssistantService: the request pipeline and its background lifecycle.

Owns the knowledge/instruction stores, vector index, sessions, dialogue
policy and composer. `start()` warms everything up and launches the refresh
and sweep timers; `stop()` cancels them. Request handlers receive the
service by injection and call `answer()`.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from kartbot import config
from kartbot.answer_composer import Answer, AnswerComposer
from kartbot.dialogue_policy import Action, DialoguePolicy
from kartbot.errors import AssistantError, ValidationError
from kartbot.knowledge_store import InstructionStore, KnowledgeStore, LoadResult
from kartbot.llm_client import GenerationProvider
from kartbot.rag.embedder import EmbeddingProvider
from kartbot.rag.vector_index import VectorIndex
from kartbot.session_store import SessionStore

logger = logging.getLogger(__name__)


class AssistantService:
    def __init__(
        self,
        embedder: EmbeddingProvider,
        generator: GenerationProvider,
        http_client: Optional[httpx.AsyncClient] = None,
        kb_url: Optional[str] = config.KB_URL,
        prompt_url: Optional[str] = config.PROMPT_URL,
        sessions: Optional[SessionStore] = None,
        refresh_seconds: float = config.REFRESH_SECONDS,
        sweep_seconds: float = config.SESSION_SWEEP_SECONDS,
        warmup_providers: bool = config.WARMUP_PROVIDERS,
    ):
        self.embedder = embedder
        self.generator = generator
        self.http_client = http_client or httpx.AsyncClient(timeout=config.FETCH_TIMEOUT_SECONDS)
        self.index = VectorIndex(embedder)
        self.knowledge = KnowledgeStore(kb_url, self.http_client, self.index)
        self.instructions = InstructionStore(prompt_url, self.http_client)
        self.sessions = sessions or SessionStore()
        self.policy = DialoguePolicy(self.sessions)
        self.composer = AnswerComposer(self.index, generator, self.instructions)
        self.refresh_seconds = refresh_seconds
        self.sweep_seconds = sweep_seconds
        self.warmup_providers = warmup_providers
        self._tasks: List[asyncio.Task] = []

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        await self.warmup()
        self._tasks = [
            asyncio.create_task(self._every(self.refresh_seconds, self.refresh, "refresh")),
            asyncio.create_task(self._every(self.sweep_seconds, self._sweep, "sweep")),
        ]
        logger.info(
            f"[STARTUP] Timers running: refresh every {self.refresh_seconds}s, "
            f"session sweep every {self.sweep_seconds}s"
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.http_client.aclose()
        logger.info("[SHUTDOWN] Timers stopped")

    async def warmup(self) -> None:
        """Forced first load of instructions and knowledge. Failures are logged only."""
        try:
            await self.instructions.load(force=True)
        except AssistantError as e:
            logger.warning(f"[WARMUP] prompt: {e}")

        try:
            await self.knowledge.load(force=True)
        except AssistantError as e:
            logger.warning(f"[WARMUP] kb: {e}")

        if self.warmup_providers:
            await self._warm_providers()

    async def _warm_providers(self) -> None:
        try:
            await self.embedder.embed_query("warmup")
        except Exception as e:
            logger.warning(f"[WARMUP] embeddings: {e}")
        warm = getattr(self.generator, "warmup", None)
        if warm is not None:
            try:
                await warm()
            except Exception as e:
                logger.warning(f"[WARMUP] chat: {e}")

    async def _every(self, seconds: float, job: Callable[[], Awaitable[Any]], name: str) -> None:
        while True:
            await asyncio.sleep(seconds)
            try:
                await job()
            except Exception:
                logger.exception(f"[TIMER] {name} failed")

    async def refresh(self) -> None:
        """Conditional refresh of both sources. Failures keep the previous state."""
        try:
            await self.knowledge.load(force=False)
        except AssistantError as e:
            logger.warning(f"[KB] Refresh failed: {e}")
        try:
            await self.instructions.load(force=False)
        except AssistantError as e:
            logger.warning(f"[PROMPT] Refresh failed: {e}")

    async def _sweep(self) -> None:
        self.sessions.sweep()

    # -- admin -------------------------------------------------------------

    async def reload_knowledge(self) -> Dict[str, Any]:
        result = await self.knowledge.load(force=True)
        return {"ok": True, "changed": result is LoadResult.CHANGED, **self.knowledge.status()}

    async def reload_instructions(self) -> Dict[str, Any]:
        result = await self.instructions.load(force=True)
        return {"ok": True, "changed": result is LoadResult.CHANGED, **self.instructions.status()}

    def debug_config(self) -> Dict[str, Any]:
        return {"ok": True, **self.knowledge.debug_info(), **self.instructions.debug_info()}

    # -- requests ----------------------------------------------------------

    async def answer(
        self,
        query: Any,
        session_id: Optional[str] = None,
        client_ip: str = "",
        user_agent: str = "",
    ) -> Dict[str, Any]:
        """Answer one question.

        Raises:
            ValidationError: Missing or blank query.
            NotReadyError: No knowledge snapshot has loaded yet.
            ProviderError: Embedding or generation failed.
        """
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Missing 'query'.")
        query = query.strip()
        kb = self.knowledge.require_snapshot()

        sid = self.sessions.identify(session_id, client_ip, user_agent)
        session = self.sessions.get_or_create(sid)

        decision = self.policy.decide(query, session, kb)
        if decision.action is Action.RETRIEVE:
            answer = await self.composer.compose(query, session, kb)
            self.sessions.append_turn(session, "user", query)
            self.sessions.append_turn(session, "assistant", answer.text)
        else:
            answer = Answer(text=decision.response, sources=list(decision.sources))

        return {"response": answer.text, "sources": answer.sources, "sessionId": sid}
