"""
Answer composition: retrieval context + prompt assembly + generation.

Embeds the user question (with recent conversation for context-aware
retrieval), formats the top chunks as numbered, attributed notes, builds the
chat messages and post-processes the generated reply.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from kartbot import config
from kartbot.errors import ProviderError
from kartbot.knowledge_store import InstructionStore
from kartbot.llm_client import GenerationProvider, Message
from kartbot.models.knowledge import KnowledgeSnapshot, ScoredEntry
from kartbot.rag.vector_index import VectorIndex
from kartbot.session_store import Session
from kartbot.utils.text_transforms import apply_transforms

logger = logging.getLogger(__name__)

# Number of recent turns folded into the retrieval query
RETRIEVAL_CONTEXT_TURNS = 4
# Number of recent turns replayed to the model
HISTORY_TURNS = 8

OUTPUT_DIRECTIVES = """Instructions:
- Use the reference notes for facts and links. Never state a price, time, height or policy that is not in the notes; if it is missing, say you'll check and point to booking or the Customer Dashboard.
- Prices are always in GBP (£).
- Format the answer in Markdown only. No HTML and no code blocks."""


@dataclass
class Answer:
    text: str
    sources: List[Dict[str, str]]


def build_retrieval_query(query: str, session: Session) -> str:
    turns = session.recent_turns(RETRIEVAL_CONTEXT_TURNS)
    conversation_context = "\n".join(t.text for t in turns if t.role == "user")
    if conversation_context:
        return f"{conversation_context}\n\nCurrent message: {query}"
    return query


def format_context(hits: List[ScoredEntry]) -> str:
    """Format hits as `#n [id] text (URL: url)` blocks."""
    parts = []
    for i, hit in enumerate(hits, start=1):
        chunk = hit.entry.chunk
        url = f" (URL: {chunk.source_url})" if chunk.source_url else ""
        parts.append(f"#{i} [{chunk.id}] {chunk.text}{url}")
    return "\n\n".join(parts)


def slot_note(session: Session, kb: Optional[KnowledgeSnapshot]) -> Optional[str]:
    slots = session.slots
    if not slots.track and not slots.day:
        return None
    details = []
    if slots.track:
        venue = kb.venue(slots.track) if kb else None
        details.append(f"track: {venue.name if venue else slots.track}")
    if slots.day:
        details.append(f"day: {slots.day.capitalize()}")
    return "Known details from this conversation (do not ask for them again): " + ", ".join(details) + "."


class AnswerComposer:
    def __init__(
        self,
        index: VectorIndex,
        generator: GenerationProvider,
        instructions: InstructionStore,
        top_k: int = config.RETRIEVE_TOP_K,
    ):
        self.index = index
        self.generator = generator
        self.instructions = instructions
        self.top_k = top_k

    async def build_context(self, query: str, session: Session) -> Tuple[str, List[ScoredEntry]]:
        hits = await self.index.retrieve(build_retrieval_query(query, session), k=self.top_k)
        return format_context(hits), hits

    def build_messages(
        self,
        query: str,
        session: Session,
        context: str,
        kb: Optional[KnowledgeSnapshot] = None,
    ) -> List[Message]:
        messages: List[Message] = [{"role": "system", "content": self.instructions.system_prompt()}]
        note = slot_note(session, kb)
        if note:
            messages.append({"role": "system", "content": note})
        for turn in session.recent_turns(HISTORY_TURNS):
            messages.append({"role": turn.role, "content": turn.text})
        messages.append({
            "role": "user",
            "content": (
                f"User question: {query}\n\n"
                f"Here are reference notes:\n{context or '(none)'}\n\n"
                f"{OUTPUT_DIRECTIVES}"
            ),
        })
        return messages

    async def compose(self, query: str, session: Session, kb: Optional[KnowledgeSnapshot] = None) -> Answer:
        """Retrieve context, generate and post-process an answer.

        Raises:
            ProviderError: Embedding or generation failed, or the model
                returned nothing usable.
        """
        context, hits = await self.build_context(query, session)
        messages = self.build_messages(query, session, context, kb)

        raw = await self.generator.generate(messages)
        text = apply_transforms(raw or "")
        if not text:
            raise ProviderError("Generation returned an empty reply")

        logger.info(f"[COMPOSER] {session.session_id}: answered with {len(hits)} context chunks")
        return Answer(text=text, sources=[hit.to_source() for hit in hits])
