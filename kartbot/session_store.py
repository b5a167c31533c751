"""
In-memory conversation sessions.

A session keeps the recent turns of one conversation and the slots resolved
so far (track, day). Sessions are not persisted; they expire after an idle
timeout and are removed by a periodic sweep.
"""
import hashlib
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Deque, Dict, List, Optional

from kartbot import config

if TYPE_CHECKING:
    from kartbot.dialogue_policy import Topic

logger = logging.getLogger(__name__)


@dataclass
class Turn:
    role: str  # "user" or "assistant"
    text: str


@dataclass
class Slots:
    track: Optional[str] = None
    day: Optional[str] = None

    def update(self, track: Optional[str] = None, day: Optional[str] = None) -> None:
        """Forward-only update: a new value overwrites, None never clears."""
        if track:
            self.track = track
        if day:
            self.day = day


@dataclass
class Session:
    session_id: str
    last_activity_at: float
    turns: Deque[Turn]
    slots: Slots = field(default_factory=Slots)
    # topic of an unanswered clarifying question, if any
    pending_topic: Optional["Topic"] = None

    def recent_turns(self, limit: Optional[int] = None) -> List[Turn]:
        turns = list(self.turns)
        return turns[-limit:] if limit else turns


def derive_session_id(client_ip: str, user_agent: str) -> str:
    """Heuristic conversation identity from network address and agent string.

    Only used when the caller supplies no explicit session id. Two users
    behind one proxy or NAT with the same browser collide into one session,
    and a client whose address or agent changes mid-conversation loses its
    session. No stronger identity is available without client cooperation.
    """
    raw = f"{client_ip or ''}|{user_agent or ''}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]


class SessionStore:
    def __init__(
        self,
        timeout_seconds: int = config.SESSION_TIMEOUT_SECONDS,
        max_turns: int = config.SESSION_MAX_TURNS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_turns = max_turns
        self.clock = clock
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def identify(self, explicit_id: Optional[str], client_ip: str = "", user_agent: str = "") -> str:
        if explicit_id and explicit_id.strip():
            return explicit_id.strip()
        return derive_session_id(client_ip, user_agent)

    def _expired(self, session: Session, now: float) -> bool:
        return now - session.last_activity_at > self.timeout_seconds

    def get_or_create(self, session_id: str) -> Session:
        """Return the live session for an id, or a fresh one.

        A session idle past the timeout is evicted and replaced, so its
        slots and history are gone.
        """
        now = self.clock()
        session = self._sessions.get(session_id)
        if session is not None and not self._expired(session, now):
            session.last_activity_at = now
            return session

        if session is not None:
            logger.info(f"[SESSIONS] Session {session_id} expired, starting fresh")
        session = Session(
            session_id=session_id,
            last_activity_at=now,
            turns=deque(maxlen=self.max_turns),
        )
        self._sessions[session_id] = session
        return session

    def append_turn(self, session: Session, role: str, text: str) -> None:
        # deque(maxlen) drops from the oldest end
        session.turns.append(Turn(role=role, text=text))
        session.last_activity_at = self.clock()

    def sweep(self) -> int:
        """Remove every session idle past the timeout.

        Returns:
            Number of sessions removed.
        """
        now = self.clock()
        expired = [sid for sid, s in self._sessions.items() if self._expired(s, now)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"[SESSIONS] Swept {len(expired)} idle sessions, {len(self._sessions)} live")
        return len(expired)
