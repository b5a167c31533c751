"""
Dialogue policy: decide how to handle one incoming question.

Every query gets exactly one of three outcomes:

- FAST_ROUTE: a canned, context-free answer (venue listing, ticket
  management, F1 simulator, or a knowledge-base hint). Checked before any
  slot logic and independent of slot state.
- CLARIFY: the topic needs a track (and, for day-dependent tracks, a day)
  that the session does not know yet. The matching question is returned and
  no retrieval happens.
- RETRIEVE: go on to retrieval + generation.

Slots are filled from the text of every query, before routing, and only
ever move forward.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from kartbot import config
from kartbot.models.knowledge import KnowledgeSnapshot
from kartbot.session_store import Session, SessionStore, Slots
from kartbot.utils.text_transforms import apply_transforms

logger = logging.getLogger(__name__)

Source = Dict[str, str]


class Topic(Enum):
    VENUE_LISTING = "venue_listing"
    TICKET_MANAGEMENT = "ticket_management"
    F1_SIMULATOR = "f1_simulator"
    HINT = "hint"
    BOOKING = "booking"
    GENERAL = "general"
    UNMATCHED = "unmatched"


class DialogueState(Enum):
    NO_TRACK = "no_track"
    TRACK_KNOWN_DAY_UNKNOWN = "track_known_day_unknown"
    FULLY_RESOLVED = "fully_resolved"


class Action(Enum):
    FAST_ROUTE = "fast_route"
    CLARIFY = "clarify"
    RETRIEVE = "retrieve"


@dataclass(frozen=True)
class Decision:
    action: Action
    topic: Topic
    response: Optional[str] = None
    sources: Tuple[Source, ...] = ()


WEEKDAYS = {
    "monday": ("monday", "mon"),
    "tuesday": ("tuesday", "tue", "tues"),
    "wednesday": ("wednesday", "wed"),
    "thursday": ("thursday", "thu", "thur", "thurs"),
    "friday": ("friday", "fri"),
    # "sat" and "sun" are ordinary words (sat nav, the sun)
    "saturday": ("saturday",),
    "sunday": ("sunday",),
}

VENUE_LISTING_PHRASES = (
    "where are your tracks", "where are the tracks", "which tracks do you have",
    "what tracks do you have", "how many tracks", "where are your venues",
    "which venues do you have", "where are your locations", "what locations do you have",
    "where are you based", "where are you located",
)
TICKET_PHRASES = (
    "tracking code", "tracking codes", "customer dashboard", "manage my ticket",
    "manage my tickets", "manage my booking", "my tickets", "gift my ticket",
    "gift a ticket", "gift tickets", "gifting tickets", "transfer my ticket",
)
F1_PHRASES = ("f1", "simulator", "sim racing", "racing sim")


def _normalize(text: str) -> str:
    return " ".join(re.sub(r"[^\w\s£'-]", " ", text.lower()).split())


def _find(text: str, phrase: str) -> Optional[int]:
    if not phrase:
        return None
    match = re.search(r"\b" + re.escape(phrase.lower()) + r"\b", text)
    return match.start() if match else None


def mentions(text: str, phrases: Iterable[str]) -> bool:
    """Whole-word phrase match against normalized text."""
    return any(_find(text, p) is not None for p in phrases)


def extract_track(text: str, kb: KnowledgeSnapshot) -> Optional[str]:
    """Return the id of the venue named in the text, the latest mention winning."""
    best: Optional[Tuple[int, str]] = None
    for venue in kb.venues:
        names = (venue.name, venue.id.replace("_", " "), venue.id) + venue.aliases
        for name in names:
            pos = _find(text, _normalize(name))
            if pos is not None and (best is None or pos > best[0]):
                best = (pos, venue.id)
    return best[1] if best else None


def extract_day(text: str) -> Optional[str]:
    best: Optional[Tuple[int, str]] = None
    for day, forms in WEEKDAYS.items():
        for form in forms:
            pos = _find(text, form)
            if pos is not None and (best is None or pos > best[0]):
                best = (pos, day)
    return best[1] if best else None


def dialogue_state(slots: Slots, day_dependent_tracks: Sequence[str]) -> DialogueState:
    if not slots.track:
        return DialogueState.NO_TRACK
    if slots.track in day_dependent_tracks and not slots.day:
        return DialogueState.TRACK_KNOWN_DAY_UNKNOWN
    return DialogueState.FULLY_RESOLVED


# ---------------------------------------------------------------------------
# Fast routes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FastRoute:
    topic: Topic
    matches: Callable[[str, KnowledgeSnapshot], bool]
    answer: Callable[[KnowledgeSnapshot], Tuple[str, Tuple[Source, ...]]]


def _venue_listing(kb: KnowledgeSnapshot) -> Tuple[str, Tuple[Source, ...]]:
    lines = [f"We have {len(kb.venues)} tracks:"]
    for venue in kb.venues:
        line = f"- **{venue.name}**"
        if venue.address:
            line += f": {venue.address}"
        lines.append(line)
    lines.append(f"\nBook your session here: {kb.url('book_tickets')}")
    sources = tuple({"id": f"venue_{v.id}", "url": kb.url("home")} for v in kb.venues)
    return "\n".join(lines), sources


def _ticket_management(kb: KnowledgeSnapshot) -> Tuple[str, Tuple[Source, ...]]:
    url = kb.url("customer_dashboard")
    text = (
        "You can manage your existing tickets in the Customer Dashboard using your "
        f"tracking code, including gifting tickets to someone else: {url}"
    )
    return text, ({"id": "tracking", "url": url},)


def _f1_simulator(kb: KnowledgeSnapshot) -> Tuple[str, Tuple[Source, ...]]:
    f1 = kb.section("f1_simulator")
    if f1.get("location"):
        text = f"Our F1 simulator is at {f1['location']}."
    else:
        text = "We have an F1 simulator."
    if f1.get("offer"):
        text += f" {f1['offer']}"
    return text, ({"id": "f1", "url": kb.url("home")},)


FAST_ROUTES: List[FastRoute] = [
    FastRoute(
        Topic.VENUE_LISTING,
        lambda q, kb: mentions(q, VENUE_LISTING_PHRASES) and classify(q) is not Topic.BOOKING,
        _venue_listing,
    ),
    FastRoute(Topic.TICKET_MANAGEMENT, lambda q, kb: mentions(q, TICKET_PHRASES), _ticket_management),
    FastRoute(
        Topic.F1_SIMULATOR,
        lambda q, kb: bool(kb.section("f1_simulator")) and mentions(q, F1_PHRASES),
        _f1_simulator,
    ),
]


def match_fast_route(text: str, kb: KnowledgeSnapshot) -> Optional[Decision]:
    """Return a FAST_ROUTE decision if the normalized text hits a canned topic."""
    for route in FAST_ROUTES:
        if route.matches(text, kb):
            response, sources = route.answer(kb)
            return Decision(Action.FAST_ROUTE, route.topic, apply_transforms(response), sources)

    for hint in kb.hints:
        if mentions(text, (_normalize(k) for k in hint.keywords)):
            return Decision(
                Action.FAST_ROUTE,
                Topic.HINT,
                apply_transforms(hint.answer),
                ({"id": f"hint_{hint.intent}", "url": kb.url("home")},),
            )
    return None


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

def classify(text: str) -> Topic:
    """Classify a normalized query into BOOKING, GENERAL or UNMATCHED.

    GENERAL wins over BOOKING: a general question never asks for slots.
    """
    if mentions(text, config.GENERAL_KEYWORDS):
        return Topic.GENERAL
    if mentions(text, config.BOOKING_KEYWORDS):
        return Topic.BOOKING
    return Topic.UNMATCHED


def _list_names(names: List[str]) -> str:
    if len(names) <= 1:
        return "".join(names)
    return ", ".join(names[:-1]) + " or " + names[-1]


def track_question(kb: KnowledgeSnapshot) -> str:
    return f"Which track are you asking about: {_list_names([v.name for v in kb.venues])}?"


def day_question(kb: KnowledgeSnapshot, track_id: str) -> str:
    venue = kb.venue(track_id)
    name = venue.name if venue else track_id
    return (
        f"Which day are you planning to visit {name}? "
        "Sessions and prices there depend on the day."
    )


class DialoguePolicy:
    def __init__(
        self,
        sessions: SessionStore,
        day_dependent_tracks: Sequence[str] = config.DAY_DEPENDENT_TRACKS,
    ):
        self.sessions = sessions
        self.day_dependent_tracks = tuple(day_dependent_tracks)

    def state(self, session: Session) -> DialogueState:
        return dialogue_state(session.slots, self.day_dependent_tracks)

    def _respond(self, session: Session, query: str, decision: Decision) -> Decision:
        self.sessions.append_turn(session, "user", query)
        self.sessions.append_turn(session, "assistant", decision.response)
        return decision

    def decide(self, query: str, session: Session, kb: KnowledgeSnapshot) -> Decision:
        """Route one query.

        FAST_ROUTE and CLARIFY decisions are recorded in the session history
        here. For RETRIEVE the caller records the turn once the answer exists.
        """
        text = _normalize(query)
        session.slots.update(track=extract_track(text, kb), day=extract_day(text))

        fast = match_fast_route(text, kb)
        if fast is not None:
            session.pending_topic = None
            logger.info(f"[POLICY] {session.session_id}: fast route {fast.topic.value}")
            return self._respond(session, query, fast)

        topic = classify(text)
        if topic is Topic.UNMATCHED and session.pending_topic is Topic.BOOKING:
            # a reply to our own clarifying question
            topic = Topic.BOOKING

        state = self.state(session)
        if topic is Topic.BOOKING and state is not DialogueState.FULLY_RESOLVED:
            if state is DialogueState.NO_TRACK:
                question = track_question(kb)
            else:
                question = day_question(kb, session.slots.track)
            session.pending_topic = Topic.BOOKING
            logger.info(f"[POLICY] {session.session_id}: clarify ({state.value})")
            return self._respond(session, query, Decision(Action.CLARIFY, topic, question))

        session.pending_topic = None
        logger.info(f"[POLICY] {session.session_id}: retrieve ({topic.value}, {state.value})")
        return Decision(Action.RETRIEVE, topic)
