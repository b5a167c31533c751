"""
Chunker module for flattening a knowledge snapshot into retrievable chunks.

Each fact category of the knowledge base becomes one short chunk with a
stable id (the category name, or `venue_<id>` / `hint_<intent>` for list
entries) and the site URL that backs it. The mapping is pure: the same
snapshot always yields the same ids, texts and order.

Optional sections that are missing from the snapshot produce no chunk.
"""

import logging
from typing import Any, List

from kartbot.models.knowledge import Chunk, KnowledgeSnapshot

logger = logging.getLogger(__name__)


def _join(items: Any) -> str:
    if isinstance(items, (list, tuple)):
        return ", ".join(str(i) for i in items)
    return str(items)


def _yes_no(value: Any) -> str:
    return "yes" if value else "no"


def _opening_chunk(kb: KnowledgeSnapshot) -> Chunk:
    opening = kb.section("opening")
    return Chunk(
        id="opening",
        text=f"{opening.get('days', '')} Hours: {opening.get('hours', '')}".strip(),
        source_url=kb.url("home"),
    )


def _venue_chunks(kb: KnowledgeSnapshot) -> List[Chunk]:
    chunks = []
    for venue in kb.venues:
        parts = [f"{venue.name} track."]
        if venue.description:
            parts.append(venue.description)
        if venue.address:
            parts.append(f"Address: {venue.address}.")
        chunks.append(Chunk(
            id=f"venue_{venue.id}",
            text=" ".join(parts),
            source_url=kb.url("home"),
        ))
    return chunks


def _track_chunk(kb: KnowledgeSnapshot) -> List[Chunk]:
    track = kb.section("track_and_karts")
    if not track:
        return []
    return [Chunk(
        id="track",
        text=(
            f"Indoor: {track.get('indoor')}. Kart: {track.get('kart_type')}. "
            f"Top speed up to {track.get('top_speed_mph')} mph. "
            f"Max {track.get('max_karts_on_track')} karts."
        ),
        source_url=kb.url("home"),
    )]


def _requirements_chunk(kb: KnowledgeSnapshot) -> List[Chunk]:
    req = kb.section("requirements")
    if not req:
        return []
    return [Chunk(
        id="requirements",
        text=(
            f"Adult min height: {req.get('adult_min_height_cm')} cm. "
            f"Junior min height: {req.get('junior_min_height_cm')} cm. "
            f"Shoes count toward height: {_yes_no(req.get('shoes_count_towards_height'))}."
        ),
        source_url=kb.url("safety"),
    )]


def _equipment_chunk(kb: KnowledgeSnapshot) -> Chunk:
    equipment = kb.section("equipment")
    return Chunk(
        id="equipment",
        text=f"Included: {_join(equipment.get('included', []))}.",
        source_url=kb.url("safety"),
    )


def _session_chunks(kb: KnowledgeSnapshot) -> List[Chunk]:
    sessions = kb.section("sessions")
    chunks = [Chunk(
        id="sessions",
        text=(
            f"Per ticket: {sessions.get('per_ticket_includes')}. "
            f"Up to {sessions.get('laps_per_session_up_to')} laps/session."
        ),
        source_url=kb.url("book_tickets"),
    )]
    if sessions.get("duration_guidance"):
        chunks.append(Chunk(
            id="duration",
            text=f"Duration guide: {sessions['duration_guidance']}",
            source_url=kb.url("book_tickets"),
        ))
    return chunks


def _deals_chunk(kb: KnowledgeSnapshot) -> List[Chunk]:
    deals = kb.section("deals")
    if not deals:
        return []
    parts = []
    summary = str(deals.get("summary") or "").strip()
    if summary:
        parts.append(summary)
    tiers = deals.get("tiers") or []
    if tiers:
        tier_text = "; ".join(f"{t.get('group')} £{t.get('price_gbp')}" for t in tiers)
        parts.append(f"Tiers: {tier_text}.")
    if not parts:
        return []
    return [Chunk(id="deals", text=" ".join(parts), source_url=kb.url("book_tickets"))]


def _promos_chunk(kb: KnowledgeSnapshot) -> List[Chunk]:
    promos = kb.section("promotions")
    if not promos:
        return []
    text = " ".join(str(r) for r in promos.get("rules") or [] if str(r).strip())
    if not text:
        return []
    return [Chunk(id="promos", text=text, source_url=kb.url("terms"))]


def _f1_chunk(kb: KnowledgeSnapshot) -> List[Chunk]:
    f1 = kb.section("f1_simulator")
    if not f1:
        return []
    text = f"F1 simulator at {f1['location']}." if f1.get("location") else "F1 simulator available."
    if f1.get("offer"):
        text += f" {f1['offer']}"
    return [Chunk(id="f1", text=text, source_url=kb.url("home"))]


def _tracking_chunk(kb: KnowledgeSnapshot) -> List[Chunk]:
    if "customer_dashboard" not in kb.urls:
        return []
    return [Chunk(
        id="tracking",
        text="Tracking codes for managing tickets. Gifting available via Customer Dashboard.",
        source_url=kb.urls["customer_dashboard"],
    )]


def _hint_chunks(kb: KnowledgeSnapshot) -> List[Chunk]:
    return [
        Chunk(id=f"hint_{hint.intent}", text=f"Hint: {hint.answer}", source_url=kb.url("home"))
        for hint in kb.hints
    ]


def extract_chunks(kb: KnowledgeSnapshot) -> List[Chunk]:
    """Flatten a knowledge snapshot into retrievable chunks.

    Args:
        kb: The snapshot to flatten.

    Returns:
        List of chunks in a fixed category order: opening, venues, track,
        requirements, equipment, sessions (+ duration), deals, promos, f1,
        tracking, hints.
    """
    chunks: List[Chunk] = [_opening_chunk(kb)]
    chunks.extend(_venue_chunks(kb))
    chunks.extend(_track_chunk(kb))
    chunks.extend(_requirements_chunk(kb))
    chunks.append(_equipment_chunk(kb))
    chunks.extend(_session_chunks(kb))
    chunks.extend(_deals_chunk(kb))
    chunks.extend(_promos_chunk(kb))
    chunks.extend(_f1_chunk(kb))
    chunks.extend(_tracking_chunk(kb))
    chunks.extend(_hint_chunks(kb))

    logger.info(f"[CHUNKER] Created {len(chunks)} chunks from snapshot ({kb.etag or 'no-etag'})")
    return chunks
