"""Knowledge base data model.

`KnowledgeSnapshot` wraps one fetched knowledge-base document together with
the change token it was served under. `Chunk` and `VectorEntry` are the
retrievable fragments derived from a snapshot and their embeddings.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Venue:
    """A physical track location listed in the knowledge base."""
    id: str
    name: str
    aliases: Tuple[str, ...] = ()
    address: str = ""
    description: str = ""


@dataclass(frozen=True)
class Hint:
    """A canned answer with the keywords that trigger it."""
    intent: str
    keywords: Tuple[str, ...]
    answer: str


@dataclass(frozen=True)
class KnowledgeSnapshot:
    """One immutable version of the knowledge base.

    Attributes:
        data: The parsed JSON document as served by the source.
        etag: ETag response header of the fetch, if any.
        last_modified: Last-Modified response header of the fetch, if any.
    """
    data: Dict[str, Any]
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    venues: Tuple[Venue, ...] = field(init=False)
    hints: Tuple[Hint, ...] = field(init=False)

    def __post_init__(self):
        venues = tuple(
            Venue(
                id=str(v["id"]),
                name=str(v["name"]),
                aliases=tuple(str(a) for a in v.get("aliases") or ()),
                address=str(v.get("address") or ""),
                description=str(v.get("description") or ""),
            )
            for v in self.data.get("venues") or ()
        )
        hints = tuple(
            Hint(
                intent=str(h["intent"]),
                keywords=tuple(str(k) for k in h.get("keywords") or ()),
                answer=str(h["answer"]),
            )
            for h in self.data.get("fast_answers") or ()
        )
        # frozen dataclass: derived fields are set once here
        object.__setattr__(self, "venues", venues)
        object.__setattr__(self, "hints", hints)

    @property
    def urls(self) -> Dict[str, str]:
        return self.data["site"]["urls"]

    def url(self, name: str) -> str:
        """Return a site URL by name, falling back to the home page."""
        return self.urls.get(name) or self.urls["home"]

    def section(self, name: str) -> Dict[str, Any]:
        return self.data.get(name) or {}

    def venue(self, venue_id: str) -> Optional[Venue]:
        for venue in self.venues:
            if venue.id == venue_id:
                return venue
        return None


@dataclass(frozen=True)
class Chunk:
    id: str
    text: str
    source_url: str


@dataclass(frozen=True)
class VectorEntry:
    chunk_id: str
    embedding: Any  # numpy.ndarray, float64
    chunk: Chunk


@dataclass(frozen=True)
class ScoredEntry:
    entry: VectorEntry
    score: float

    def to_source(self) -> Dict[str, str]:
        return {"id": self.entry.chunk_id, "url": self.entry.chunk.source_url}
