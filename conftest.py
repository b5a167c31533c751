"""
Shared test doubles: a sample knowledge base, a deterministic keyword
embedder, a recording generator and an httpx mock source.
"""
import copy
import json
import re
from typing import Dict, List, Optional

import httpx
import pytest

from kartbot.assistant import AssistantService
from kartbot.errors import ProviderError
from kartbot.session_store import SessionStore

KB_URL = "https://kb.example.com/knowledge.json"
PROMPT_URL = "https://kb.example.com/instructions.md"

SAMPLE_KB = {
    "site": {
        "urls": {
            "home": "https://www.kartingcentral.co.uk/",
            "safety": "https://www.kartingcentral.co.uk/safety",
            "book_tickets": "https://www.kartingcentral.co.uk/book",
            "terms": "https://www.kartingcentral.co.uk/terms",
            "customer_dashboard": "https://www.kartingcentral.co.uk/dashboard",
        }
    },
    "opening": {"days": "Open 7 days.", "hours": "10:00-22:00"},
    "venues": [
        {
            "id": "mile_end",
            "name": "Mile End",
            "aliases": ["london"],
            "address": "1 Mile End Road, London",
            "description": "Two-level indoor electric track.",
        },
        {
            "id": "gillingham",
            "name": "Gillingham",
            "address": "Gillingham Business Park, Kent",
            "description": "Indoor electric track with F1 simulator.",
        },
    ],
    "track_and_karts": {
        "indoor": "yes",
        "kart_type": "electric",
        "top_speed_mph": 40,
        "max_karts_on_track": 12,
    },
    "requirements": {
        "adult_min_height_cm": 152,
        "junior_min_height_cm": 120,
        "shoes_count_towards_height": False,
    },
    "equipment": {"included": ["helmet", "balaclava", "race suit"]},
    "sessions": {
        "per_ticket_includes": "3 sessions",
        "laps_per_session_up_to": 12,
        "duration_guidance": "1 ticket is about 1 hour on site.",
    },
    "deals": {
        "summary": "Session 2 & 3 discounted (pre-book by phone).",
        "tiers": [{"group": "1-4", "price_gbp": 12}, {"group": "5-8", "price_gbp": 11}],
    },
    "promotions": {"rules": ["Promotions do not apply on Saturdays."]},
    "f1_simulator": {"location": "Gillingham", "offer": "50% off with karting tickets."},
    "fast_answers": [
        {
            "intent": "parking",
            "keywords": ["parking", "car park"],
            "answer": "Free parking is available on site.",
        },
        {
            "intent": "birthday",
            "keywords": ["birthday"],
            "answer": "Birthday packages start from $20 per driver.",
        },
    ],
}

VOCABULARY = [
    "open", "hour", "mile", "end", "gillingham", "track", "kart", "speed",
    "height", "helmet", "equipment", "lap", "session", "ticket", "book",
    "saturday", "price", "f1", "simulator", "parking", "birthday",
    "promotion", "tracking", "dashboard",
]


def sample_kb(**overrides) -> Dict:
    data = copy.deepcopy(SAMPLE_KB)
    data.update(overrides)
    return data


def _tokens(text: str) -> List[str]:
    out = []
    for token in re.findall(r"[a-z0-9]+", text.lower()):
        if len(token) > 3 and token.endswith("s"):
            token = token[:-1]
        out.append(token)
    return out


def keyword_vector(text: str) -> List[float]:
    tokens = _tokens(text)
    return [float(tokens.count(word)) for word in VOCABULARY]


class KeywordEmbedder:
    """Deterministic bag-of-words embedder that records its calls."""

    def __init__(self):
        self.batch_calls: List[List[str]] = []
        self.query_calls: List[str] = []
        self.fail = False

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        if self.fail:
            raise ProviderError("embedding service down")
        self.batch_calls.append(list(texts))
        return [keyword_vector(t) for t in texts]

    async def embed_query(self, query: str) -> List[float]:
        if self.fail:
            raise ProviderError("embedding service down")
        self.query_calls.append(query)
        return keyword_vector(query)


class RecordingGenerator:
    def __init__(self, reply: str = "Here you go."):
        self.reply = reply
        self.calls: List[List[Dict[str, str]]] = []
        self.error: Optional[Exception] = None

    async def generate(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MockSource:
    """Serves the knowledge base and instructions with ETag support."""

    def __init__(self, kb: Optional[Dict] = None, prompt: Optional[str] = None):
        self.kb_body = json.dumps(kb if kb is not None else SAMPLE_KB)
        self.kb_etag = '"v1"'
        self.kb_status = 200
        self.prompt_body = prompt
        self.requests: List[httpx.Request] = []

    def set_kb(self, body, etag: str) -> None:
        self.kb_body = body if isinstance(body, str) else json.dumps(body)
        self.kb_etag = etag

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) == PROMPT_URL:
            if self.prompt_body is None:
                return httpx.Response(404)
            return httpx.Response(200, text=self.prompt_body, headers={"ETag": '"p1"'})
        if self.kb_status != 200:
            return httpx.Response(self.kb_status)
        if request.headers.get("If-None-Match") == self.kb_etag:
            return httpx.Response(304)
        return httpx.Response(
            200,
            content=self.kb_body.encode("utf-8"),
            headers={"ETag": self.kb_etag, "Content-Type": "application/json"},
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def make_service(source: Optional[MockSource] = None, prompt_url: Optional[str] = None, clock=None):
    source = source or MockSource()
    embedder = KeywordEmbedder()
    generator = RecordingGenerator()
    service = AssistantService(
        embedder=embedder,
        generator=generator,
        http_client=source.client(),
        kb_url=KB_URL,
        prompt_url=prompt_url,
        sessions=SessionStore(timeout_seconds=1800, max_turns=12, clock=clock or FakeClock()),
        warmup_providers=False,
    )
    return service, source, embedder, generator


@pytest.fixture
def clock():
    return FakeClock()
