#!/usr/bin/env python3
"""
Tests for flattening a knowledge snapshot into chunks
"""
from conftest import sample_kb
from kartbot.models.knowledge import KnowledgeSnapshot
from kartbot.rag.chunker import extract_chunks


def test_extraction_is_deterministic():
    kb = KnowledgeSnapshot(data=sample_kb(), etag='"v1"')
    first = extract_chunks(kb)
    second = extract_chunks(kb)
    assert first == second
    assert [c.id for c in first] == [c.id for c in extract_chunks(KnowledgeSnapshot(data=sample_kb()))]


def test_chunk_ids_and_order():
    chunks = extract_chunks(KnowledgeSnapshot(data=sample_kb()))
    assert [c.id for c in chunks] == [
        "opening",
        "venue_mile_end",
        "venue_gillingham",
        "track",
        "requirements",
        "equipment",
        "sessions",
        "duration",
        "deals",
        "promos",
        "f1",
        "tracking",
        "hint_parking",
        "hint_birthday",
    ]
    assert len({c.id for c in chunks}) == len(chunks)


def test_chunk_text_and_urls():
    chunks = {c.id: c for c in extract_chunks(KnowledgeSnapshot(data=sample_kb()))}
    assert chunks["opening"].text == "Open 7 days. Hours: 10:00-22:00"
    assert chunks["equipment"].text == "Included: helmet, balaclava, race suit."
    assert chunks["equipment"].source_url == "https://www.kartingcentral.co.uk/safety"
    assert "Up to 12 laps/session." in chunks["sessions"].text
    assert chunks["deals"].text.endswith("Tiers: 1-4 £12; 5-8 £11.")
    assert chunks["tracking"].source_url == "https://www.kartingcentral.co.uk/dashboard"
    assert chunks["hint_parking"].text == "Hint: Free parking is available on site."
    assert "1 Mile End Road, London" in chunks["venue_mile_end"].text


def test_optional_sections_produce_no_chunk():
    data = sample_kb()
    for name in ("track_and_karts", "requirements", "deals", "promotions", "f1_simulator"):
        del data[name]
    del data["sessions"]["duration_guidance"]
    ids = [c.id for c in extract_chunks(KnowledgeSnapshot(data=data))]
    for missing in ("track", "requirements", "deals", "promos", "f1", "duration"):
        assert missing not in ids
    assert ids[0] == "opening"


def test_ids_stable_when_facts_change():
    before = extract_chunks(KnowledgeSnapshot(data=sample_kb(), etag='"v1"'))
    changed = sample_kb(opening={"days": "Open 6 days.", "hours": "12:00-20:00"})
    after = extract_chunks(KnowledgeSnapshot(data=changed, etag='"v2"'))

    assert [c.id for c in before] == [c.id for c in after]
    assert before[0].text != after[0].text


def test_missing_page_url_falls_back_to_home():
    data = sample_kb()
    del data["site"]["urls"]["safety"]
    chunks = {c.id: c for c in extract_chunks(KnowledgeSnapshot(data=data))}
    assert chunks["equipment"].source_url == "https://www.kartingcentral.co.uk/"


def test_sections_without_content_produce_no_blank_chunks():
    data = sample_kb(
        promotions={"note": "x"},
        deals={"note": "y", "summary": "   "},
        f1_simulator={"offer": "50% off."},
    )
    chunks = extract_chunks(KnowledgeSnapshot(data=data))
    ids = [c.id for c in chunks]
    assert "deals" not in ids
    assert "promos" not in ids
    assert all(c.text.strip() for c in chunks)
    f1 = next(c for c in chunks if c.id == "f1")
    assert "None" not in f1.text
