#!/usr/bin/env python3
"""
Tests for answer post-processing
"""
from kartbot.utils.text_transforms import (
    ANSWER_TRANSFORMS,
    apply_transforms,
    enforce_gbp,
    normalize_whitespace,
    strip_code_fence,
    strip_html,
)


def test_enforce_gbp():
    assert enforce_gbp("Tickets are $12 or $11 for groups") == "Tickets are £12 or £11 for groups"
    assert enforce_gbp("£12 already") == "£12 already"
    assert enforce_gbp("") == ""


def test_strip_code_fence():
    assert strip_code_fence("```markdown\n**Open** daily\n```") == "**Open** daily"
    assert strip_code_fence("Use `code` inline") == "Use `code` inline"


def test_strip_html_keeps_markdown():
    assert strip_html("<p>Hello<br/>there</p>") == "Hello\nthere"
    assert strip_html("**Bold** and [link](https://x/)") == "**Bold** and [link](https://x/)"
    assert strip_html("Heights < 120cm and > 100cm") == "Heights < 120cm and > 100cm"


def test_normalize_whitespace():
    assert normalize_whitespace("  a  \n\n\n\nb\n") == "a\n\nb"


def test_transforms_run_in_order():
    assert [t.__name__ for t in ANSWER_TRANSFORMS] == [
        "strip_code_fence",
        "strip_html",
        "enforce_gbp",
        "normalize_whitespace",
    ]
    raw = "```\n<b>From $20</b> per driver\n\n\n\nSee you soon\n```"
    assert apply_transforms(raw) == "From £20 per driver\n\nSee you soon"


def test_custom_transform_list():
    assert apply_transforms("$5", [enforce_gbp, str.upper]) == "£5"
    assert apply_transforms("abc", []) == "abc"
