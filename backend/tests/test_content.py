"""Tests for typed step content parsing."""

from app.services.onboarding.content import (
    HtmlContent,
    InteractiveContent,
    TextContent,
    VideoContent,
    content_kind,
    content_preview,
    parse_step_content,
)


def test_parses_each_kind():
    assert isinstance(parse_step_content({"kind": "text", "body": "Hello"}), TextContent)
    assert isinstance(parse_step_content({"kind": "html", "html": "<p>Hi</p>"}), HtmlContent)
    assert isinstance(parse_step_content({"kind": "interactive", "component": "tour"}), InteractiveContent)
    assert isinstance(parse_step_content({"kind": "video", "url": "https://x/v.mp4"}), VideoContent)


def test_invalid_content_dropped():
    assert parse_step_content({"kind": "pdf", "url": "x"}) is None
    assert parse_step_content({"kind": "text"}) is None
    assert parse_step_content(None) is None
    assert parse_step_content({}) is None


def test_kind():
    content = parse_step_content({"kind": "interactive", "component": "tour", "config": {"steps": 3}})
    assert content.config == {"steps": 3}
    assert content_kind(content) == "interactive"
    assert content_kind(None) is None


def test_preview():
    assert content_preview(TextContent(body="Short")) == "Short"
    assert content_preview(VideoContent(url="https://x/v.mp4")) == "Video: https://x/v.mp4"
    assert content_preview(InteractiveContent(component="tour")) == "Interactive: tour"
    long_text = content_preview(TextContent(body="x" * 500), max_length=20)
    assert len(long_text) == 20
    assert long_text.endswith("...")
