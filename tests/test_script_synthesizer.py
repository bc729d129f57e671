"""Tests for app/core/script_synthesizer.py and the LLM helpers it relies on."""

import json

import pytest

from app.core import script_synthesizer
from app.core.errors import ExternalServiceError
from app.core.llm import strip_code_fences
from app.schemas.podcast import HostNames, PodcastOptions, Segment

from conftest import SCRIPT_RESPONSE, FakeCompletion


def test_prompt_carries_options():
    options = PodcastOptions(
        targetDuration="short",
        tone="educational",
        hostNames=HostNames(host1="Riley", host2="Sam"),
        focusGuidance="Focus on practical tips.",
        includeIntro=False,
    )
    prompt = script_synthesizer.build_podcast_script_prompt("Source text here.", options)
    assert "Riley" in prompt and "Sam" in prompt
    assert "600-900 words" in prompt
    assert "Tone: educational" in prompt
    assert "Focus on practical tips." in prompt
    assert "Skip intro" in prompt
    assert "Include a brief outro" in prompt
    assert prompt.rstrip().endswith("Return ONLY valid JSON.")
    assert "Source text here." in prompt


def test_generate_script_uses_creative_sampling():
    complete = FakeCompletion()
    script = script_synthesizer.generate_podcast_script("Content", PodcastOptions(), complete)
    assert script.title == "Why Sleep Matters"
    assert len(script.segments) == 3
    assert complete.calls[0]["temperature"] == 0.8
    assert complete.calls[0]["max_tokens"] == 4000


def test_parse_script_response_strips_code_fences():
    raw = "```json\n" + json.dumps(SCRIPT_RESPONSE) + "\n```"
    script = script_synthesizer.parse_script_response(raw)
    assert [s.speaker for s in script.segments] == ["Alex", "Jamie", "Alex"]
    assert script.segments[0].originalText == "Welcome back to the show."
    assert [s.lineNumber for s in script.segments] == [1, 2, 3]
    assert script.keyTakeaways == SCRIPT_RESPONSE["keyTakeaways"]


@pytest.mark.parametrize("raw", [
    "not json at all",
    json.dumps({"title": "No segments", "segments": []}),
    json.dumps({"segments": [{"speaker": "Alex"}]}),
])
def test_parse_script_response_rejects_bad_output(raw):
    with pytest.raises(ExternalServiceError):
        script_synthesizer.parse_script_response(raw)


def test_fix_typos_returns_correction():
    complete = FakeCompletion(response="I definitely agree.")
    assert script_synthesizer.fix_typos("I definately agree.", complete) == "I definitely agree."
    call = complete.calls[0]
    assert call["temperature"] == 0.1
    assert call["max_tokens"] >= 64
    assert call["user"] == "I definately agree."


def test_fix_typos_falls_back_on_error():
    """A failing provider never breaks the pass."""
    complete = FakeCompletion(error=RuntimeError("rate limited"))
    assert script_synthesizer.fix_typos("Teh text.", complete) == "Teh text."


def test_fix_typos_falls_back_on_empty_answer():
    complete = FakeCompletion(response="   ")
    assert script_synthesizer.fix_typos("Teh text.", complete) == "Teh text."


def test_fix_typos_keeps_original_when_tags_change():
    complete = FakeCompletion(response="[laughs] That is funny.")
    assert script_synthesizer.fix_typos("[laughing] That is funy.", complete) == "[laughing] That is funy."


def test_fix_segment_typos_marks_changes():
    complete = FakeCompletion(response=lambda text: text.replace("teh", "the"))
    segments = [
        Segment(speaker="Alex", text="teh start", originalText="teh start"),
        Segment(speaker="Jamie", text="all good", originalText="all good"),
    ]
    fixed = script_synthesizer.fix_segment_typos(segments, complete)
    assert [s.text for s in fixed] == ["the start", "all good"]
    assert [s.hasChanges for s in fixed] == [True, False]
    assert fixed[0].originalText == "teh start"


def test_strip_code_fences():
    assert strip_code_fences("```json\n{\"a\": 1}\n```") == "{\"a\": 1}"
    assert strip_code_fences("```\n[1]\n```") == "[1]"
    assert strip_code_fences("  {\"a\": 1}  ") == "{\"a\": 1}"
