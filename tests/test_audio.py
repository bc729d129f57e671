"""Tests for app/core/audio.py: per-segment synthesis and stitching."""

import io
import threading

import pytest
from pydub import AudioSegment

from app.core.audio import (
    SegmentAudio,
    generate_segment_audio,
    order_segment_audio,
    stitch_audio,
    validate_segments,
    validate_voice_map,
)
from app.core.errors import (
    ExternalServiceError,
    PipelineError,
    PipelineTimeoutError,
    ValidationError,
)
from app.schemas.podcast import Segment

from conftest import FakeTTS, wav_bytes


def segments_for(*speakers):
    return [Segment(speaker=speaker, text=f"Line {index} from {speaker}.") for index, speaker in enumerate(speakers)]


def test_missing_voice_fails_before_any_tts_call():
    """A speaker without a voice is a validation error and nothing is synthesized."""
    tts = FakeTTS()
    with pytest.raises(ValidationError) as exc_info:
        generate_segment_audio(segments_for("Alex", "Jamie", "Sam"), {"Alex": "a", "Jamie": "j"}, tts)
    assert "Sam" in str(exc_info.value)
    assert tts.calls == []


def test_validate_voice_map_rejects_blank_voice():
    with pytest.raises(ValidationError):
        validate_voice_map(segments_for("Alex"), {"Alex": ""})


def test_empty_segment_list_is_rejected():
    with pytest.raises(ValidationError):
        generate_segment_audio([], {"Alex": "a"}, FakeTTS())


def test_blank_segment_text_fails_before_any_tts_call():
    tts = FakeTTS()
    segments = [Segment(speaker="Alex", text="Hello there."), Segment(speaker="Jamie", text="   ")]
    with pytest.raises(ValidationError) as exc_info:
        generate_segment_audio(segments, {"Alex": "a", "Jamie": "j"}, tts)
    assert "2" in str(exc_info.value)
    assert tts.calls == []


def test_validate_segments_checks_text_before_voices():
    with pytest.raises(ValidationError, match="no text"):
        validate_segments([Segment(speaker="Sam", text="")], {})


def test_each_segment_uses_its_speakers_voice():
    tts = FakeTTS()
    results = generate_segment_audio(segments_for("Alex", "Jamie", "Alex"), {"Alex": "a", "Jamie": "j"}, tts)
    assert sorted(tts.calls) == sorted([
        ("Line 0 from Alex.", "a"),
        ("Line 1 from Jamie.", "j"),
        ("Line 2 from Alex.", "a"),
    ])
    assert [r.index for r in results] == [0, 1, 2]
    assert [r.speaker for r in results] == ["Alex", "Jamie", "Alex"]


def test_progress_is_reported_at_coarse_checkpoints():
    reports = []
    generate_segment_audio(
        segments_for(*["Alex", "Jamie"] * 5),
        {"Alex": "a", "Jamie": "j"},
        FakeTTS(),
        on_progress=lambda stage, progress: reports.append((stage, progress)),
    )
    progresses = [progress for _, progress in reports]
    assert len(reports) == 3
    assert progresses == sorted(progresses)
    assert {stage for stage, _ in reports} == {"generating_audio"}


def test_one_failed_segment_fails_the_whole_call():
    tts = FakeTTS(fail_for_voice="j")
    with pytest.raises(ExternalServiceError):
        generate_segment_audio(segments_for("Alex", "Jamie"), {"Alex": "a", "Jamie": "j"}, tts)


def test_unexpected_tts_exception_becomes_external_service_error():
    tts = FakeTTS(fail_for_voice="a", error=OSError("socket closed"))
    with pytest.raises(ExternalServiceError) as exc_info:
        generate_segment_audio(segments_for("Alex"), {"Alex": "a"}, tts)
    assert "socket closed" in str(exc_info.value)


def test_slow_tts_hits_the_time_budget():
    release = threading.Event()

    def stuck_tts(text, voice_id):
        release.wait(5)
        return wav_bytes()

    try:
        with pytest.raises(PipelineTimeoutError):
            generate_segment_audio(segments_for("Alex"), {"Alex": "a"}, stuck_tts, timeout=0.1)
    finally:
        release.set()


def test_stitched_order_follows_script_not_completion():
    """The first segment finishes last, yet it still opens the stitched audio."""
    second_done = threading.Event()
    completion_order = []

    def out_of_order_tts(text, voice_id):
        if voice_id == "slow-silence":
            second_done.wait(5)
            completion_order.append("first")
            return wav_bytes(duration_ms=1000)
        audio = wav_bytes(duration_ms=500, tone_hz=440)
        completion_order.append("second")
        second_done.set()
        return audio

    segments = segments_for("Alex", "Jamie")
    results = generate_segment_audio(
        segments, {"Alex": "slow-silence", "Jamie": "fast-tone"}, out_of_order_tts, max_workers=2
    )
    assert completion_order == ["second", "first"]

    stitched = stitch_audio(results, audio_format="wav")
    audio = AudioSegment.from_file(io.BytesIO(stitched.data), format="wav")
    assert audio[:900].dBFS == float("-inf")
    assert audio[1050:1450].dBFS > -10
    assert stitched.duration_seconds == pytest.approx(1.5, abs=0.01)
    assert stitched.content_type == "audio/wav"


def test_stitch_accepts_results_in_any_order():
    results = [
        SegmentAudio(index=1, speaker="Jamie", audio=wav_bytes(duration_ms=300, tone_hz=440)),
        SegmentAudio(index=0, speaker="Alex", audio=wav_bytes(duration_ms=700)),
    ]
    stitched = stitch_audio(results, audio_format="wav")
    audio = AudioSegment.from_file(io.BytesIO(stitched.data), format="wav")
    assert audio[:650].dBFS == float("-inf")
    assert stitched.duration_seconds == pytest.approx(1.0, abs=0.01)


def test_order_segment_audio_rejects_gaps():
    with pytest.raises(PipelineError):
        order_segment_audio([SegmentAudio(index=0, speaker="A", audio=b"x"), SegmentAudio(index=2, speaker="B", audio=b"y")])


def test_stitch_without_results_is_an_error():
    with pytest.raises(PipelineError):
        stitch_audio([], audio_format="wav")
