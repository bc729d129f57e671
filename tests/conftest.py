"""Shared fixtures: a throwaway SQLite database and storage dir, plus fakes for the LLM and TTS."""

import io
import json
import os
import tempfile
import threading

# settings are read at import time, so point them at a temp dir first
_TMP_DIR = tempfile.mkdtemp(prefix="podcast-studio-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["STORAGE_PATH"] = os.path.join(_TMP_DIR, "storage")
os.environ["BASE_URL"] = "http://testserver"
os.environ["TTS_PROVIDER"] = ""

import pytest
from pydub import AudioSegment
from pydub.generators import Sine

from app.core.rate_limit import rate_limiter
from app.core.tts import TTSError
from app.db.session import Base, SessionLocal, engine
from app.models.podcast_job import PodcastJob  # noqa: F401
from app.services.podcast_service import PodcastService
from app.services.storage_service import StorageService


SCRIPT_RESPONSE = {
    "title": "Why Sleep Matters",
    "description": "Alex and Jamie talk about sleep.",
    "segments": [
        {"speaker": "Alex", "text": "Welcome back to the show.", "emotion": "warm"},
        {"speaker": "Jamie", "text": "Today we are talking about sleep and memory.", "emotion": "curious"},
        {"speaker": "Alex", "text": "[laughing] I could use more of it myself."},
    ],
    "keyTakeaways": ["Sleep consolidates memory", "Consistency beats duration"],
}


def wav_bytes(duration_ms: int = 200, tone_hz: int = 0) -> bytes:
    """A mono 16-bit WAV clip; silent unless tone_hz is given."""
    if tone_hz:
        clip = Sine(tone_hz).to_audio_segment(duration=duration_ms)
    else:
        clip = AudioSegment.silent(duration=duration_ms, frame_rate=44100)
    buffer = io.BytesIO()
    clip.export(buffer, format="wav")
    return buffer.getvalue()


class FakeCompletion:
    """Text-completion double: records every call and returns canned answers."""

    def __init__(self, response=None, error=None):
        self.response = json.dumps(SCRIPT_RESPONSE) if response is None else response
        self.error = error
        self.calls = []

    def __call__(self, system_prompt, user_text, temperature=None, max_tokens=None):
        self.calls.append({
            "system": system_prompt,
            "user": user_text,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if self.error:
            raise self.error
        if callable(self.response):
            return self.response(user_text)
        return self.response


class FakeTTS:
    """Text-to-speech double returning short WAV clips; thread safe call log."""

    provider = "fake"

    def __init__(self, duration_ms: int = 200, fail_for_voice=None, error=None):
        self.duration_ms = duration_ms
        self.fail_for_voice = fail_for_voice
        self.error = error or TTSError("voice service unavailable")
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, text, voice_id):
        with self._lock:
            self.calls.append((text, voice_id))
        if self.fail_for_voice and voice_id == self.fail_for_voice:
            raise self.error
        return wav_bytes(self.duration_ms)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    return StorageService(base_path=str(tmp_path / "storage"), base_url="http://testserver")


@pytest.fixture
def fake_complete():
    return FakeCompletion()


@pytest.fixture
def fake_tts():
    return FakeTTS()


@pytest.fixture
def service(fake_complete, fake_tts, storage):
    return PodcastService(
        complete=fake_complete,
        tts_factory=lambda provider: fake_tts,
        storage=storage,
        audio_format="wav",
        max_workers=4,
    )


VOICE_MAP = {"Alex": "voice-alex", "Jamie": "voice-jamie"}
