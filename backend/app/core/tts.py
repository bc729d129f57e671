# In backend/core/tts.py

import io
import logging
import os
import re
import subprocess
import tempfile
from typing import Callable, Dict, List, Optional

import requests

from app.core.config import settings
from app.core.errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)

# synthesize(text, voice_id) -> audio bytes (mp3)
Synthesize = Callable[[str, str], bytes]

PROVIDERS = ("elevenlabs", "google", "azure", "local")

ELEVENLABS_TTS_ENDPOINT = "https://api.elevenlabs.io/v1/text-to-speech"

# Voices used when an audio request does not name any, keyed by provider.
DEFAULT_VOICES = {
    "elevenlabs": {"host1": "pNInz6obpgDQGcFmaJgB", "host2": "EXAVITQu4vr4xnSDxMaL"},  # Adam, Bella
    "google": {"host1": "en-US-Neural2-D", "host2": "en-US-Neural2-F"},
    "azure": {"host1": "onyx", "host2": "alloy"},
    "local": {"host1": "en-us", "host2": "en-us+f3"},
}


class TTSError(ExternalServiceError):
    """Raised when a text-to-speech provider call fails."""
    pass


def default_voices(provider: str) -> Dict[str, str]:
    return dict(DEFAULT_VOICES[provider])


def resolve_provider(provider: Optional[str]) -> str:
    """Pick the provider for a request, falling back to TTS_PROVIDER."""
    name = (provider or "").lower()
    if not name or name == "none":
        name = (settings.TTS_PROVIDER or "").lower()
    if name not in PROVIDERS:
        raise ValidationError(f"No text-to-speech provider configured (got '{provider}'). Valid options: {list(PROVIDERS)}")
    return name


def chunk_text_by_chars(text: str, max_chars: int) -> List[str]:
    """Split text into chunks not exceeding max_chars, preferring whitespace boundaries."""
    if len(text) <= max_chars:
        return [text]
    tokens = re.findall(r"\S+\s*", text)
    chunks = []
    current = ""
    for token in tokens:
        if len(current) + len(token) <= max_chars:
            current += token
        else:
            if current:
                chunks.append(current.strip())
            current = token
            while len(current) > max_chars:
                chunks.append(current[:max_chars])
                current = current[max_chars:]
    if current.strip():
        chunks.append(current.strip())
    return [c for c in chunks if c]


def _concat_mp3(parts: List[bytes]) -> bytes:
    from pydub import AudioSegment

    combined = AudioSegment.empty()
    for part in parts:
        combined += AudioSegment.from_file(io.BytesIO(part), format="mp3")
    buffer = io.BytesIO()
    combined.export(buffer, format="mp3")
    return buffer.getvalue()


def _synthesize_elevenlabs(text: str, voice_id: str) -> bytes:
    """Generate audio using the ElevenLabs text-to-speech API."""
    api_key = settings.ELEVENLABS_API_KEY
    if not api_key:
        raise TTSError("ElevenLabs API key not configured (ELEVENLABS_API_KEY)")

    try:
        response = requests.post(
            f"{ELEVENLABS_TTS_ENDPOINT}/{voice_id}",
            headers={"xi-api-key": api_key, "Content-Type": "application/json", "Accept": "audio/mpeg"},
            json={
                "text": text,
                "model_id": settings.ELEVENLABS_MODEL_ID,
                "voice_settings": {"stability": 0.5, "similarity_boost": 0.75, "style": 0.5, "use_speaker_boost": True},
            },
            timeout=settings.TTS_TIMEOUT,
        )
        response.raise_for_status()
        return response.content
    except requests.exceptions.RequestException as e:
        raise TTSError(f"ElevenLabs TTS failed: {e}") from e


def _synthesize_google(text: str, voice_id: str) -> bytes:
    """Generate audio using Google Cloud TTS."""
    from google.cloud import texttospeech

    try:
        client = texttospeech.TextToSpeechClient()
        response = client.synthesize_speech(
            input=texttospeech.SynthesisInput(text=text),
            voice=texttospeech.VoiceSelectionParams(
                language_code=settings.GCP_TTS_LANGUAGE or "en-US",
                name=voice_id,
            ),
            audio_config=texttospeech.AudioConfig(
                audio_encoding=texttospeech.AudioEncoding.MP3,
                effects_profile_id=["headphone-class-device"],
            ),
            timeout=settings.TTS_TIMEOUT,
        )
        return response.audio_content
    except Exception as e:
        raise TTSError(f"Google Cloud TTS failed: {e}") from e


def _synthesize_azure(text: str, voice_id: str) -> bytes:
    """Generate audio using Azure OpenAI TTS."""
    api_key = settings.AZURE_TTS_KEY
    endpoint = settings.AZURE_TTS_ENDPOINT
    deployment_name = settings.AZURE_TTS_DEPLOYMENT or "tts"
    api_version = settings.AZURE_TTS_API_VERSION or "2025-03-01-preview"
    if not all([api_key, endpoint]):
        raise TTSError("AZURE_TTS_KEY and AZURE_TTS_ENDPOINT must be set for Azure OpenAI TTS")

    tts_url = f"{endpoint}/openai/deployments/{deployment_name}/audio/speech?api-version={api_version}"
    try:
        response = requests.post(
            tts_url,
            headers={"api-key": api_key, "Content-Type": "application/json"},
            json={"model": deployment_name, "input": text, "voice": voice_id, "response_format": "mp3"},
            timeout=settings.TTS_TIMEOUT,
        )
        response.raise_for_status()
        return response.content
    except requests.exceptions.RequestException as e:
        raise TTSError(f"Azure TTS failed: {e}") from e


def _synthesize_local(text: str, voice_id: str) -> bytes:
    """Generate audio using local espeak-ng."""
    from pydub import AudioSegment

    speed = str(settings.ESPEAK_SPEED or 150)
    with tempfile.TemporaryDirectory() as tmp_dir:
        wav_path = os.path.join(tmp_dir, "speech.wav")
        try:
            cmd = ["espeak-ng", "-v", voice_id, "-s", speed, "-w", wav_path, text]
            subprocess.run(cmd, capture_output=True, text=True, timeout=settings.TTS_TIMEOUT, check=True)
        except FileNotFoundError as e:
            raise TTSError("espeak-ng not found. Please install it.") from e
        except (subprocess.SubprocessError, OSError) as e:
            raise TTSError(f"Local TTS synthesis error: {e}") from e

        buffer = io.BytesIO()
        AudioSegment.from_wav(wav_path).export(buffer, format="mp3")
        return buffer.getvalue()


_PROVIDER_FUNCTIONS = {
    "elevenlabs": _synthesize_elevenlabs,
    "google": _synthesize_google,
    "azure": _synthesize_azure,
    "local": _synthesize_local,
}


def synthesize(text: str, voice_id: str, provider: str) -> bytes:
    """
    Convert one piece of text to mp3 bytes with the given provider and voice.
    Long text for cloud providers is chunked and re-joined.
    """
    if not text or not text.strip():
        raise ValidationError("Text cannot be empty")

    synthesize_fn = _PROVIDER_FUNCTIONS[provider]
    max_chars = settings.TTS_CLOUD_MAX_CHARS or 3000
    if provider != "local" and len(text) > max_chars:
        chunks = chunk_text_by_chars(text, max_chars)
        logger.debug(f"TTS: Splitting {len(text)} chars into {len(chunks)} chunks for {provider}")
        return _concat_mp3([synthesize_fn(chunk, voice_id) for chunk in chunks])
    return synthesize_fn(text, voice_id)


def get_tts_client(provider: Optional[str] = None) -> Synthesize:
    """Return a synthesize(text, voice_id) callable bound to a provider."""
    name = resolve_provider(provider)

    def _synthesize(text: str, voice_id: str) -> bytes:
        return synthesize(text, voice_id, name)

    _synthesize.provider = name
    return _synthesize
