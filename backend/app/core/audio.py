# In backend/core/audio.py

import io
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from app.core.errors import ExternalServiceError, PipelineError, PipelineTimeoutError, ValidationError
from app.core.tts import Synthesize
from app.schemas.podcast import Segment

logger = logging.getLogger(__name__)

# on_progress(stage, progress) - called at coarse checkpoints only
ProgressCallback = Callable[[str, int], None]

PROGRESS_START = 10
PROGRESS_MIDPOINT = 45
PROGRESS_SEGMENTS_READY = 80

AUDIO_CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
}


@dataclass
class SegmentAudio:
    """Raw audio for one segment, tagged with the segment's position in the script."""
    index: int
    speaker: str
    audio: bytes


@dataclass
class StitchedAudio:
    data: bytes
    duration_seconds: float
    format: str

    @property
    def content_type(self) -> str:
        return AUDIO_CONTENT_TYPES.get(self.format, "application/octet-stream")


def validate_voice_map(segments: Sequence[Segment], voice_map: Dict[str, str]) -> None:
    """Every speaker in the segments must map to a voice."""
    missing = []
    for segment in segments:
        if not voice_map.get(segment.speaker) and segment.speaker not in missing:
            missing.append(segment.speaker)
    if missing:
        raise ValidationError(f"No voice configured for speaker(s): {', '.join(missing)}")


def validate_segments(segments: Sequence[Segment], voice_map: Dict[str, str]) -> None:
    """Check segments and voices before any provider call is made."""
    if not segments:
        raise ValidationError("At least one segment is required")
    blank = [str(index + 1) for index, segment in enumerate(segments) if not segment.text.strip()]
    if blank:
        raise ValidationError(f"Segment(s) {', '.join(blank)} have no text")
    validate_voice_map(segments, voice_map)


def _report(on_progress: Optional[ProgressCallback], stage: str, progress: int) -> None:
    if on_progress:
        on_progress(stage, progress)


def generate_segment_audio(
    segments: Sequence[Segment],
    voice_map: Dict[str, str],
    synthesize: Synthesize,
    on_progress: Optional[ProgressCallback] = None,
    max_workers: int = 4,
    timeout: Optional[float] = None,
) -> List[SegmentAudio]:
    """
    Synthesize every segment with its speaker's voice.

    Segments and the voice map are checked before any provider call. Segments are
    requested concurrently; each result is written to the slot of its
    segment, so the returned list is in script order whatever the order of
    completion. A single failed segment fails the whole call, and
    nothing partial is returned.
    """
    validate_segments(segments, voice_map)

    total = len(segments)
    results: List[Optional[SegmentAudio]] = [None] * total
    logger.info(f"AudioGenerator: Synthesizing {total} segments with up to {max_workers} workers")
    _report(on_progress, "generating_audio", PROGRESS_START)

    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, total)))
    try:
        future_to_index = {
            executor.submit(synthesize, segment.text, voice_map[segment.speaker]): index
            for index, segment in enumerate(segments)
        }
        completed = 0
        midpoint_reported = False
        for future in as_completed(future_to_index, timeout=timeout):
            index = future_to_index[future]
            try:
                audio = future.result()
            except ExternalServiceError:
                logger.error(f"AudioGenerator: Segment {index} ({segments[index].speaker}) failed")
                raise
            except Exception as e:
                logger.error(f"AudioGenerator: Segment {index} ({segments[index].speaker}) failed: {e}", exc_info=True)
                raise ExternalServiceError(f"Text-to-speech failed for segment {index + 1}: {e}") from e
            results[index] = SegmentAudio(index=index, speaker=segments[index].speaker, audio=audio)
            completed += 1
            if not midpoint_reported and completed * 2 >= total:
                midpoint_reported = True
                _report(on_progress, "generating_audio", PROGRESS_MIDPOINT)
    except FuturesTimeoutError as e:
        raise PipelineTimeoutError(f"Audio generation timed out after {timeout:.0f} seconds") from e
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    _report(on_progress, "generating_audio", PROGRESS_SEGMENTS_READY)
    return results


def order_segment_audio(results: Sequence[SegmentAudio]) -> List[bytes]:
    """Return the audio buffers in segment order. Indices must cover 0..n-1 exactly once."""
    ordered = sorted(results, key=lambda r: r.index)
    if [r.index for r in ordered] != list(range(len(ordered))):
        raise PipelineError("Segment audio is incomplete or duplicated")
    return [r.audio for r in ordered]


def stitch_audio(results: Sequence[SegmentAudio], audio_format: str = "mp3") -> StitchedAudio:
    """
    Concatenate segment audio in script order into one file.
    The duration is measured on the combined audio, not estimated from text.
    """
    from pydub import AudioSegment

    if not results:
        raise PipelineError("No segment audio to stitch")

    combined = AudioSegment.empty()
    for data in order_segment_audio(results):
        combined += AudioSegment.from_file(io.BytesIO(data), format=audio_format)

    buffer = io.BytesIO()
    combined.export(buffer, format=audio_format)
    duration_seconds = len(combined) / 1000.0
    logger.info(f"AudioStitcher: Stitched {len(results)} segments, {duration_seconds:.1f}s of audio")
    return StitchedAudio(data=buffer.getvalue(), duration_seconds=duration_seconds, format=audio_format)
