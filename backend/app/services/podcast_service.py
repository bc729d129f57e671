import math
import time
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session
from fastapi import Depends

from app.core.config import settings
from app.core.errors import (
    ConflictError,
    NotFoundError,
    PipelineError,
    PipelineTimeoutError,
    PodcastError,
    ValidationError,
)
from app.core.llm import TextCompletion, complete_text
from app.core.script_parser import (
    estimate_duration,
    format_duration,
    parse_script,
    parse_script_with_mode,
    preprocess_text_for_tts,
)
from app.core.script_synthesizer import fix_segment_typos, generate_podcast_script
from app.core.script_export import CONTENT_TYPES, export_script
from app.core.tts import DEFAULT_VOICES, Synthesize, default_voices, get_tts_client
from app.core.audio import StitchedAudio, generate_segment_audio, stitch_audio, validate_segments
from app.models.podcast_job import PodcastJob
from app.schemas.podcast import (
    AudioGenerateRequest,
    ExportFormat,
    JobStatus,
    PodcastGenerateRequest,
    PodcastJobInDB,
    PodcastOptions,
    PodcastScript,
    ScriptAudioRequest,
    ScriptParseRequest,
    ScriptParseResponse,
    Segment,
)
from app.services.job_store import IN_FLIGHT_STATUSES, PodcastJobStore
from app.services.storage_service import StorageService, get_storage_service

# Configure logger for this module
logger = logging.getLogger(__name__)

PROGRESS_SCRIPT_START = 10
PROGRESS_AUDIO_START = 5
PROGRESS_STITCHING = 85
PROGRESS_COMPLETE = 100

TTSFactory = Callable[[Optional[str]], Synthesize]


def truncate_error(message: str, max_length: Optional[int] = None) -> str:
    max_length = max_length or settings.ERROR_MESSAGE_MAX_LENGTH
    if len(message) <= max_length:
        return message
    return message[:max_length - 3] + "..."


class PodcastService:
    """
    Orchestrates podcast jobs: script generation, then audio generation and
    stitching, persisting status and progress on the job record as it goes.

    Every call runs synchronously inside the request and is bounded by
    PIPELINE_TIMEOUT_SECONDS. A stage either moves the job forward or marks
    it failed; a job is never left in an in-flight status by an error.
    """

    def __init__(
        self,
        complete: TextCompletion = complete_text,
        tts_factory: TTSFactory = get_tts_client,
        storage: Optional[StorageService] = None,
        timeout_seconds: Optional[float] = None,
        max_workers: Optional[int] = None,
        audio_format: str = "mp3",
    ):
        self.complete = complete
        self.tts_factory = tts_factory
        self.storage = storage
        self.timeout_seconds = timeout_seconds or settings.PIPELINE_TIMEOUT_SECONDS
        self.max_workers = max_workers or settings.TTS_MAX_WORKERS
        self.audio_format = audio_format
        logger.info("PodcastService initialized.")

    # --- Helpers ---
    def _remaining(self, deadline: float) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise PipelineTimeoutError(f"Podcast generation exceeded the {self.timeout_seconds:.0f} second limit")
        return remaining

    def _run_with_budget(self, fn, deadline: float, *args, **kwargs):
        """Run a blocking provider call, giving up once the request budget is spent."""
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(fn, *args, **kwargs)
            return future.result(timeout=self._remaining(deadline))
        except FuturesTimeoutError as e:
            raise PipelineTimeoutError(f"Podcast generation exceeded the {self.timeout_seconds:.0f} second limit") from e
        finally:
            executor.shutdown(wait=False)

    def _require_job(self, store: PodcastJobStore, job_id: str, user_id: str) -> PodcastJob:
        job = store.get_by_id(job_id, user_id)
        if job is None:
            raise NotFoundError(f"Podcast job {job_id} not found")
        return job

    def _transition(
        self, store: PodcastJobStore, job_id: str, status: JobStatus, source: JobStatus, fields: Optional[Dict] = None
    ) -> None:
        if not store.update_fields(job_id, {**(fields or {}), "status": status}, expected_statuses=[source]):
            raise ConflictError(f"Podcast job {job_id} changed while moving to '{status.value}'")

    def _fail(self, store: PodcastJobStore, job_id: str, error: Exception, stage: str):
        """
        Mark the job failed and re-raise. Known pipeline errors keep their
        message; anything else is logged in full and replaced by a generic one.
        """
        if isinstance(error, PodcastError) and not isinstance(error, PipelineError):
            logger.error(f"PodcastService: {stage} generation failed for job {job_id}: {error}")
            message = str(error) or error.__class__.__name__
            raised = error
        else:
            logger.exception(f"PodcastService: Unexpected error during {stage} generation for job {job_id}")
            message = f"Internal error during {stage} generation"
            raised = PipelineError(message)

        store.update_fields(job_id, {"status": JobStatus.FAILED, "error": truncate_error(message)})
        if raised is error:
            raise error
        raise raised from error

    def _resolve_voice_map(
        self, request: AudioGenerateRequest, options: PodcastOptions, provider: Optional[str]
    ) -> Dict[str, str]:
        if request.voiceMap:
            return dict(request.voiceMap)
        defaults = default_voices(provider) if provider in DEFAULT_VOICES else {}
        voice_map = {}
        voice_host1 = request.voiceHost1 or defaults.get("host1")
        voice_host2 = request.voiceHost2 or defaults.get("host2")
        if voice_host1:
            voice_map[options.hostNames.host1] = voice_host1
        if voice_host2:
            voice_map[options.hostNames.host2] = voice_host2
        return voice_map

    @staticmethod
    def _speech_segments(segments: List[Segment]) -> List[Segment]:
        return [segment.model_copy(update={"text": preprocess_text_for_tts(segment.text)}) for segment in segments]

    # --- Script parsing ---
    def parse_script(self, request: ScriptParseRequest) -> ScriptParseResponse:
        """Parse a user-supplied script, optionally running the typo pass."""
        if len(request.script) > settings.SCRIPT_MAX_CHARS:
            raise ValidationError(f"Script exceeds {settings.SCRIPT_MAX_CHARS} characters")

        if request.mode is None:
            parsed = parse_script(request.script)
        else:
            parsed = parse_script_with_mode(request.script, request.mode, request.speaker1Name, request.speaker2Name)
        segments = parsed["segments"]
        if not segments:
            raise ValidationError("Script contains no speakable text")

        if request.fixTypos:
            logger.debug(f"PodcastService: Running typo pass over {len(segments)} segments")
            segments = fix_segment_typos(segments, self.complete)

        estimated = estimate_duration(segments)
        return ScriptParseResponse(
            mode=parsed["mode"],
            speakers=parsed["speakers"],
            segments=segments,
            estimatedDurationSeconds=estimated,
            estimatedDurationFormatted=format_duration(estimated),
            totalSegments=len(segments),
            segmentsWithChanges=sum(1 for segment in segments if segment.hasChanges),
        )

    # --- Script stage ---
    def generate_script(self, db: Session, user_id: str, request: PodcastGenerateRequest) -> PodcastJob:
        """
        Create a job and synthesize its script.

        Returns the job in 'complete' with the script attached. On failure the
        job is left 'failed' with no script and the error is re-raised.
        """
        if len(request.sourceContent) > settings.SCRIPT_MAX_CHARS:
            raise ValidationError(f"Source content exceeds {settings.SCRIPT_MAX_CHARS} characters")

        store = PodcastJobStore(db)
        options = request.to_options()
        job = store.create(
            user_id=user_id,
            options=options.model_dump(),
            content_id=request.contentId,
            status=JobStatus.GENERATING_SCRIPT,
            progress=PROGRESS_SCRIPT_START,
        )
        job_id = job.id
        logger.info(f"PodcastService: Generating script for job {job_id} ({options.targetDuration}, {options.tone})")
        deadline = time.monotonic() + self.timeout_seconds

        try:
            script = self._run_with_budget(
                generate_podcast_script, deadline, request.sourceContent, options, self.complete
            )
            self._transition(store, job_id, JobStatus.COMPLETE, JobStatus.GENERATING_SCRIPT, {
                "progress": PROGRESS_COMPLETE,
                "script": script.model_dump(),
                "estimated_duration": estimate_duration(script.segments),
                "error": None,
            })
        except Exception as e:
            self._fail(store, job_id, e, "script")

        logger.info(f"PodcastService: Script ready for job {job_id}")
        return self._require_job(store, job_id, user_id)

    # --- Audio stage ---
    def generate_audio(self, db: Session, user_id: str, job_id: str, request: AudioGenerateRequest) -> PodcastJob:
        """
        Generate and stitch the audio of a job that already has a script.

        Validation happens before the job is touched. The move into
        'generating_audio' is a single conditional update from 'complete' or
        'failed', so of two concurrent requests only one proceeds and the
        other gets a ConflictError without changing the record.
        """
        store = PodcastJobStore(db)
        job = self._require_job(store, job_id, user_id)
        if not job.script:
            raise NotFoundError(f"Podcast job {job_id} has no script")
        if JobStatus(job.status) in IN_FLIGHT_STATUSES:
            raise ConflictError(f"Podcast job {job_id} is already in '{job.status}'")

        script = request.script or PodcastScript.model_validate(job.script)
        if not script.segments:
            raise ValidationError("Script has no segments")

        options = PodcastOptions.model_validate(job.options or {})
        provider = request.ttsProvider or (options.ttsProvider if options.ttsProvider != "none" else None)
        synthesize = self.tts_factory(provider)
        voice_map = self._resolve_voice_map(request, options, getattr(synthesize, "provider", provider))
        speech_segments = self._speech_segments(script.segments)
        validate_segments(speech_segments, voice_map)

        previous_audio_url = job.audio_url
        fields = {"status": JobStatus.GENERATING_AUDIO, "progress": PROGRESS_AUDIO_START, "error": None}
        if request.script is not None:
            fields["script"] = script.model_dump()
            fields["estimated_duration"] = estimate_duration(script.segments)
        if not store.update_fields(job_id, fields, expected_statuses=[JobStatus.COMPLETE, JobStatus.FAILED]):
            raise ConflictError(f"Audio generation for podcast job {job_id} is already in progress")

        logger.info(f"PodcastService: Generating audio for job {job_id}, {len(script.segments)} segments")
        deadline = time.monotonic() + self.timeout_seconds

        def on_progress(stage: str, progress: int):
            logger.debug(f"PodcastService: Job {job_id} {stage} at {progress}%")
            store.record_progress(job_id, JobStatus.GENERATING_AUDIO, progress)

        audio_url = None
        try:
            results = generate_segment_audio(
                speech_segments,
                voice_map,
                synthesize,
                on_progress=on_progress,
                max_workers=self.max_workers,
                timeout=self._remaining(deadline),
            )
            self._transition(store, job_id, JobStatus.STITCHING, JobStatus.GENERATING_AUDIO, {"progress": PROGRESS_STITCHING})
            stitched = stitch_audio(results, audio_format=self.audio_format)
            self._remaining(deadline)
            audio_url = self.storage.put(stitched.data, stitched.content_type)
            self._transition(store, job_id, JobStatus.COMPLETE, JobStatus.STITCHING, {
                "progress": PROGRESS_COMPLETE,
                "audio_url": audio_url,
                "duration": math.ceil(stitched.duration_seconds),
            })
        except Exception as e:
            if audio_url:
                self._discard_audio(audio_url)
            self._fail(store, job_id, e, "audio")

        if previous_audio_url and previous_audio_url != audio_url:
            self._discard_audio(previous_audio_url)
        logger.info(f"PodcastService: Audio ready for job {job_id}: {audio_url}")
        return self._require_job(store, job_id, user_id)

    def generate_script_audio(self, request: ScriptAudioRequest) -> StitchedAudio:
        """Synthesize and stitch parsed segments without creating a job."""
        synthesize = self.tts_factory(request.ttsProvider)
        speech_segments = self._speech_segments(request.segments)
        validate_segments(speech_segments, request.voiceMap)
        deadline = time.monotonic() + self.timeout_seconds
        results = generate_segment_audio(
            speech_segments,
            request.voiceMap,
            synthesize,
            max_workers=self.max_workers,
            timeout=self._remaining(deadline),
        )
        return stitch_audio(results, audio_format=self.audio_format)

    def _discard_audio(self, audio_url: str):
        if not self.storage:
            return
        try:
            self.storage.delete_by_url(audio_url)
        except RuntimeError as e:
            logger.warning(f"PodcastService: Could not remove audio {audio_url}: {e}")

    # --- Queries ---
    def get_job(self, db: Session, user_id: str, job_id: str) -> PodcastJob:
        return self._require_job(PodcastJobStore(db), job_id, user_id)

    def export_job(self, db: Session, user_id: str, job_id: str, format: str) -> Tuple[str, str, str]:
        """Return (content, content type, filename) of the job's script export."""
        job = self.get_job(db, user_id, job_id)
        if not job.script:
            raise NotFoundError(f"Podcast job {job_id} has no script")
        content = export_script(PodcastScript.model_validate(job.script), format)
        export_format = ExportFormat(format)
        return content, CONTENT_TYPES[export_format], f"{job_id}.{export_format.value}"

    def list_jobs(self, db: Session, user_id: str, status: Optional[JobStatus] = None, limit: int = 20) -> List[PodcastJob]:
        return PodcastJobStore(db).list_by_owner(user_id, status=status, limit=limit)

    def delete_job(self, db: Session, user_id: str, job_id: str) -> PodcastJobInDB:
        """Delete the job and its stored audio. Returns the job as it was before deletion."""
        store = PodcastJobStore(db)
        job = self._require_job(store, job_id, user_id)
        deleted = PodcastJobInDB.from_model(job)
        audio_url = job.audio_url
        if not store.delete(job_id, user_id):
            raise NotFoundError(f"Podcast job {job_id} not found")
        if audio_url:
            self._discard_audio(audio_url)
        logger.info(f"PodcastService: Deleted job {job_id}")
        return deleted


def get_podcast_service(storage_service: StorageService = Depends(get_storage_service)) -> PodcastService:
    """
    Dependency function to provide the podcast service instance.
    """
    return PodcastService(storage=storage_service)
