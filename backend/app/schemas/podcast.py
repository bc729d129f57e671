from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime

from app.core.config import settings


class JobStatus(str, Enum):
    """Lifecycle states of a podcast job."""
    PENDING = "pending"
    GENERATING_SCRIPT = "generating_script"
    GENERATING_AUDIO = "generating_audio"
    STITCHING = "stitching"
    COMPLETE = "complete"
    FAILED = "failed"


class ScriptMode(str, Enum):
    """Single narrator, or exactly two named speakers alternating."""
    SINGLE = "single"
    PODCAST = "podcast"


class ExportFormat(str, Enum):
    JSON = "json"
    TXT = "txt"
    SRT = "srt"


# --- Script Models ---
class Segment(BaseModel):
    """
    One speaker turn of a script.
    """
    speaker: str = Field(..., description="The speaker label for this turn.")
    text: str = Field(..., description="The (possibly preprocessed) text sent to speech synthesis.")
    originalText: Optional[str] = Field(None, description="The text as it appeared in the source script.")
    emotion: Optional[str] = Field(None, description="Optional delivery cue, e.g. 'curious' or 'laughing'.")
    lineNumber: int = Field(0, description="1-based line in the source text where this turn starts.")
    hasChanges: bool = Field(False, description="True when 'text' differs from 'originalText'.")


class PodcastScript(BaseModel):
    """
    A complete two-host script as produced by the script synthesizer.
    """
    title: str = Field(..., description="Episode title.")
    description: str = Field("", description="Short episode description for show notes.")
    segments: List[Segment] = Field(..., description="Speaker turns in playback order.")
    keyTakeaways: List[str] = Field(default_factory=list, description="Key points of the episode.")


# --- Options ---
class HostNames(BaseModel):
    host1: str = Field(default_factory=lambda: settings.DEFAULT_HOST1_NAME, min_length=1, max_length=20)
    host2: str = Field(default_factory=lambda: settings.DEFAULT_HOST2_NAME, min_length=1, max_length=20)


class HostRoles(BaseModel):
    host1: Optional[str] = Field(None, max_length=200)
    host2: Optional[str] = Field(None, max_length=200)


class PodcastOptions(BaseModel):
    """
    Generation options persisted on the job record.
    """
    targetDuration: str = Field("medium", pattern="^(short|medium|long)$", description="short (3-5 min), medium (8-12 min) or long (15-20 min).")
    tone: str = Field("casual", pattern="^(casual|professional|educational)$")
    hostNames: HostNames = Field(default_factory=HostNames)
    hostRoles: Optional[HostRoles] = None
    focusGuidance: Optional[str] = Field(None, max_length=500)
    includeIntro: bool = True
    includeOutro: bool = True
    ttsProvider: str = Field("none", pattern="^(google|elevenlabs|azure|local|none)$")
    sourceTranscriptIds: Optional[List[str]] = Field(None, max_length=10)


# --- Request Models ---
class PodcastGenerateRequest(PodcastOptions):
    """
    Request body to start script generation for a new job.
    """
    sourceContent: str = Field(..., min_length=1, description="The written content to turn into a podcast.")
    contentId: Optional[str] = Field(None, description="Optional link to the originating content record.")

    def to_options(self) -> PodcastOptions:
        return PodcastOptions(**self.model_dump(exclude={"sourceContent", "contentId"}))


class AudioGenerateRequest(BaseModel):
    """
    Request body to generate audio for an existing job.
    Either 'voiceMap' or both host voices must be provided, unless provider defaults apply.
    """
    voiceMap: Optional[Dict[str, str]] = Field(None, description="Speaker name -> TTS voice id.")
    voiceHost1: Optional[str] = Field(None, description="Voice id for the first host.")
    voiceHost2: Optional[str] = Field(None, description="Voice id for the second host.")
    ttsProvider: Optional[str] = Field(None, pattern="^(google|elevenlabs|azure|local)$")
    script: Optional[PodcastScript] = Field(None, description="Edited script to persist before generating audio.")


class ScriptParseRequest(BaseModel):
    script: str = Field(..., min_length=1)
    mode: Optional[ScriptMode] = None
    speaker1Name: str = "Narrator"
    speaker2Name: str = "Guest"
    fixTypos: bool = False


class ScriptAudioRequest(BaseModel):
    """
    Request body for job-less audio generation from already parsed segments.
    """
    segments: List[Segment] = Field(..., min_length=1)
    voiceMap: Dict[str, str]
    ttsProvider: Optional[str] = Field(None, pattern="^(google|elevenlabs|azure|local)$")
    title: Optional[str] = None


# --- Response Models ---
class ScriptParseResponse(BaseModel):
    mode: ScriptMode
    speakers: List[str]
    segments: List[Segment]
    estimatedDurationSeconds: int
    estimatedDurationFormatted: str
    totalSegments: int
    segmentsWithChanges: int


class PodcastJobInDB(BaseModel):
    """
    Pydantic model representing a podcast job as stored in the database.
    This model is used for API responses.
    """
    id: str
    userId: str
    contentId: Optional[str] = None
    status: JobStatus
    progress: int = Field(0, ge=0, le=100)
    options: PodcastOptions
    script: Optional[PodcastScript] = None
    estimatedDuration: Optional[int] = Field(None, description="Duration estimated from the script text, in seconds.")
    audioUrl: Optional[str] = None
    duration: Optional[int] = Field(None, description="Duration of the stitched audio, in seconds.")
    error: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime

    @classmethod
    def from_model(cls, job) -> "PodcastJobInDB":
        return cls(
            id=job.id,
            userId=job.user_id,
            contentId=job.content_id,
            status=job.status,
            progress=job.progress or 0,
            options=job.options or {},
            script=job.script,
            estimatedDuration=job.estimated_duration,
            audioUrl=job.audio_url,
            duration=job.duration,
            error=job.error,
            createdAt=job.created_at,
            updatedAt=job.updated_at,
        )


class PodcastJobList(BaseModel):
    jobs: List[PodcastJobInDB]
