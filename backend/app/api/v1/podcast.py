import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Path, Query, Response
from sqlalchemy.orm import Session

# Configure logger for this module
logger = logging.getLogger(__name__)

# Import services, schemas, and dependencies
from app.core.deps import get_db, get_current_user_id, rate_limited
from app.core.rate_limit import SCOPE_DEFAULT, SCOPE_GENERATE
from app.core.errors import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PodcastError,
    ValidationError,
)
from app.services.podcast_service import get_podcast_service, PodcastService
from app.schemas.podcast import (
    AudioGenerateRequest,
    JobStatus,
    PodcastGenerateRequest,
    PodcastJobInDB,
    PodcastJobList,
    ScriptAudioRequest,
    ScriptParseRequest,
    ScriptParseResponse,
)

# Create a new router for this module.
router = APIRouter()

ERROR_STATUS_CODES = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
]


def to_http_exception(error: PodcastError) -> HTTPException:
    """Map a pipeline error to the HTTP status the caller should see."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An internal error occurred while generating the podcast."
    )


@router.post(
    "/scripts/parse",
    response_model=ScriptParseResponse,
    summary="Parse a script into speaker segments",
    description="Splits a script into speaker-attributed segments, detects single-narrator or two-host mode, preprocesses the text for speech and estimates the spoken duration. Optionally runs a spelling and grammar pass."
)
def parse_script(
    *,
    request: ScriptParseRequest,
    podcast_service: PodcastService = Depends(get_podcast_service),
):
    """
    Parse a user-supplied script.

    Args:
        request (ScriptParseRequest): The script text and parsing options.
        podcast_service (PodcastService): Dependency for podcast operations.

    Returns:
        ScriptParseResponse: Mode, speakers, segments and estimated duration.
    """
    logger.info(f"API: Received script parse request ({len(request.script)} chars, mode={request.mode})")
    try:
        return podcast_service.parse_script(request)
    except PodcastError as e:
        logger.warning(f"API: Script parse failed: {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"API: An unexpected error occurred while parsing a script: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred while parsing the script."
        )


@router.post(
    "/scripts/audio",
    response_class=Response,
    summary="Generate audio for parsed segments",
    description="Synthesizes every segment with the voice mapped to its speaker and returns the stitched audio file directly. No job is created."
)
def generate_script_audio(
    *,
    request: ScriptAudioRequest,
    user_id: str = Depends(rate_limited(SCOPE_GENERATE)),
    podcast_service: PodcastService = Depends(get_podcast_service),
):
    """
    Synchronously generate audio for a list of segments.

    Returns:
        Response: The stitched audio bytes.

    Raises:
        HTTPException: 400 if a speaker has no voice, 429 over the request limit,
            502 if speech synthesis fails.
    """
    logger.info(f"API: Received script audio request from user {user_id} ({len(request.segments)} segments)")
    try:
        stitched = podcast_service.generate_script_audio(request)
    except PodcastError as e:
        logger.error(f"API: Script audio generation failed: {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"API: An unexpected error occurred during script audio generation: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred while generating the audio."
        )
    filename = f"{request.title or 'podcast'}.{stitched.format}"
    return Response(
        content=stitched.data,
        media_type=stitched.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Audio-Duration": f"{stitched.duration_seconds:.3f}",
        },
    )


@router.post(
    "/",
    response_model=PodcastJobInDB,
    status_code=status.HTTP_201_CREATED,
    summary="Generate a podcast script",
    description="Creates a podcast job and synthesizes a two-host script from the given content. The generation process is synchronous. Returns the job, complete with its script, or an error if synthesis failed (the job is then kept as 'failed')."
)
def generate_podcast_script(
    *,
    db: Session = Depends(get_db),
    podcast_in: PodcastGenerateRequest,
    user_id: str = Depends(rate_limited(SCOPE_GENERATE)),
    podcast_service: PodcastService = Depends(get_podcast_service),
):
    """
    Synchronously generate the script of a new podcast.

    Args:
        db (Session): Database session dependency.
        podcast_in (PodcastGenerateRequest): Source content and generation options.
        user_id (str): The calling user.
        podcast_service (PodcastService): Dependency for podcast operations.

    Returns:
        PodcastJobInDB: The newly created job.

    Raises:
        HTTPException: 429 over the request limit, 502 if the language model fails,
            500 for unexpected errors.
    """
    logger.info(f"API: Received request to generate a podcast script for user {user_id}")
    try:
        job = podcast_service.generate_script(db=db, user_id=user_id, request=podcast_in)
        logger.info(f"API: Successfully generated script for podcast job {job.id}.")
        return PodcastJobInDB.from_model(job)
    except PodcastError as e:
        logger.error(f"API: Script generation failed for user {user_id}: {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"API: An unexpected error occurred during script generation for user {user_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred while generating the podcast."
        )


@router.get(
    "/",
    response_model=PodcastJobList,
    summary="List podcast jobs",
    description="Lists the calling user's podcast jobs, newest first, optionally filtered by status."
)
def list_podcasts(
    *,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    status_filter: Optional[JobStatus] = Query(None, alias="status", description="Only return jobs in this status."),
    limit: int = Query(20, ge=1, le=100, description="Maximum number of jobs to return."),
    podcast_service: PodcastService = Depends(get_podcast_service),
):
    logger.debug(f"API: Listing podcast jobs for user {user_id} (status={status_filter}, limit={limit})")
    jobs = podcast_service.list_jobs(db=db, user_id=user_id, status=status_filter, limit=limit)
    return PodcastJobList(jobs=[PodcastJobInDB.from_model(job) for job in jobs])


@router.get(
    "/{job_id}",
    response_model=PodcastJobInDB,
    summary="Retrieve a podcast job, or export its script",
    description="Fetches a podcast job. With '?export=json|txt|srt' the job's script is returned as a downloadable file instead. Returns a 404 error if the job is not found."
)
def get_podcast(
    *,
    db: Session = Depends(get_db),
    job_id: str = Path(..., description="The unique identifier of the podcast job."),
    export: Optional[str] = Query(None, description="Export format: json, txt or srt."),
    user_id: str = Depends(get_current_user_id),
    podcast_service: PodcastService = Depends(get_podcast_service),
):
    """
    Retrieve a single podcast job by its ID.

    Raises:
        HTTPException: 404 Not Found if the job does not exist or has no script to export,
            400 for an unknown export format.
    """
    logger.debug(f"API: Attempting to retrieve podcast job {job_id} (export={export})")
    try:
        if export is None:
            return PodcastJobInDB.from_model(podcast_service.get_job(db=db, user_id=user_id, job_id=job_id))
        content, content_type, filename = podcast_service.export_job(db=db, user_id=user_id, job_id=job_id, format=export)
    except PodcastError as e:
        logger.warning(f"API: Could not retrieve podcast job {job_id}: {e}")
        raise to_http_exception(e)
    return Response(
        content=content,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post(
    "/{job_id}/audio",
    response_model=PodcastJobInDB,
    summary="Generate the audio of a podcast",
    description="Synthesizes and stitches the audio of a job that has a script. An edited script may be supplied and is saved first. The generation process is synchronous. Returns 409 if audio generation is already running for the job."
)
def generate_podcast_audio(
    *,
    db: Session = Depends(get_db),
    job_id: str = Path(..., description="The unique identifier of the podcast job."),
    audio_in: AudioGenerateRequest,
    user_id: str = Depends(rate_limited(SCOPE_DEFAULT)),
    podcast_service: PodcastService = Depends(get_podcast_service),
):
    """
    Synchronously generate the audio of an existing podcast job.

    Args:
        db (Session): Database session dependency.
        job_id (str): The ID of the job.
        audio_in (AudioGenerateRequest): Voices, provider and optional edited script.
        user_id (str): The calling user.
        podcast_service (PodcastService): Dependency for podcast operations.

    Returns:
        PodcastJobInDB: The job with its audio URL and duration.

    Raises:
        HTTPException: 400 for a speaker without a voice, 404 if the job or its script is missing,
            409 if audio generation is already in progress, 429 over the request limit,
            502 if speech synthesis fails.
    """
    logger.info(f"API: Received request to generate audio for podcast job {job_id}")
    try:
        job = podcast_service.generate_audio(db=db, user_id=user_id, job_id=job_id, request=audio_in)
        logger.info(f"API: Successfully generated audio for podcast job {job_id}: {job.audio_url}")
        return PodcastJobInDB.from_model(job)
    except PodcastError as e:
        logger.error(f"API: Audio generation failed for podcast job {job_id}: {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"API: An unexpected error occurred during audio generation for {job_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred while generating the podcast."
        )


@router.delete(
    "/{job_id}",
    response_model=PodcastJobInDB,
    summary="Delete a podcast job",
    description="Deletes a podcast job and its stored audio. Returns a 404 error if the job is not found."
)
def delete_podcast(
    *,
    db: Session = Depends(get_db),
    job_id: str = Path(..., description="The unique identifier of the podcast job."),
    user_id: str = Depends(get_current_user_id),
    podcast_service: PodcastService = Depends(get_podcast_service),
):
    """
    Delete a podcast job.

    Returns:
        PodcastJobInDB: The details of the deleted job.
    """
    logger.debug(f"API: Deleting podcast job {job_id} for user {user_id}")
    try:
        return podcast_service.delete_job(db=db, user_id=user_id, job_id=job_id)
    except PodcastError as e:
        logger.warning(f"API: Could not delete podcast job {job_id}: {e}")
        raise to_http_exception(e)
