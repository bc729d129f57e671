# In backend/core/errors.py

class PodcastError(Exception):
    """Base exception for the podcast generation pipeline."""
    pass


class ValidationError(PodcastError):
    """Raised for malformed input or a missing voice mapping. Nothing is mutated."""
    pass


class NotFoundError(PodcastError):
    """Raised when a job does not exist, is not owned by the caller, or has no script."""
    pass


class ConflictError(PodcastError):
    """Raised when a job is not in a state that allows the requested transition."""
    pass


class ExternalServiceError(PodcastError):
    """Raised when a text-completion or text-to-speech provider fails."""
    pass


class PipelineTimeoutError(ExternalServiceError):
    """Raised when a stage exceeds the wall-clock budget of the request."""
    pass


class PipelineError(PodcastError):
    """Unexpected internal failure. Callers only see a generic message."""
    pass
