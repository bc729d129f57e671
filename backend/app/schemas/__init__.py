# This file re-exports the Pydantic schemas used by the API layer.

from .podcast import PodcastJobInDB as PodcastJobSchema
from .podcast import PodcastScript, Segment, JobStatus, ScriptMode
