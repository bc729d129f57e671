import uuid
import logging
from typing import Dict, Iterable, List, Optional, Set, Any

from sqlalchemy.orm import Session

from app.core.errors import ConflictError
from app.models.podcast_job import PodcastJob
from app.schemas.podcast import JobStatus

logger = logging.getLogger(__name__)

# Allowed status transitions of a podcast job. Anything not listed is rejected.
TRANSITIONS: Dict[JobStatus, Set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.GENERATING_SCRIPT},
    JobStatus.GENERATING_SCRIPT: {JobStatus.COMPLETE, JobStatus.FAILED},
    JobStatus.COMPLETE: {JobStatus.GENERATING_AUDIO},
    JobStatus.FAILED: {JobStatus.GENERATING_AUDIO},
    JobStatus.GENERATING_AUDIO: {JobStatus.STITCHING, JobStatus.FAILED},
    JobStatus.STITCHING: {JobStatus.COMPLETE, JobStatus.FAILED},
}

IN_FLIGHT_STATUSES = {JobStatus.GENERATING_SCRIPT, JobStatus.GENERATING_AUDIO, JobStatus.STITCHING}


def sources_of(target: JobStatus) -> Set[JobStatus]:
    """All statuses from which a job may move into `target`."""
    return {source for source, targets in TRANSITIONS.items() if target in targets}


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, JobStatus) else value


class PodcastJobStore:
    """
    Persistence for podcast jobs.

    Every write is a single UPDATE statement filtered on the job id and,
    for status changes, on the statuses the job may currently be in. The
    database therefore decides whether a transition wins, which closes the
    gap between reading a job and changing its status.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: str,
        options: Dict[str, Any],
        content_id: Optional[str] = None,
        status: JobStatus = JobStatus.GENERATING_SCRIPT,
        progress: int = 0,
    ) -> PodcastJob:
        job = PodcastJob(
            id=f"podcast_{uuid.uuid4().hex}",
            user_id=user_id,
            content_id=content_id,
            status=_db_value(status),
            progress=progress,
            options=options,
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        logger.debug(f"JobStore: Created job {job.id} for user {user_id} in status {job.status}")
        return job

    def get_by_id(self, job_id: str, owner_id: str) -> Optional[PodcastJob]:
        """Return the job only if it belongs to `owner_id`."""
        return self.db.query(PodcastJob).filter(
            PodcastJob.id == job_id,
            PodcastJob.user_id == owner_id,
        ).first()

    def update_fields(
        self,
        job_id: str,
        fields: Dict[str, Any],
        expected_statuses: Optional[Iterable[JobStatus]] = None,
    ) -> bool:
        """
        Apply `fields` to the job in one conditional UPDATE.

        When `fields` changes the status, the update only matches a row whose
        current status may legally move to the new one; `expected_statuses`
        narrows that further. Asking for a source status the transition
        table does not allow raises ConflictError without touching the row.
        Returns True if the row was updated.
        """
        expected = set(expected_statuses) if expected_statuses is not None else None

        if "status" in fields:
            target = JobStatus(fields["status"])
            allowed = sources_of(target)
            if expected is None:
                expected = allowed
            elif not expected <= allowed:
                invalid = sorted(s.value for s in expected - allowed)
                raise ConflictError(f"Invalid status transition from {invalid} to '{target.value}'")

        query = self.db.query(PodcastJob).filter(PodcastJob.id == job_id)
        if expected is not None:
            query = query.filter(PodcastJob.status.in_([_db_value(s) for s in expected]))

        values = {getattr(PodcastJob, name): _db_value(value) for name, value in fields.items()}
        updated = query.update(values, synchronize_session=False)
        self.db.commit()
        if not updated:
            logger.debug(f"JobStore: Conditional update of job {job_id} matched no row (expected {expected})")
        return updated == 1

    def record_progress(self, job_id: str, status: JobStatus, progress: int) -> bool:
        """Raise the progress of a job that is still in `status`. Progress never goes down."""
        updated = self.db.query(PodcastJob).filter(
            PodcastJob.id == job_id,
            PodcastJob.status == _db_value(status),
            PodcastJob.progress < progress,
        ).update({PodcastJob.progress: progress}, synchronize_session=False)
        self.db.commit()
        return updated == 1

    def delete(self, job_id: str, owner_id: str) -> bool:
        deleted = self.db.query(PodcastJob).filter(
            PodcastJob.id == job_id,
            PodcastJob.user_id == owner_id,
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted == 1

    def list_by_owner(self, owner_id: str, status: Optional[JobStatus] = None, limit: int = 20) -> List[PodcastJob]:
        """The owner's jobs, newest first."""
        query = self.db.query(PodcastJob).filter(PodcastJob.user_id == owner_id)
        if status is not None:
            query = query.filter(PodcastJob.status == _db_value(status))
        return query.order_by(PodcastJob.created_at.desc()).limit(limit).all()
