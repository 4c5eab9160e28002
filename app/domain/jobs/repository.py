"""Job repository - Database operations for jobs"""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...models_job import Job
from .errors import ConcurrentTransitionError


class JobRepository:
    """Record store for jobs: get, filter, create, update"""

    @staticmethod
    def get(db: Session, job_id: str) -> Optional[Job]:
        return db.query(Job).filter(Job.id == job_id).first()

    @staticmethod
    def filter(db: Session, limit: int = 100, **criteria) -> List[Job]:
        """Filter jobs by exact column matches, newest first"""
        query = db.query(Job)
        for key, value in criteria.items():
            if value is None or not hasattr(Job, key):
                continue
            query = query.filter(getattr(Job, key) == value)
        return query.order_by(Job.created_at.desc()).limit(limit).all()

    @staticmethod
    def create(db: Session, **fields) -> Job:
        job = Job(**fields)
        db.add(job)
        db.commit()
        db.refresh(job)
        return job

    @staticmethod
    def update(db: Session, job: Job, expected_version: int, **changes: Any) -> Job:
        """
        Compare-and-set write: applies the changes only if the row still has
        the version read before the precondition checks.
        """
        values: Dict[str, Any] = dict(changes)
        values["version"] = expected_version + 1

        updated = (
            db.query(Job)
            .filter(Job.id == job.id, Job.version == expected_version)
            .update(values, synchronize_session=False)
        )
        if updated == 0:
            db.rollback()
            raise ConcurrentTransitionError(job.id)

        db.commit()
        db.refresh(job)
        return job
