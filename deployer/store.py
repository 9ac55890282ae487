# deployer/store.py
"""
In-memory job store.
Provides: job_id_for(), JobStore with create/update/mark_* transitions and
read-only copies for pollers.

Jobs are lost on restart. Every mutation happens under one lock so a reader
never sees a half-applied update.
"""

import hashlib
import logging
import threading
from typing import Dict, List, Optional, Tuple

from .models import RESULT_FIELDS, Job, JobStatus, QueueHealth, TaskDescriptor, utcnow

logger = logging.getLogger(__name__)


class JobStateError(RuntimeError):
    """Raised when a job is driven through an illegal transition."""


class UnknownJobError(KeyError):
    pass


class JobIdConflictError(JobStateError):
    """Two different (task, round, nonce) triples resolved to the same job id."""


_SEPARATOR = "-round-"

_ALLOWED = {
    JobStatus.WAITING: {JobStatus.ACTIVE},
    JobStatus.ACTIVE: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def job_id_for(task: str, round_: int, nonce: str) -> str:
    """
    Deterministic job id: the same (task, round, nonce) always maps to the same job.

    Plain ids read "{task}-round-{round}-{nonce}". When the task or nonce itself
    contains "-round-" that form stops being unambiguous, so a short digest of
    the triple is appended to keep distinct requests apart.
    """
    base = f"{task}-round-{round_}-{nonce}"
    if _SEPARATOR not in task and _SEPARATOR not in nonce:
        return base
    digest = hashlib.sha1(f"{task}\x00{round_}\x00{nonce}".encode("utf-8")).hexdigest()[:10]
    return f"{base}-{digest}"


def _triple(descriptor: TaskDescriptor) -> Tuple[str, int, str]:
    return descriptor.task, descriptor.round, descriptor.nonce


class JobStore:
    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, descriptor: TaskDescriptor) -> Tuple[Job, bool]:
        """
        Insert a waiting job for descriptor.
        Returns (snapshot, created). An existing job with the same id is returned untouched.
        """
        job_id = job_id_for(descriptor.task, descriptor.round, descriptor.nonce)
        with self._lock:
            existing = self._jobs.get(job_id)
            if existing is not None:
                if _triple(existing.descriptor) != _triple(descriptor):
                    raise JobIdConflictError(f"Job id {job_id} already belongs to another request")
                return existing.model_copy(), False
            job = Job(id=job_id, descriptor=descriptor)
            self._jobs[job_id] = job
            return job.model_copy(), True

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy() if job is not None else None

    def _require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise UnknownJobError(job_id)
        return job

    def update(
        self,
        job_id: str,
        stage: Optional[str] = None,
        progress: Optional[int] = None,
        message: Optional[str] = None,
        **results,
    ) -> Job:
        """
        Merge stage/progress/message and any result fields into the job.
        Progress may not go backwards; result fields passed as None are ignored.
        """
        unknown = set(results) - set(RESULT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown result fields: {sorted(unknown)}")

        with self._lock:
            job = self._require(job_id)
            if job.status.is_terminal:
                raise JobStateError(f"Job {job_id} is {job.status.value}; no further updates")
            if progress is not None:
                if not 0 <= progress <= 100:
                    raise ValueError(f"progress out of range: {progress}")
                if progress < job.progress:
                    raise JobStateError(
                        f"Job {job_id} progress would go backwards ({job.progress} -> {progress})"
                    )
                job.progress = progress
            if stage is not None:
                job.stage = stage
            if message is not None:
                job.message = message
            for field, value in results.items():
                if value is not None:
                    setattr(job, field, value)
            job.updated_at = utcnow()
            return job.model_copy()

    def _transition(self, job_id: str, target: JobStatus) -> Job:
        job = self._require(job_id)
        if target not in _ALLOWED[job.status]:
            raise JobStateError(
                f"Illegal transition for job {job_id}: {job.status.value} -> {target.value}"
            )
        job.status = target
        job.updated_at = utcnow()
        return job

    def mark_active(self, job_id: str) -> Job:
        with self._lock:
            job = self._transition(job_id, JobStatus.ACTIVE)
            job.stage = "started"
            job.message = "Processing started"
            return job.model_copy()

    def mark_completed(self, job_id: str) -> Job:
        with self._lock:
            job = self._transition(job_id, JobStatus.COMPLETED)
            job.stage = "completed"
            job.progress = 100
            job.message = "Task completed successfully"
            return job.model_copy()

    def mark_failed(self, job_id: str, error: str) -> Job:
        with self._lock:
            job = self._transition(job_id, JobStatus.FAILED)
            job.stage = "failed"
            job.progress = 0
            job.error = error
            job.message = f"Task failed: {error}"
            return job.model_copy()

    def health(self) -> QueueHealth:
        with self._lock:
            counts = {status: 0 for status in JobStatus}
            for job in self._jobs.values():
                counts[job.status] += 1
        return QueueHealth(
            waiting=counts[JobStatus.WAITING],
            active=counts[JobStatus.ACTIVE],
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
        )

    def list_jobs(self, limit: int = 50) -> List[Job]:
        """Newest first."""
        with self._lock:
            jobs = list(reversed(self._jobs.values()))
            return [j.model_copy() for j in jobs[:limit]]

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
