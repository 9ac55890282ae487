"""Read-only projections of the job store for status polling and health checks."""
from typing import Any, Dict, List, Optional

from .models import Job
from .store import JobStore


def job_to_status(job: Job) -> Dict[str, Any]:
    data = job.model_dump(mode="json", by_alias=True, exclude={"descriptor"})
    data["task"] = job.descriptor.task
    data["round"] = job.descriptor.round
    return data


class ProgressReporter:
    def __init__(self, store: JobStore):
        self._store = store

    def job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        job = self._store.get(job_id)
        return job_to_status(job) if job is not None else None

    def health(self) -> Dict[str, int]:
        h = self._store.health()
        return {"waiting": h.waiting, "active": h.active, "completed": h.completed, "failed": h.failed}

    def recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        return [job_to_status(j) for j in self._store.list_jobs(limit)]
