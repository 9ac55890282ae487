"""
Sequential scheduler.

One daemon thread drains a FIFO of job ids, running at most one pipeline at a
time. While the queue is empty the thread waits on a condition variable;
submit() appends and notifies, so accepting work never blocks on the job
that is currently running.
"""
import logging
import threading
from collections import deque
from typing import Deque, Optional

from .models import TaskDescriptor
from .pipeline import StoreStageReporter, TaskPipeline
from .store import JobStore

logger = logging.getLogger(__name__)


class SequentialScheduler:
    def __init__(self, store: JobStore, pipeline: TaskPipeline):
        self.store = store
        self.pipeline = pipeline
        self._pending: Deque[str] = deque()
        self._cond = threading.Condition()
        self._running_job: Optional[str] = None
        self._stopping = False
        self._thread: Optional[threading.Thread] = None

    # -----------------------------------------------------------
    # Submission
    # -----------------------------------------------------------
    def submit(self, descriptor: TaskDescriptor) -> str:
        """
        Create a waiting job for descriptor and queue it. Returns the job id immediately.
        Resubmitting the same (task, round, nonce) returns the existing id without queueing it again.
        """
        job, created = self.store.create(descriptor)
        if not created:
            logger.info("Duplicate submission for job %s (status=%s); not re-queued", job.id, job.status.value)
            return job.id

        with self._cond:
            self._pending.append(job.id)
            self._cond.notify_all()
        logger.info("Job added to queue: %s (pending=%s)", job.id, self.pending_count)
        return job.id

    @property
    def pending_count(self) -> int:
        with self._cond:
            return len(self._pending)

    @property
    def is_busy(self) -> bool:
        with self._cond:
            return self._running_job is not None or bool(self._pending)

    # -----------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------
    def start(self) -> None:
        """Start the driver thread. Also revives a thread whose stop() is still pending."""
        with self._cond:
            self._stopping = False
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._loop, name="job-scheduler", daemon=True)
            self._thread.start()
        logger.info("Scheduler started")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop after the current job finishes. Pending jobs stay waiting."""
        with self._cond:
            self._stopping = True
            self._cond.notify_all()
            thread = self._thread
        if thread is not None:
            thread.join(timeout)
        logger.info("Scheduler stopped")

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until nothing is pending or running. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._running_job is None and not self._pending, timeout)

    # -----------------------------------------------------------
    # Driver loop
    # -----------------------------------------------------------
    def _next_job(self) -> Optional[str]:
        with self._cond:
            self._cond.wait_for(lambda: self._pending or self._stopping)
            if self._stopping:
                return None
            self._running_job = self._pending.popleft()
            return self._running_job

    def _finish(self) -> None:
        with self._cond:
            self._running_job = None
            self._cond.notify_all()

    def _loop(self) -> None:
        while True:
            job_id = self._next_job()
            if job_id is None:
                return
            try:
                self.run_job(job_id)
            except Exception:
                # store misuse; keep draining
                logger.exception("Scheduler error while handling job %s", job_id)
            finally:
                self._finish()

    def run_job(self, job_id: str) -> None:
        job = self.store.mark_active(job_id)
        logger.info("Processing job: %s", job_id)
        try:
            self.pipeline.run(job.descriptor, StoreStageReporter(self.store, job_id))
        except Exception as exc:
            logger.exception("Job %s failed: %s", job_id, exc)
            self.store.mark_failed(job_id, str(exc) or exc.__class__.__name__)
            return
        self.store.mark_completed(job_id)
        logger.info("Job %s completed", job_id)
