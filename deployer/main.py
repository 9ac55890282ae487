# deployer/main.py
"""
FastAPI entrypoint for the LLM App Deployer.

Exposes:
 - POST /api/task         -> accept round 1 & 2 tasks (alias: /api-endpoint)
                             Validates secret, queues the job, returns its id right away.
 - GET  /api/task-status  -> progress of one job (?taskId=...)
 - GET  /health           -> liveness plus queue counts
 - GET  /api/tasks        -> dev helper listing recent jobs
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from .github_utils import GitHubRepository
from .llm_generator import ContentGenerator
from .models import Attachment, TaskDescriptor
from .notify import Notifier
from .pipeline import TaskPipeline
from .reporter import ProgressReporter
from .scheduler import SequentialScheduler
from .settings import settings
from .store import JobStore

logging.basicConfig(
    level=settings.LOG_LEVEL or "INFO",
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("deployer.main")


def build_scheduler() -> SequentialScheduler:
    """Wire the default collaborators from settings."""
    repository = GitHubRepository()
    pipeline = TaskPipeline(
        generator=ContentGenerator(),
        repository=repository,
        notifier=Notifier(),
        owner=settings.GITHUB_OWNER,
        pages_domain=settings.PAGES_DOMAIN,
    )
    return SequentialScheduler(JobStore(), pipeline)


# -----------------------------------------------------------
# REQUEST MODEL
# -----------------------------------------------------------
class TaskPayload(BaseModel):
    email: str
    secret: str
    task: str = Field(..., min_length=1)
    round: int = Field(..., ge=1, le=2)
    nonce: str
    brief: str
    evaluation_url: Optional[str] = None
    attachments: Optional[List[Attachment]] = None

    def to_descriptor(self) -> TaskDescriptor:
        return TaskDescriptor(
            email=self.email,
            task=self.task,
            round=self.round,
            nonce=self.nonce,
            brief=self.brief,
            evaluation_url=self.evaluation_url or None,
            attachments=self.attachments or [],
        )


def _validate_secret(incoming: str) -> bool:
    """
    Validate incoming secret against configured STUDENT_SECRET.
    An unset STUDENT_SECRET rejects everything.
    """
    if not settings.STUDENT_SECRET:
        logger.warning("STUDENT_SECRET not set in settings. Rejecting all requests for safety.")
        return False
    return incoming == settings.STUDENT_SECRET


def create_app(scheduler: Optional[SequentialScheduler] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sched = scheduler or build_scheduler()
        app.state.scheduler = sched
        app.state.reporter = ProgressReporter(sched.store)
        sched.start()
        logger.info("App startup complete. Scheduler running.")
        yield
        sched.stop(timeout=5)
        logger.info("App shutdown.")

    app = FastAPI(title="LLM App Deployer API", version="1.0", lifespan=lifespan)

    # -----------------------------------------------------------
    # MAIN ENDPOINT
    # -----------------------------------------------------------
    @app.post("/api/task")
    @app.post("/api-endpoint")
    def receive_task(payload: TaskPayload, request: Request):
        if not _validate_secret(payload.secret):
            logger.warning("Invalid secret from %s for task=%s", payload.email, payload.task)
            raise HTTPException(status_code=401, detail="Unauthorized")

        job_id = request.app.state.scheduler.submit(payload.to_descriptor())
        logger.info("Accepted task=%s round=%s nonce=%s from %s as %s",
                    payload.task, payload.round, payload.nonce, payload.email, job_id)
        return {
            "status": "processing",
            "taskId": job_id,
            "task": payload.task,
            "round": payload.round,
            "message": f"Task '{payload.task}' (Round {payload.round}) accepted and processing in background",
        }

    # -----------------------------------------------------------
    # STATUS / HEALTH
    # -----------------------------------------------------------
    @app.get("/api/task-status")
    def task_status(request: Request, taskId: Optional[str] = None):
        if not taskId:
            raise HTTPException(status_code=400, detail="taskId parameter is required")
        status = request.app.state.reporter.job_status(taskId)
        if status is None:
            logger.info("Task not found: %s", taskId)
            raise HTTPException(status_code=404, detail="Task not found")
        return status

    @app.get("/health")
    def health(request: Request):
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "queue": request.app.state.reporter.health(),
        }

    @app.get("/api/tasks")
    def list_tasks(request: Request, limit: int = 50):
        tasks = request.app.state.reporter.recent(limit)
        return {"count": len(tasks), "tasks": tasks}

    return app


app = create_app()
