"""
Task pipeline: the round 1 (build) and round 2 (revise) workflows.

Each stage reports progress through a StageReporter before and after it runs.
Collaborator errors are not retried here; the first one aborts the job and
propagates to the scheduler. Only the final notification is retried, inside
the notifier.
"""
import logging
import time
from typing import Callable, Optional, Protocol

from .github_utils import GitHubRepository, generate_mit_license, pages_url
from .llm_generator import ContentGenerator
from .models import EvaluationPayload, GeneratedContent, TaskDescriptor
from .notify import Notifier
from .store import JobStore

logger = logging.getLogger(__name__)

INDEX_FILE = "index.html"
LICENSE_FILE = "LICENSE"
README_FILE = "README.md"


class StageReporter(Protocol):
    def report(self, stage: str, progress: int, message: str, **results) -> None:
        ...


class StoreStageReporter:
    """Writes pipeline progress for one job into the store."""

    def __init__(self, store: JobStore, job_id: str):
        self.store = store
        self.job_id = job_id

    def report(self, stage: str, progress: int, message: str, **results) -> None:
        self.store.update(self.job_id, stage=stage, progress=progress, message=message, **results)
        logger.info("job=%s stage=%s progress=%s %s", self.job_id, stage, progress, message)


class TaskPipeline:
    def __init__(
        self,
        generator: ContentGenerator,
        repository: GitHubRepository,
        notifier: Notifier,
        owner: Optional[str] = None,
        pages_domain: str = "github.io",
        year: Callable[[], str] = lambda: time.strftime("%Y"),
    ):
        self.generator = generator
        self.repository = repository
        self.notifier = notifier
        self.owner = owner or repository.owner
        self.pages_domain = pages_domain
        self.year = year

    def run(self, descriptor: TaskDescriptor, reporter: StageReporter) -> None:
        if descriptor.round == 1:
            self.run_round1(descriptor, reporter)
        elif descriptor.round == 2:
            self.run_round2(descriptor, reporter)
        else:
            raise ValueError(f"Invalid round number: {descriptor.round}")

    # -----------------------------------------------------------
    # Round 1: initial build & deployment
    # -----------------------------------------------------------
    def run_round1(self, descriptor: TaskDescriptor, reporter: StageReporter) -> None:
        task = descriptor.task
        logger.info("ROUND 1: initial build for task %s", task)

        reporter.report("generating-html", 10, "Generating HTML application and README with LLM")
        generated = self.generator.generate(descriptor.brief, list(descriptor.attachments))
        logger.info("Generated %s chars of HTML, %s chars of README", len(generated.content), len(generated.description))

        reporter.report("creating-repo", 30, f"Creating GitHub repository: {task}")
        repo = self.repository.create_or_get_repository(task, f"Web application: {descriptor.brief[:100]}...")
        repo_url = repo.get("html_url") or f"https://github.com/{self.owner}/{task}"
        reporter.report("creating-repo", 40, "Repository ready", repository_url=repo_url)

        reporter.report("committing-files", 50, "Committing files to repository")
        self.repository.write_file(task, INDEX_FILE, generated.content, "Initial commit: Add index.html")
        license_text = generate_mit_license(self.owner, self.year())
        self.repository.write_file(task, LICENSE_FILE, license_text, "Add MIT License")
        commit_sha = self.repository.write_file(task, README_FILE, generated.description, "Add comprehensive README")

        reporter.report("enabling-pages", 70, "Enabling GitHub Pages")
        if not self.repository.enable_pages(task):
            logger.warning("GitHub Pages could not be enabled for %s; continuing with the expected URL", task)
        site_url = pages_url(self.owner, task, self.pages_domain)
        reporter.report("enabling-pages", 80, f"Pages URL: {site_url}", pages_url=site_url, commit_sha=commit_sha)

        self._notify(descriptor, reporter, repo_url, commit_sha, site_url)

    # -----------------------------------------------------------
    # Round 2: revision & update
    # -----------------------------------------------------------
    def run_round2(self, descriptor: TaskDescriptor, reporter: StageReporter) -> None:
        task = descriptor.task
        logger.info("ROUND 2: revision for task %s", task)

        reporter.report("fetching-repo", 10, f"Fetching repository: {task}")
        repo = self.repository.get_repository(task)
        repo_url = repo.get("html_url") or f"https://github.com/{self.owner}/{task}"
        reporter.report("fetching-repo", 20, "Retrieving current index.html", repository_url=repo_url)
        existing = self.repository.read_file(task, INDEX_FILE)

        reporter.report("generating-html", 30, "Generating updated HTML and README with LLM")
        generated: GeneratedContent = self.generator.generate(
            descriptor.brief, list(descriptor.attachments), existing_content=existing
        )

        reporter.report("updating-files", 60, "Updating files in repository")
        self.repository.write_file(
            task, INDEX_FILE, generated.content, f"Round 2: Update application - {descriptor.brief[:50]}..."
        )
        commit_sha = self.repository.write_file(task, README_FILE, generated.description, "Update README for Round 2")
        site_url = pages_url(self.owner, task, self.pages_domain)
        reporter.report("updating-files", 80, "Files updated", pages_url=site_url, commit_sha=commit_sha)

        self._notify(descriptor, reporter, repo_url, commit_sha, site_url)

    def _notify(self, descriptor: TaskDescriptor, reporter: StageReporter, repo_url: str, commit_sha: str, site_url: str):
        if not descriptor.evaluation_url:
            logger.info("No evaluation_url provided; skipping notify stage")
            return

        reporter.report("sending-evaluation", 90, "Sending evaluation to server")
        payload = EvaluationPayload(
            email=descriptor.email,
            task=descriptor.task,
            round=descriptor.round,
            nonce=descriptor.nonce,
            repo_url=repo_url,
            commit_sha=commit_sha,
            pages_url=site_url,
        )
        if not self.notifier.send(descriptor.evaluation_url, payload):
            logger.warning("Notification to evaluation_url failed: %s", descriptor.evaluation_url)
