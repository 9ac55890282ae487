import threading
from typing import Dict, List, Optional

import pytest

from deployer.github_utils import RepositoryError, RepositoryNotFoundError
from deployer.models import GeneratedContent, TaskDescriptor
from deployer.pipeline import TaskPipeline
from deployer.scheduler import SequentialScheduler
from deployer.store import JobStore

OWNER = "octo"


class FakeGenerator:
    def __init__(self, content: str = "<html>app</html>", description: str = "# App"):
        self.content = content
        self.description = description
        self.calls: List[dict] = []
        self.error: Optional[Exception] = None
        self.on_generate = None

    def generate(self, brief, attachments=None, existing_content=None):
        self.calls.append({"brief": brief, "attachments": attachments, "existing_content": existing_content})
        if self.on_generate is not None:
            self.on_generate(brief)
        if self.error is not None:
            raise self.error
        return GeneratedContent(content=self.content, description=self.description)


class FakeRepository:
    def __init__(self, owner: str = OWNER):
        self.owner = owner
        self.repos: Dict[str, Dict[str, str]] = {}
        self.commits: List[tuple] = []
        self.pages_enabled: List[str] = []
        self.fail_on_create: Optional[Exception] = None
        self.pages_ok = True

    def _html_url(self, name):
        return f"https://github.com/{self.owner}/{name}"

    def create_or_get_repository(self, name, description=""):
        if self.fail_on_create is not None:
            raise self.fail_on_create
        self.repos.setdefault(name, {})
        return {"html_url": self._html_url(name), "name": name}

    def get_repository(self, name):
        if name not in self.repos:
            raise RepositoryNotFoundError(f"Fetching repository {self.owner}/{name}: not found", status_code=404)
        return {"html_url": self._html_url(name), "name": name}

    def write_file(self, repo, path, content, message):
        if repo not in self.repos:
            raise RepositoryError(f"no repo {repo}")
        self.repos[repo][path] = content
        sha = f"sha{len(self.commits) + 1:04d}"
        self.commits.append((repo, path, message, sha))
        return sha

    def read_file(self, repo, path):
        files = self.repos.get(repo)
        if files is None or path not in files:
            raise RepositoryNotFoundError(f"File not found: {path} in {self.owner}/{repo}", status_code=404)
        return files[path]

    def enable_pages(self, repo):
        # an already-enabled site is reported as success by the real client
        self.pages_enabled.append(repo)
        return self.pages_ok


class FakeNotifier:
    def __init__(self, result: bool = True):
        self.result = result
        self.sent: List[tuple] = []

    def send(self, url, payload):
        self.sent.append((url, payload))
        return self.result


class BlockingGenerator(FakeGenerator):
    """Generator that parks inside generate() until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def generate(self, brief, attachments=None, existing_content=None):
        self.entered.set()
        self.release.wait(5)
        return super().generate(brief, attachments, existing_content)


def make_descriptor(task="calc-app", round_=1, nonce="abc", evaluation_url="https://eval.example.com/notify", **kw):
    return TaskDescriptor(
        email=kw.pop("email", "student@example.com"),
        task=task,
        round=round_,
        nonce=nonce,
        brief=kw.pop("brief", "Create a calculator"),
        evaluation_url=evaluation_url,
        **kw,
    )


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def store():
    return JobStore()


@pytest.fixture
def pipeline(generator, repository, notifier):
    return TaskPipeline(generator, repository, notifier, owner=OWNER, year=lambda: "2026")


@pytest.fixture
def scheduler(store, pipeline):
    sched = SequentialScheduler(store, pipeline)
    sched.start()
    yield sched
    sched.stop(timeout=5)
