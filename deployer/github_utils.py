"""
GitHub helper utilities for the deployer
- Create or reuse repositories
- Read / create / update files through the contents API
- Enable GitHub Pages
- Generate MIT license
"""

import base64
import logging
import time
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .settings import settings

logger = logging.getLogger(__name__)


class RepositoryError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RepositoryNotFoundError(RepositoryError):
    """Repository or file does not exist (HTTP 404)."""


def _get_session_with_retries() -> requests.Session:
    """Create a requests session that retries idempotent lookups on transient GitHub errors."""
    session = requests.Session()

    retry_strategy = Retry(
        total=3,
        backoff_factor=1,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["HEAD", "GET", "OPTIONS"],
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    return session


def pages_url(owner: str, repo: str, domain: str = "github.io") -> str:
    return f"https://{owner}.{domain}/{repo}/"


class GitHubRepository:
    """Thin client over the GitHub REST API for one owner."""

    def __init__(
        self,
        token: Optional[str] = None,
        owner: Optional[str] = None,
        api_url: Optional[str] = None,
        branch: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.token = token if token is not None else settings.GITHUB_TOKEN
        self.owner = owner if owner is not None else settings.GITHUB_OWNER
        self.api_url = (api_url or settings.GITHUB_API_URL).rstrip("/")
        self.branch = branch or settings.GITHUB_BRANCH
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT
        self.session = session or _get_session_with_retries()

    # ---------------------------------------------------------------------
    # Headers / errors
    # ---------------------------------------------------------------------
    def _headers(self) -> dict:
        return {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "llm-app-deployer",
        }

    def _url(self, path: str) -> str:
        return f"{self.api_url}{path}"

    @staticmethod
    def _raise_for(r, what: str):
        text = (r.text or "")[:400]
        logger.error("%s failed: %s %s", what, r.status_code, text)
        if r.status_code == 404:
            raise RepositoryNotFoundError(f"{what}: not found", status_code=404)
        raise RepositoryError(f"{what}: GitHub API error {r.status_code}: {text}", status_code=r.status_code)

    # ---------------------------------------------------------------------
    # Repositories
    # ---------------------------------------------------------------------
    def get_repository(self, name: str) -> dict:
        r = self.session.get(self._url(f"/repos/{self.owner}/{name}"), headers=self._headers(), timeout=self.timeout)
        if r.status_code != 200:
            self._raise_for(r, f"Fetching repository {self.owner}/{name}")
        return r.json()

    def create_or_get_repository(self, name: str, description: str = "") -> dict:
        """
        Create a public repo for the authenticated user.
        If it already exists (422) the existing repository is returned instead.
        """
        payload = {
            "name": name,
            "description": description,
            "private": False,
            "auto_init": False,
        }
        r = self.session.post(self._url("/user/repos"), headers=self._headers(), json=payload, timeout=self.timeout)
        if r.status_code in (200, 201):
            data = r.json()
            logger.info("Created repo %s", data.get("html_url"))
            return data
        if r.status_code == 422:
            logger.info("Repo %s/%s already exists, reusing it", self.owner, name)
            return self.get_repository(name)
        self._raise_for(r, f"Creating repository {name}")

    # ---------------------------------------------------------------------
    # File operations
    # ---------------------------------------------------------------------
    def _get_file(self, repo: str, path: str) -> Optional[dict]:
        url = self._url(f"/repos/{self.owner}/{repo}/contents/{path}")
        r = self.session.get(url, headers=self._headers(), params={"ref": self.branch}, timeout=self.timeout)
        if r.status_code == 200:
            return r.json()
        if r.status_code == 404:
            return None
        self._raise_for(r, f"Reading {path} from {self.owner}/{repo}")

    def read_file(self, repo: str, path: str) -> str:
        data = self._get_file(repo, path)
        if data is None:
            raise RepositoryNotFoundError(f"File not found: {path} in {self.owner}/{repo}", status_code=404)
        if not isinstance(data, dict) or "content" not in data:
            raise RepositoryError(f"File not found or is a directory: {path}")
        return base64.b64decode(data["content"]).decode("utf-8")

    def write_file(self, repo: str, path: str, content: str, message: str) -> str:
        """Create or update a text file; returns the sha of the resulting commit."""
        existing = self._get_file(repo, path)
        payload = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("utf-8"),
            "branch": self.branch,
        }
        if existing and existing.get("sha"):
            payload["sha"] = existing["sha"]

        url = self._url(f"/repos/{self.owner}/{repo}/contents/{path}")
        r = self.session.put(url, headers=self._headers(), json=payload, timeout=self.timeout)
        if r.status_code not in (200, 201):
            self._raise_for(r, f"Pushing {path} to {self.owner}/{repo}")
        sha = r.json()["commit"]["sha"]
        logger.info("%s %s (%s)", "Updated" if "sha" in payload else "Committed", path, sha[:7])
        return sha

    # ---------------------------------------------------------------------
    # GitHub Pages
    # ---------------------------------------------------------------------
    def enable_pages(self, repo: str, path: str = "/") -> bool:
        """
        Enable Pages from the configured branch. An already-enabled site (409) counts as success.
        Any other failure is logged and reported as False; the caller decides whether to carry on.
        """
        url = self._url(f"/repos/{self.owner}/{repo}/pages")
        payload = {"source": {"branch": self.branch, "path": path}}
        logger.info("Enabling Pages for %s/%s (branch=%s)", self.owner, repo, self.branch)
        try:
            r = self.session.post(url, headers=self._headers(), json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Enabling Pages for %s/%s failed: %s", self.owner, repo, e)
            return False
        if r.status_code in (200, 201, 202, 204):
            logger.info("GitHub Pages enabled for %s/%s", self.owner, repo)
            return True
        if r.status_code == 409:
            logger.info("GitHub Pages already enabled for %s/%s", self.owner, repo)
            return True
        logger.warning(
            "Enabling Pages for %s/%s returned %s: %s", self.owner, repo, r.status_code, r.text[:200]
        )
        return False


# ---------------------------------------------------------------------
# License
# ---------------------------------------------------------------------
def generate_mit_license(author: Optional[str] = None, year: Optional[str] = None) -> str:
    year_text = year or time.strftime("%Y")
    author_text = author or settings.GITHUB_OWNER or "Author"
    return f"""MIT License

Copyright (c) {year_text} {author_text}

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in all
copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
THE SOFTWARE.
"""
