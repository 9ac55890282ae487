import base64
from unittest.mock import MagicMock

import pytest
import requests

from deployer.github_utils import (
    GitHubRepository,
    RepositoryError,
    RepositoryNotFoundError,
    generate_mit_license,
    pages_url,
)


def _response(status, body=None, text=""):
    r = MagicMock()
    r.status_code = status
    r.json.return_value = body if body is not None else {}
    r.text = text
    return r


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def gh(session):
    return GitHubRepository(token="t", owner="octo", api_url="https://api.test/", branch="main",
                            timeout=5, session=session)


def test_create_repository(gh, session):
    session.post.return_value = _response(201, {"html_url": "https://github.com/octo/app"})
    assert gh.create_or_get_repository("app", "desc")["html_url"] == "https://github.com/octo/app"

    args, kwargs = session.post.call_args
    assert args[0] == "https://api.test/user/repos"
    assert kwargs["json"]["name"] == "app"
    assert kwargs["json"]["private"] is False
    assert kwargs["headers"]["Authorization"] == "token t"


def test_existing_repository_is_reused(gh, session):
    session.post.return_value = _response(422, text="name already exists")
    session.get.return_value = _response(200, {"html_url": "https://github.com/octo/app"})

    assert gh.create_or_get_repository("app")["html_url"] == "https://github.com/octo/app"
    assert session.get.call_args.args[0] == "https://api.test/repos/octo/app"


def test_get_missing_repository(gh, session):
    session.get.return_value = _response(404)
    with pytest.raises(RepositoryNotFoundError):
        gh.get_repository("nope")


def test_write_new_file(gh, session):
    session.get.return_value = _response(404)
    session.put.return_value = _response(201, {"commit": {"sha": "abc1234567"}})

    assert gh.write_file("app", "index.html", "<html/>", "Initial commit: Add index.html") == "abc1234567"
    payload = session.put.call_args.kwargs["json"]
    assert payload["message"] == "Initial commit: Add index.html"
    assert base64.b64decode(payload["content"]).decode() == "<html/>"
    assert payload["branch"] == "main"
    assert "sha" not in payload


def test_update_existing_file_sends_blob_sha(gh, session):
    session.get.return_value = _response(200, {"sha": "blob1", "content": ""})
    session.put.return_value = _response(200, {"commit": {"sha": "def"}})

    gh.write_file("app", "README.md", "# hi", "Update README for Round 2")
    assert session.put.call_args.kwargs["json"]["sha"] == "blob1"


def test_write_failure_raises(gh, session):
    session.get.return_value = _response(404)
    session.put.return_value = _response(500, text="oops")
    with pytest.raises(RepositoryError) as exc:
        gh.write_file("app", "index.html", "x", "msg")
    assert exc.value.status_code == 500


def test_read_file_decodes_content(gh, session):
    encoded = base64.b64encode("<html>v1</html>".encode()).decode()
    session.get.return_value = _response(200, {"sha": "s", "content": encoded})
    assert gh.read_file("app", "index.html") == "<html>v1</html>"


def test_read_missing_file_is_not_found(gh, session):
    session.get.return_value = _response(404)
    with pytest.raises(RepositoryNotFoundError):
        gh.read_file("app", "index.html")


def test_read_other_failure_is_generic_error(gh, session):
    session.get.return_value = _response(403, text="forbidden")
    with pytest.raises(RepositoryError) as exc:
        gh.read_file("app", "index.html")
    assert not isinstance(exc.value, RepositoryNotFoundError)


@pytest.mark.parametrize("status", [201, 204, 409])
def test_enable_pages_accepts_created_and_already_enabled(gh, session, status):
    session.post.return_value = _response(status)
    assert gh.enable_pages("app") is True
    assert session.post.call_args.kwargs["json"] == {"source": {"branch": "main", "path": "/"}}


@pytest.mark.parametrize("status", [403, 422, 500])
def test_enable_pages_failure_is_reported_not_raised(gh, session, status):
    session.post.return_value = _response(status, text="Pages unavailable")
    assert gh.enable_pages("app") is False


def test_enable_pages_connection_error_is_reported_not_raised(gh, session):
    session.post.side_effect = requests.ConnectionError("refused")
    assert gh.enable_pages("app") is False


def test_pages_url_and_license():
    assert pages_url("octo", "calc-app") == "https://octo.github.io/calc-app/"
    text = generate_mit_license("octo", "2026")
    assert text.startswith("MIT License")
    assert "Copyright (c) 2026 octo" in text
