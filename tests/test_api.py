from unittest.mock import MagicMock

import pytest
import requests

from gh_backup.github.api import GitHubAPI


def fake_session(status_code, payload=None):
    response = MagicMock(status_code=status_code, text="body")
    response.json.return_value = payload
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    session.get.return_value = response
    return session


def test_sets_github_headers():
    session = fake_session(200, {})

    GitHubAPI("ghp_secret", session=session)

    assert session.headers["Authorization"] == "Bearer ghp_secret"
    assert session.headers["Accept"] == "application/vnd.github+json"
    assert "User-Agent" in session.headers


def test_get_builds_url_and_decodes_success():
    session = fake_session(200, [{"name": "a"}])
    api = GitHubAPI("t", base_url="https://ghe.example.com/api/v3/", timeout=5, session=session)

    response = api.get("/orgs/acme/repos", params={"page": 1, "type": "all"})

    session.get.assert_called_once_with(
        "https://ghe.example.com/api/v3/orgs/acme/repos",
        params={"page": 1, "type": "all"},
        timeout=5,
    )
    assert response.status_code == 200
    assert response.body == [{"name": "a"}]


def test_error_status_is_returned_without_decoding():
    session = fake_session(404)
    api = GitHubAPI("t", session=session)

    response = api.get("/orgs/missing/repos")

    assert response.status_code == 404
    assert response.body is None
    session.get.return_value.json.assert_not_called()


def test_requires_token():
    with pytest.raises(ValueError):
        GitHubAPI("")
