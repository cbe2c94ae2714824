"""Tests for the GitHub REST client against a mocked transport."""

import asyncio

import httpx
import pytest
from fastapi import HTTPException

from pulseboard.tools import github
from pulseboard.tools.github import GitHubAPIError, normalize_repo


def raw_commit(sha, message="change", email="alex@example.com", date="2025-03-10T09:00:00Z"):
    return {
        "sha": sha,
        "html_url": f"https://github.com/acme/widgets/commit/{sha}",
        "commit": {"message": message, "author": {"name": "Alex", "email": email, "date": date}},
        "author": {"login": "alex"},
    }


class TestRepoConfig:

    @pytest.mark.parametrize("raw, expected", [
        ("acme/widgets", "acme/widgets"),
        ("https://github.com/acme/widgets.git", "acme/widgets"),
        ("git@github.com:acme/widgets.git", "acme/widgets"),
        ("  acme/widgets/ ", "acme/widgets"),
        ("", None),
        (None, None),
    ])
    def test_normalize_repo(self, raw, expected):
        assert normalize_repo(raw) == expected

    def test_owner_and_name_from_separate_settings(self, monkeypatch):
        monkeypatch.setenv("GITHUB_REPO", "widgets")
        monkeypatch.setenv("GITHUB_OWNER", "acme")
        assert github.get_default_repo() == "acme/widgets"

    def test_missing_repo(self, monkeypatch):
        for name in ("GITHUB_REPO", "GITHUB_DEFAULT_REPO", "GITHUB_OWNER"):
            monkeypatch.delenv(name, raising=False)
        with pytest.raises(HTTPException) as exc_info:
            github.get_default_repo()
        assert exc_info.value.status_code == 500

    def test_missing_token(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GITHUB_PERSONAL_ACCESS_TOKEN", raising=False)
        with pytest.raises(HTTPException):
            github._get_github_headers()


class TestListCommits:

    def test_follows_link_header(self, mock_github):
        def handler(request):
            assert request.headers["authorization"] == "Bearer gh-token"
            page = int(request.url.params["page"])
            if page == 1:
                return httpx.Response(
                    200,
                    json=[raw_commit("a1"), raw_commit("a2")],
                    headers={"link": '<https://api.github.com/x?page=2>; rel="next"'}
                )
            return httpx.Response(200, json=[raw_commit("a3")])

        mock_github(handler)
        page = asyncio.run(github.list_commits())

        assert [c.sha for c in page.commits] == ["a1", "a2", "a3"]
        assert page.commits[0].author_login == "alex"
        assert page.rate_limited is False

    def test_max_pages(self, mock_github):
        calls = []

        def handler(request):
            calls.append(request.url.params["page"])
            return httpx.Response(200, json=[raw_commit(f"s{len(calls)}")],
                                  headers={"link": 'rel="next"'})

        mock_github(handler)
        page = asyncio.run(github.list_commits(max_pages=2))
        assert calls == ["1", "2"]
        assert len(page.commits) == 2

    def test_rate_limit_keeps_fetched_pages(self, mock_github):
        def handler(request):
            if request.url.params["page"] == "1":
                return httpx.Response(200, json=[raw_commit("a1")], headers={"link": 'rel="next"'})
            return httpx.Response(
                403,
                json={"message": "API rate limit exceeded"},
                headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1741600000"}
            )

        mock_github(handler)
        page = asyncio.run(github.list_commits())

        assert [c.sha for c in page.commits] == ["a1"]
        assert page.rate_limited is True
        assert page.reset_at == 1741600000

    def test_forbidden_without_rate_limit_raises(self, mock_github):
        mock_github(lambda request: httpx.Response(403, json={"message": "Resource not accessible"}))
        with pytest.raises(GitHubAPIError) as exc_info:
            asyncio.run(github.list_commits())
        assert exc_info.value.status_code == 403


class TestGetCommit:

    def test_stats_and_files(self, mock_github):
        def handler(request):
            assert request.url.path == "/repos/acme/widgets/commits/abc"
            data = raw_commit("abc")
            data["stats"] = {"additions": 12, "deletions": 3, "total": 15}
            data["files"] = [{"filename": "src/app.py", "additions": 12, "deletions": 3, "status": "modified"}]
            return httpx.Response(200, json=data)

        mock_github(handler)
        detail = asyncio.run(github.get_commit("abc"))

        assert detail.total == 15
        assert detail.files[0].filename == "src/app.py"
        assert detail.author_email == "alex@example.com"

    def test_not_found_returns_none(self, mock_github):
        mock_github(lambda request: httpx.Response(404, json={"message": "Not Found"}))
        assert asyncio.run(github.get_commit("missing")) is None

    def test_repo_not_found(self, mock_github):
        mock_github(lambda request: httpx.Response(404, json={"message": "Not Found"}))
        with pytest.raises(GitHubAPIError) as exc_info:
            asyncio.run(github.get_repo())
        assert exc_info.value.status_code == 404
