import httpx
import os
import logging
from typing import Any
from pydantic import BaseModel
from fastapi import HTTPException

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"


class GitHubAPIError(HTTPException):
    """GitHub request failed. Carries the upstream status and decoded error body."""

    def __init__(self, status_code: int, message: str, payload: Any = None):
        super().__init__(status_code=status_code, detail=message)
        self.payload = payload


class GitHubRateLimitError(GitHubAPIError):
    """Rate limit exhausted. `reset_at` is the epoch second the quota resets."""

    def __init__(self, reset_at: int | None, payload: Any = None):
        super().__init__(
            status_code=429,
            message=f"GitHub rate limit exceeded (resets at {reset_at})",
            payload=payload
        )
        self.reset_at = reset_at


class GitHubRepo(BaseModel):
    """A GitHub repository."""
    name: str
    full_name: str
    description: str | None
    html_url: str
    default_branch: str
    open_issues_count: int
    stargazers_count: int = 0
    forks_count: int = 0


class GitHubCommit(BaseModel):
    """A commit from the listing endpoint."""
    sha: str
    message: str
    author_name: str | None = None
    author_email: str | None = None
    author_login: str | None = None
    date: str
    html_url: str | None = None


class GitHubCommitFile(BaseModel):
    """One changed file of a commit."""
    filename: str
    additions: int = 0
    deletions: int = 0
    status: str | None = None


class GitHubCommitDetail(GitHubCommit):
    """A commit with line-change statistics."""
    additions: int = 0
    deletions: int = 0
    total: int = 0
    files: list[GitHubCommitFile] = []


class CommitPage(BaseModel):
    """Commits fetched by list_commits, with whether the listing was cut short."""
    commits: list[GitHubCommit]
    pages: int
    rate_limited: bool = False
    reset_at: int | None = None


def _get_github_headers() -> dict:
    """Get GitHub API headers with authentication."""
    token = os.getenv("GITHUB_TOKEN") or os.getenv("GITHUB_PERSONAL_ACCESS_TOKEN")
    if not token:
        raise HTTPException(
            status_code=500,
            detail="GitHub token not configured. Set GITHUB_TOKEN in .env"
        )
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28"
    }


def normalize_repo(repo: str | None) -> str | None:
    """Reduce a repo URL or 'owner/name.git' to 'owner/name'."""
    if not repo:
        return None
    repo = repo.strip()
    for prefix in ("https://github.com/", "http://github.com/", "git@github.com:"):
        if repo.startswith(prefix):
            repo = repo[len(prefix):]
    if repo.endswith(".git"):
        repo = repo[:-4]
    return repo.strip("/") or None


def get_default_repo() -> str:
    """Get default 'owner/repo' from environment."""
    repo = os.getenv("GITHUB_REPO") or os.getenv("GITHUB_DEFAULT_REPO")
    owner = os.getenv("GITHUB_OWNER")
    if repo and owner and "/" not in repo:
        repo = f"{owner}/{repo}"
    repo = normalize_repo(repo)
    if not repo or "/" not in repo:
        raise HTTPException(
            status_code=500,
            detail="GitHub repo not configured. Set GITHUB_REPO=owner/name in .env"
        )
    return repo


def _make_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=30.0)


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0"


def _reset_at(response: httpx.Response) -> int | None:
    value = response.headers.get("x-ratelimit-reset")
    return int(value) if value and value.isdigit() else None


def _error_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


async def _get(client: httpx.AsyncClient, url: str, **kwargs) -> httpx.Response:
    """GET with GitHub error conversion. 404 is returned to the caller unchanged."""
    try:
        response = await client.get(url, headers=_get_github_headers(), **kwargs)
    except httpx.RequestError as e:
        raise GitHubAPIError(status_code=503, message=f"Failed to connect to GitHub: {str(e)}")

    if _is_rate_limited(response):
        raise GitHubRateLimitError(_reset_at(response), _error_payload(response))
    if response.status_code == 404:
        return response
    if response.is_error:
        raise GitHubAPIError(
            status_code=response.status_code,
            message=f"GitHub API error: {response.text}",
            payload=_error_payload(response)
        )
    return response


def _parse_commit(commit: dict) -> GitHubCommit:
    info = commit.get("commit", {})
    author = info.get("author") or {}
    return GitHubCommit(
        sha=commit["sha"],
        message=info.get("message", ""),
        author_name=author.get("name"),
        author_email=author.get("email"),
        author_login=(commit.get("author") or {}).get("login"),
        date=author.get("date", ""),
        html_url=commit.get("html_url")
    )


async def get_repo(repo: str | None = None) -> GitHubRepo:
    """Get repository information."""
    repo = normalize_repo(repo) or get_default_repo()

    async with _make_client() as client:
        response = await _get(client, f"{GITHUB_API}/repos/{repo}")
        if response.status_code == 404:
            raise GitHubAPIError(status_code=404, message=f"Repository {repo} not found")

        data = response.json()
        return GitHubRepo(
            name=data["name"],
            full_name=data["full_name"],
            description=data.get("description"),
            html_url=data["html_url"],
            default_branch=data["default_branch"],
            open_issues_count=data.get("open_issues_count", 0),
            stargazers_count=data.get("stargazers_count", 0),
            forks_count=data.get("forks_count", 0)
        )


async def list_commits(
    repo: str | None = None,
    max_pages: int | None = None,
    per_page: int = 100
) -> CommitPage:
    """
    List commits page by page.

    Follows the Link header until there is no rel="next" or a page comes back
    empty. When the rate limit is hit, the commits fetched so far are returned
    with rate_limited set instead of raising.
    """
    repo = normalize_repo(repo) or get_default_repo()
    commits: list[GitHubCommit] = []
    page = 1

    async with _make_client() as client:
        while True:
            try:
                response = await _get(
                    client,
                    f"{GITHUB_API}/repos/{repo}/commits",
                    params={"per_page": per_page, "page": page}
                )
            except GitHubRateLimitError as e:
                logger.warning(f"GitHub rate limit exceeded after {len(commits)} commits")
                return CommitPage(commits=commits, pages=page - 1, rate_limited=True, reset_at=e.reset_at)

            if response.status_code == 404:
                logger.warning(f"No commits found for {repo}")
                break

            batch = response.json() or []
            commits.extend(_parse_commit(c) for c in batch)
            logger.info(f"Page {page}: fetched {len(batch)} commits (total: {len(commits)})")

            link = response.headers.get("link", "")
            if not batch or 'rel="next"' not in link:
                break
            if max_pages is not None and page >= max_pages:
                break
            page += 1

    return CommitPage(commits=commits, pages=page)


async def get_commit(sha: str, repo: str | None = None) -> GitHubCommitDetail | None:
    """Get a single commit with stats and files. Returns None when not found."""
    repo = normalize_repo(repo) or get_default_repo()

    async with _make_client() as client:
        response = await _get(client, f"{GITHUB_API}/repos/{repo}/commits/{sha}")
        if response.status_code == 404:
            return None

        data = response.json()
        base = _parse_commit(data)
        stats = data.get("stats") or {}
        return GitHubCommitDetail(
            **base.model_dump(),
            additions=stats.get("additions", 0),
            deletions=stats.get("deletions", 0),
            total=stats.get("total", 0),
            files=[
                GitHubCommitFile(
                    filename=f["filename"],
                    additions=f.get("additions", 0),
                    deletions=f.get("deletions", 0),
                    status=f.get("status")
                )
                for f in data.get("files", [])
            ]
        )
